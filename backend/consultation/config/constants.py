"""
Application-wide constants for configuration and tuning.

This file centralizes all magic numbers and configuration values
to enable easy tuning and maintain consistency across the backend.

Note: Environment-dependent settings (DB, Redis, API keys, rates) belong in settings.py.
This file is for operational parameters that rarely change between environments.
"""

# ==============================================================================
# CONVERSATION LIFECYCLE
# ==============================================================================

STATUS_PENDING: str = "pending"
STATUS_ACCEPTED: str = "accepted"
STATUS_ACTIVE: str = "active"
STATUS_ENDED: str = "ended"
STATUS_REJECTED: str = "rejected"

# Statuses in which a (user, partner) pair is considered engaged
NON_TERMINAL_STATUSES: tuple = (STATUS_PENDING, STATUS_ACCEPTED, STATUS_ACTIVE)

# Statuses in which messages may be exchanged
MESSAGING_STATUSES: tuple = (STATUS_ACCEPTED, STATUS_ACTIVE)

# ==============================================================================
# ROLES
# ==============================================================================

ROLE_USER: str = "user"
ROLE_PARTNER: str = "partner"

# ==============================================================================
# MESSAGES
# ==============================================================================

MESSAGE_TYPES: tuple = ("text", "image", "audio", "video", "file", "system")

# Characters of content kept in the conversation's last-message preview
LAST_MESSAGE_PREVIEW_CHARS: int = 100

# ==============================================================================
# RATINGS
# ==============================================================================

RATING_MIN_STARS: int = 1
RATING_MAX_STARS: int = 5
SATISFACTION_VALUES: tuple = (
    "very_satisfied",
    "satisfied",
    "neutral",
    "dissatisfied",
    "very_dissatisfied",
)

# ==============================================================================
# BILLING
# ==============================================================================

SERVICE_TYPE_CHAT: str = "chat"
SERVICE_TYPE_VOICE: str = "voice"
SERVICE_TYPE_VIDEO: str = "video"
SERVICE_TYPES: tuple = (SERVICE_TYPE_CHAT, SERVICE_TYPE_VOICE, SERVICE_TYPE_VIDEO)

# ==============================================================================
# PRESENCE & CAPACITY
# ==============================================================================

PARTNER_STATUS_ONLINE: str = "online"
PARTNER_STATUS_OFFLINE: str = "offline"
PARTNER_STATUS_BUSY: str = "busy"
PARTNER_STATUSES: tuple = (PARTNER_STATUS_ONLINE, PARTNER_STATUS_OFFLINE, PARTNER_STATUS_BUSY)

# Default number of concurrent conversations a partner may hold
DEFAULT_MAX_CONVERSATIONS: int = 3

# Redis presence key TTL (seconds)
HEARTBEAT_TTL_SEC: int = 60

# Presence cleanup/sync interval (seconds)
STATUS_CLEANUP_INTERVAL_SEC: int = 120

# ==============================================================================
# PAGINATION
# ==============================================================================

DEFAULT_MESSAGES_PAGE_SIZE: int = 50
DEFAULT_HISTORY_PAGE_SIZE: int = 20
MAX_PAGE_SIZE: int = 200

# ==============================================================================
# SESSION SUMMARY (Gemini LLM)
# ==============================================================================

SUMMARY_ENABLED: bool = True

# Gemini model to use (flash = fast/cheap)
GEMINI_MODEL_NAME: str = "gemini-1.5-flash"

GEMINI_TEMPERATURE: float = 0.2
GEMINI_MAX_OUTPUT_TOKENS: int = 300
GEMINI_TOP_P: float = 0.8

# Summary generation timeout (seconds)
SUMMARY_TIMEOUT_SEC: float = 20.0

# Redis channel prefix used to hand summaries back to the gateway
SUMMARY_CHANNEL_PREFIX: str = "channel:summary:"

# ==============================================================================
# DATABASE CONNECTION POOL
# ==============================================================================

# SQLAlchemy connection pool size
DB_POOL_SIZE: int = 10

# SQLAlchemy max overflow connections
DB_POOL_MAX_OVERFLOW: int = 20
