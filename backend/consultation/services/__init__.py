"""Business Logic Services.

This package contains all service modules that implement the core
business logic of the consultation backend.

Service Categories:
- Conversation: Lifecycle state machine, messages, history, parties
- Billing: Settlement, credit ledger, billing history
- Connection: WebSocket connection registry and notifications
- Session: WebSocket gateway orchestration
- Presence: Partner online/busy/offline status and capacity

External integrations:
- summary_service: Vertex AI Gemini session summaries
- media: Media URL signing
- signaling: Voice/video call negotiation relay
"""
