"""
Media URL signing.

Messages store a media reference (storage key or absolute URL). Before a
message is returned to a client the reference is turned into a display URL
by a `MediaUrlSignerProtocol` implementation. Signing is best-effort: a
failure yields `media_display_url = None` and never fails the request.
"""
import logging
from typing import Optional

from consultation.config.settings import settings
from consultation.services.protocols import MediaUrlSignerProtocol

logger = logging.getLogger(__name__)


class BaseUrlMediaSigner:
    """Joins MEDIA_BASE_URL with the stored key; absolute URLs pass through."""

    def __init__(self, base_url: Optional[str] = None):
        self.base_url = (base_url if base_url is not None else settings.MEDIA_BASE_URL) or ""

    def sign(self, reference: str) -> str:
        if reference.startswith(("http://", "https://")) or not self.base_url:
            return reference
        return f"{self.base_url.rstrip('/')}/{reference.lstrip('/')}"


def display_url(signer: Optional[MediaUrlSignerProtocol], reference: Optional[str]) -> Optional[str]:
    """Best-effort display URL for a media reference."""
    if not reference or signer is None:
        return None
    try:
        return signer.sign(reference)
    except Exception as e:
        logger.warning(f"[Media] Failed to sign media reference: {e}")
        return None


media_signer = BaseUrlMediaSigner()
