"""
Protocol definitions for external collaborators.

This module defines interfaces (Python Protocols) that allow:
- Swapping implementations (e.g., base-URL signer -> object-storage presigner)
- Testing without real credentials
- Clear contracts between components

Usage:
    from consultation.services.protocols import MediaUrlSignerProtocol

    def display(signer: MediaUrlSignerProtocol, key: str) -> str:
        return signer.sign(key)
"""

from typing import Protocol, Optional


class MediaUrlSignerProtocol(Protocol):
    """
    Interface for turning a stored media reference into a viewable URL.

    Implementations may call out to object storage; callers treat any
    exception as "no display URL".
    """

    def sign(self, reference: str) -> str:
        """
        Produce a display URL for a stored media reference.

        Args:
            reference: Storage key or URL saved on the message

        Returns:
            URL the client can fetch
        """
        ...


class SummaryGeneratorProtocol(Protocol):
    """
    Interface for session summary generation.

    Implementations must never raise; a failed or disabled generator
    returns None.
    """

    @property
    def enabled(self) -> bool:
        """Whether the generator is configured to run at all."""
        ...

    async def generate(self, transcript: str) -> Optional[str]:
        """
        Summarize a labelled conversation transcript.

        Args:
            transcript: Lines of the form "User: ..." / "Expert: ..."

        Returns:
            Summary text, or None on failure
        """
        ...
