"""
Conversation Parties

A connected or authenticated caller is either a requester (user) or a
provider (partner). The role is resolved once at entry into one of the two
party variants below; handlers then ask the party for its capabilities
instead of branching on the role string.
"""
from abc import ABC, abstractmethod
from typing import Tuple, Union

from consultation.config.constants import ROLE_USER, ROLE_PARTNER
from consultation.models.user import User
from consultation.models.partner import Partner
from consultation.models.conversation import Conversation


class ConversationParty(ABC):
    """One side of a conversation."""

    role: str = ""
    can_accept: bool = False
    can_reject: bool = False
    # Which per-minute rate applies to this side at settlement
    rate_role: str = ""
    # Conversation attribute holding this side's unread counter
    unread_attr: str = ""
    peer_unread_attr: str = ""
    peer_role: str = ""
    # Partners see the frozen requester context and carry presence
    sees_context: bool = False
    tracks_presence: bool = False
    # Requester-initiated requests need credit; requester ratings feed the aggregate
    pays: bool = False
    # Model class of the other side
    peer_model = None

    def __init__(self, record: Union[User, Partner]):
        self.record = record

    @property
    def id(self) -> str:
        return self.record.id

    @property
    @abstractmethod
    def display_name(self) -> str:
        ...

    @abstractmethod
    def owns(self, conversation: Conversation) -> bool:
        """True if this party is the matching side of the conversation."""

    @abstractmethod
    def peer_id(self, conversation: Conversation) -> str:
        ...

    @property
    @abstractmethod
    def owner_column(self):
        """Conversation column holding this side's id."""

    @abstractmethod
    def pair_ids(self, peer_id: str) -> Tuple[str, str]:
        """(user_id, partner_id) for a conversation with peer_id."""

    def unread_in(self, conversation: Conversation) -> int:
        return getattr(conversation, self.unread_attr) or 0

    def rating_attr(self) -> str:
        return f"rating_by_{self.role}"

    def describe(self) -> dict:
        return {"id": self.id, "role": self.role, "name": self.display_name}

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.id}>"


class RequesterParty(ConversationParty):
    role = ROLE_USER
    rate_role = "debit"
    unread_attr = "unread_user"
    peer_unread_attr = "unread_partner"
    peer_role = ROLE_PARTNER
    pays = True

    peer_model = Partner

    @property
    def owner_column(self):
        return Conversation.user_id

    @property
    def display_name(self) -> str:
        return self.record.display_name

    def owns(self, conversation: Conversation) -> bool:
        return conversation.user_id == self.id

    def peer_id(self, conversation: Conversation) -> str:
        return conversation.partner_id

    def pair_ids(self, peer_id: str) -> Tuple[str, str]:
        return self.id, peer_id


class PartnerParty(ConversationParty):
    role = ROLE_PARTNER
    can_accept = True
    can_reject = True
    rate_role = "credit"
    unread_attr = "unread_partner"
    peer_unread_attr = "unread_user"
    peer_role = ROLE_USER
    sees_context = True
    tracks_presence = True

    peer_model = User

    @property
    def owner_column(self):
        return Conversation.partner_id

    @property
    def display_name(self) -> str:
        return self.record.name or self.record.email or self.id

    def owns(self, conversation: Conversation) -> bool:
        return conversation.partner_id == self.id

    def peer_id(self, conversation: Conversation) -> str:
        return conversation.user_id

    def pair_ids(self, peer_id: str) -> Tuple[str, str]:
        return peer_id, self.id


def party_for(record: Union[User, Partner]) -> ConversationParty:
    if isinstance(record, Partner):
        return PartnerParty(record)
    return RequesterParty(record)
