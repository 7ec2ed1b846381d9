from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Integer, Boolean, Index

from .database import Base, utcnow


class Message(Base):
    """Chat message inside a conversation.

    Payload fields are immutable once written; only the delivery/read flags
    and the soft-delete flag change afterwards. `created_at` (tie-broken by
    the autoincrement id) defines the canonical order within a conversation.
    """
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)

    conversation_id = Column(String(120), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(String(36), nullable=False, index=True)
    sender_role = Column(String(10), nullable=False)
    receiver_id = Column(String(36), nullable=False, index=True)
    receiver_role = Column(String(10), nullable=False)

    message_type = Column(String(10), nullable=False, default='text')
    content = Column(Text, nullable=False)
    media_url = Column(String(1000), nullable=True)

    # Delivery / read state
    is_delivered = Column(Boolean, default=False, nullable=False)
    delivered_at = Column(DateTime, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True)

    # Soft delete
    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index('idx_messages_conversation_created', 'conversation_id', 'created_at'),
    )

    def to_dict(self, media_display_url: str = None):
        """Convert to dictionary for JSON response"""
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "sender_id": self.sender_id,
            "sender_role": self.sender_role,
            "receiver_id": self.receiver_id,
            "receiver_role": self.receiver_role,
            "message_type": self.message_type,
            "content": self.content,
            "media_url": self.media_url,
            "media_display_url": media_display_url,
            "is_delivered": self.is_delivered,
            "delivered_at": self.delivered_at.isoformat() if self.delivered_at else None,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Message {self.id} in conversation {self.conversation_id}>"
