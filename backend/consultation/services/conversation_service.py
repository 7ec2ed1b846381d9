"""
Conversation Management Service

Process-wide instances of the conversation lifecycle service and the
message dispatcher, shared by the REST routes and the real-time gateway.
"""
from consultation.services.conversation.service import ConversationService, make_conversation_id
from consultation.services.conversation.dispatcher import MessageDispatcher

# Singleton instances
conversation_service = ConversationService()
message_dispatcher = MessageDispatcher()

__all__ = [
    "ConversationService",
    "MessageDispatcher",
    "conversation_service",
    "message_dispatcher",
    "make_conversation_id",
]
