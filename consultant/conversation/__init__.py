"""Conversation assembly and the inbound chat operation."""

from .assembler import ConversationAssembler, ConversationStore, InMemoryConversationStore
from .service import ChatRequest, ChatService, DomainContext

__all__ = [
    "ChatRequest",
    "ChatService",
    "ConversationAssembler",
    "ConversationStore",
    "DomainContext",
    "InMemoryConversationStore",
]
