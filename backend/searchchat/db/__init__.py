"""Database module - users, daily usage counters, conversations and messages"""
from .database import init_db, OwnershipViolation
from .models import ChatMessage, Conversation, ConversationSummary, Identity

__all__ = ['init_db', 'OwnershipViolation', 'ChatMessage', 'Conversation', 'ConversationSummary', 'Identity']
