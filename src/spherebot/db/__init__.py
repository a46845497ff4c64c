"""Relational persistence: thread mappings and feedback."""

from .connect import get_engine, make_session_factory, sqlite_uri
from .feedback import FeedbackEntry, FeedbackStore
from .mappings import ConversationMapping, MappingLookup, MappingStore
from .models import Base, FeedbackRecord, ThreadMapping

__all__ = [
    "Base",
    "ThreadMapping",
    "FeedbackRecord",
    "ConversationMapping",
    "MappingLookup",
    "MappingStore",
    "FeedbackEntry",
    "FeedbackStore",
    "get_engine",
    "make_session_factory",
    "sqlite_uri",
]
