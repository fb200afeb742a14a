"""Database module initialization."""

from nova.db.database import init_db, close_db, get_db
from nova.db.models import Document, ConversationRecord

__all__ = [
    "init_db",
    "close_db",
    "get_db",
    "Document",
    "ConversationRecord"
]
