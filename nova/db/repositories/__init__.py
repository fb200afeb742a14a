"""Database repositories initialization."""

from nova.db.repositories.documents import DocumentRepository
from nova.db.repositories.conversations import ConversationRepository

__all__ = [
    "DocumentRepository",
    "ConversationRepository"
]
