"""
SQLAlchemy Database Models.
Defines the persisted entities: indexed documents and saved conversations.
"""

from datetime import datetime
from uuid import uuid4
from sqlalchemy import Column, String, DateTime, Text, JSON, UniqueConstraint

from nova.db.database import Base


def _new_id() -> str:
    return str(uuid4())


class Document(Base):
    """Indexed document pushed in by a connector."""
    __tablename__ = "documents"
    __table_args__ = (
        UniqueConstraint(
            "connector_id", "content_hash", "owner_key",
            name="uq_documents_connector_hash_owner"
        ),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    connector_id = Column(String(100), nullable=False, index=True)
    source_type = Column(String(50), nullable=False, index=True)
    source_id = Column(String(255))

    title = Column(String(500), nullable=False)
    content = Column(Text, nullable=False)
    content_hash = Column(String(64), nullable=False, index=True)
    doc_metadata = Column("metadata", JSON, default=dict)
    embedding = Column(JSON(none_as_null=True))  # NULL when the provider was unavailable

    owner_user_id = Column(String(100), index=True)
    # Non-null mirror of owner_user_id ("" for globally owned documents)
    owner_key = Column(String(100), nullable=False, default="")

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    def to_dict(self, include_embedding: bool = False) -> dict:
        data = {
            "id": self.id,
            "connector_id": self.connector_id,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "title": self.title,
            "content": self.content,
            "content_hash": self.content_hash,
            "metadata": self.doc_metadata or {},
            "owner_user_id": self.owner_user_id,
            "has_embedding": self.embedding is not None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_embedding:
            data["embedding"] = self.embedding
        return data

    def __repr__(self):
        return f"<Document {self.id}: {self.title}>"


class ConversationRecord(Base):
    """Saved conversation (welcome message excluded)."""
    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(100), index=True)
    title = Column(String(100), nullable=False)

    messages = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "messages": self.messages or [],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ConversationRecord {self.id}: {self.title}>"
