"""
Document Repository.
Data access layer for indexed connector documents.
"""

import logging
from typing import List, Optional, Sequence

from sqlalchemy import select, delete, or_, and_, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from nova.core.exceptions import DocumentConflictException, StorageException
from nova.db.database import get_db
from nova.db.models import Document

logger = logging.getLogger(__name__)


def _owner_key(owner_user_id: Optional[str]) -> str:
    return owner_user_id or ""


class DocumentRepository:
    """Repository for document data operations."""

    def _scoped(self, stmt, connector_id: Optional[str], owner_user_id: Optional[str]):
        """Apply connector and owner scoping. No owner means no owner filter."""
        if connector_id:
            stmt = stmt.where(Document.connector_id == connector_id)
        if owner_user_id:
            stmt = stmt.where(Document.owner_key == owner_user_id)
        return stmt

    async def exists(
        self,
        connector_id: str,
        content_hash: str,
        owner_user_id: Optional[str] = None
    ) -> bool:
        """Check whether identical content is stored for this connector and owner."""
        try:
            async with get_db() as db:
                stmt = (
                    select(Document.id)
                    .where(
                        Document.connector_id == connector_id,
                        Document.content_hash == content_hash,
                        Document.owner_key == _owner_key(owner_user_id)
                    )
                    .limit(1)
                )
                result = await db.execute(stmt)
                return result.scalar_one_or_none() is not None
        except SQLAlchemyError as e:
            raise StorageException(f"Duplicate check failed: {e}")

    async def insert(self, data: dict) -> str:
        """
        Insert a document.

        Raises:
            DocumentConflictException: identical (connector, hash, owner) exists
            StorageException: any other database failure
        """
        data = dict(data)
        if "metadata" in data:
            data["doc_metadata"] = data.pop("metadata")
        data["owner_key"] = _owner_key(data.get("owner_user_id"))

        try:
            async with get_db() as db:
                document = Document(**data)
                db.add(document)
                await db.flush()
                return document.id
        except IntegrityError:
            raise DocumentConflictException(
                data.get("connector_id"),
                data.get("content_hash"),
                data.get("owner_user_id")
            )
        except SQLAlchemyError as e:
            raise StorageException(f"Failed to insert document: {e}")

    async def get_by_id(self, document_id: str) -> Optional[Document]:
        """Get a document by ID."""
        async with get_db() as db:
            result = await db.execute(
                select(Document).where(Document.id == document_id)
            )
            return result.scalar_one_or_none()

    async def delete_by_connector(
        self,
        connector_id: str,
        owner_user_id: Optional[str] = None
    ) -> int:
        """Purge a connector's documents, optionally only one owner's. Returns rows deleted."""
        try:
            async with get_db() as db:
                stmt = delete(Document).where(Document.connector_id == connector_id)
                if owner_user_id:
                    stmt = stmt.where(Document.owner_key == owner_user_id)
                result = await db.execute(stmt)
                return result.rowcount or 0
        except SQLAlchemyError as e:
            raise StorageException(f"Failed to delete documents: {e}")

    async def delete(self, document_id: str) -> bool:
        """Delete a single document by ID."""
        try:
            async with get_db() as db:
                result = await db.execute(
                    delete(Document).where(Document.id == document_id)
                )
                return (result.rowcount or 0) > 0
        except SQLAlchemyError as e:
            raise StorageException(f"Failed to delete document: {e}")

    async def fetch_all(
        self,
        owner_user_id: Optional[str] = None,
        limit: Optional[int] = None,
        connector_id: Optional[str] = None
    ) -> List[Document]:
        """Get documents, newest first."""
        async with get_db() as db:
            stmt = self._scoped(select(Document), connector_id, owner_user_id)
            stmt = stmt.order_by(Document.created_at.desc())
            if limit:
                stmt = stmt.limit(limit)
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def search(
        self,
        text: str,
        owner_user_id: Optional[str] = None,
        limit: Optional[int] = None,
        connector_id: Optional[str] = None
    ) -> List[Document]:
        """Case-insensitive substring match over title, source type and content."""
        async with get_db() as db:
            stmt = self._scoped(select(Document), connector_id, owner_user_id)

            if text:
                search_term = f"%{text}%"
                stmt = stmt.where(
                    or_(
                        Document.title.ilike(search_term),
                        Document.source_type.ilike(search_term),
                        Document.content.ilike(search_term)
                    )
                )

            stmt = stmt.order_by(Document.created_at.desc())
            if limit:
                stmt = stmt.limit(limit)
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def keyword_candidates(
        self,
        terms: Sequence[str],
        connector_id: Optional[str] = None,
        owner_user_id: Optional[str] = None
    ) -> List[Document]:
        """Scoped documents whose title or content contains every term."""
        if not terms:
            return []

        async with get_db() as db:
            stmt = self._scoped(select(Document), connector_id, owner_user_id)
            stmt = stmt.where(
                and_(*[
                    or_(
                        Document.title.ilike(f"%{term}%"),
                        Document.content.ilike(f"%{term}%")
                    )
                    for term in terms
                ])
            )
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def vector_candidates(
        self,
        connector_id: Optional[str] = None,
        owner_user_id: Optional[str] = None
    ) -> List[Document]:
        """Scoped documents that carry an embedding."""
        async with get_db() as db:
            stmt = self._scoped(select(Document), connector_id, owner_user_id)
            stmt = stmt.where(Document.embedding.is_not(None))
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def count(self, owner_user_id: Optional[str] = None) -> int:
        async with get_db() as db:
            stmt = self._scoped(select(func.count(Document.id)), None, owner_user_id)
            result = await db.execute(stmt)
            return result.scalar_one()
