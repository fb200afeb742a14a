"""
Conversation Repository.
Persists finished conversations so they can be listed and reopened.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, delete
from sqlalchemy.exc import SQLAlchemyError

from nova.core.exceptions import StorageException
from nova.db.database import get_db
from nova.db.models import ConversationRecord

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 50


def derive_title(messages: List[dict]) -> str:
    """Title is the first user message, cut to 50 characters."""
    for message in messages:
        if message.get("role") == "user" and message.get("content"):
            content = message["content"]
            if len(content) > TITLE_MAX_CHARS:
                return content[:TITLE_MAX_CHARS] + "..."
            return content
    return "New Conversation"


class ConversationRepository:
    """Repository for saved conversations."""

    async def get_by_id(self, conversation_id: str) -> Optional[ConversationRecord]:
        async with get_db() as db:
            result = await db.execute(
                select(ConversationRecord).where(ConversationRecord.id == conversation_id)
            )
            return result.scalar_one_or_none()

    async def save(
        self,
        messages: List[dict],
        user_id: Optional[str] = None,
        conversation_id: Optional[str] = None
    ) -> str:
        """
        Create or update a saved conversation. Returns its ID.

        Raises:
            StorageException: the database write failed
        """
        try:
            async with get_db() as db:
                record = None
                if conversation_id:
                    result = await db.execute(
                        select(ConversationRecord).where(ConversationRecord.id == conversation_id)
                    )
                    record = result.scalar_one_or_none()

                if record:
                    record.messages = messages
                    record.updated_at = datetime.utcnow()
                else:
                    record = ConversationRecord(
                        id=conversation_id,
                        user_id=user_id,
                        title=derive_title(messages),
                        messages=messages
                    )
                    db.add(record)

                await db.flush()
                logger.debug(f"Saved conversation {record.id} ({len(messages)} messages)")
                return record.id
        except SQLAlchemyError as e:
            raise StorageException(f"Failed to save conversation: {e}")

    async def list_for_user(
        self,
        user_id: Optional[str] = None,
        limit: int = 50
    ) -> List[ConversationRecord]:
        """Get saved conversations, most recently updated first."""
        async with get_db() as db:
            stmt = select(ConversationRecord)
            if user_id:
                stmt = stmt.where(ConversationRecord.user_id == user_id)
            stmt = stmt.order_by(ConversationRecord.updated_at.desc()).limit(limit)
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def delete(self, conversation_id: str) -> bool:
        async with get_db() as db:
            result = await db.execute(
                delete(ConversationRecord).where(ConversationRecord.id == conversation_id)
            )
            return (result.rowcount or 0) > 0
