"""
Session Management for the NOVA assistant.
Handles conversations, per-session context and session lifetime.
"""

import asyncio
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List
from uuid import uuid4
import logging

from nova.config import (
    get_settings,
    WELCOME_MESSAGE,
    CLEARED_MESSAGE,
    INCIDENT_FLOW_STEPS
)
from nova.core.exceptions import ValidationException

logger = logging.getLogger(__name__)
settings = get_settings()

WELCOME_ID = "welcome"


@dataclass
class IncidentCreationFlow:
    """Progress through the guided incident creation sub-flow."""
    step: str = "description"
    data: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.step not in INCIDENT_FLOW_STEPS:
            raise ValidationException(
                f"Invalid incident flow step: {self.step}",
                details={"allowed": INCIDENT_FLOW_STEPS}
            )

    def to_dict(self) -> Dict[str, Any]:
        return {"step": self.step, "data": dict(self.data)}


@dataclass
class ConversationContext:
    """
    Mutable context that evolves during a conversation.
    Tracks the entities the user is currently working with.
    """
    last_article_id: Optional[str] = None
    last_incident_id: Optional[str] = None
    incident_creation_flow: Optional[IncidentCreationFlow] = None

    def merge(self, **partial):
        """
        Shallow update. Unknown keys are ignored.

        Raises:
            ValidationException: a value has the wrong type; nothing is applied
        """
        known = {f.name for f in fields(self)}
        updates = {}
        for key, value in partial.items():
            if key not in known:
                continue
            if key == "incident_creation_flow":
                value = self._coerce_flow(value)
            elif value is not None and not isinstance(value, str):
                raise ValidationException(
                    f"{key} must be a string or null",
                    details={"field": key}
                )
            updates[key] = value

        for key, value in updates.items():
            setattr(self, key, value)

    @staticmethod
    def _coerce_flow(value) -> Optional[IncidentCreationFlow]:
        if value is None or isinstance(value, IncidentCreationFlow):
            return value
        if not isinstance(value, dict):
            raise ValidationException(
                "incident_creation_flow must be an object or null",
                details={"field": "incident_creation_flow"}
            )
        data = value.get("data") or {}
        if not isinstance(data, dict):
            raise ValidationException(
                "incident_creation_flow.data must be an object",
                details={"field": "incident_creation_flow"}
            )
        return IncidentCreationFlow(step=value.get("step", "description"), data=data)

    def reset(self):
        self.last_article_id = None
        self.last_incident_id = None
        self.incident_creation_flow = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary for serialization."""
        return {
            "last_article_id": self.last_article_id,
            "last_incident_id": self.last_incident_id,
            "incident_creation_flow": (
                self.incident_creation_flow.to_dict()
                if self.incident_creation_flow else None
            )
        }

    def get_context_summary(self) -> str:
        """Generate a summary string for LLM context injection."""
        parts = []

        if self.last_article_id:
            parts.append(f"Last referenced document: {self.last_article_id}")

        if self.last_incident_id:
            parts.append(f"Last discussed incident: {self.last_incident_id}")

        flow = self.incident_creation_flow
        if flow:
            parts.append(f"Creating an incident, current step: {flow.step}")
            for key, value in flow.data.items():
                parts.append(f"  {key}: {value}")

        return "\n".join(parts) if parts else "No prior context"


@dataclass
class Message:
    """Single conversation message."""
    role: str  # "user" or "assistant"
    content: str
    id: str = field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat()
        }

    def to_llm_message(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        timestamp = data.get("timestamp")
        return cls(
            role=data["role"],
            content=data["content"],
            id=data.get("id") or uuid4().hex,
            timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.now()
        )


class Conversation:
    """
    Append-only message list headed by a synthetic welcome message.
    The welcome message is never sent to the LLM nor persisted.
    """

    def __init__(self, welcome: str = WELCOME_MESSAGE):
        self.messages: List[Message] = [Message(role="assistant", content=welcome, id=WELCOME_ID)]
        self.context = ConversationContext()

    def add_message(self, role: str, content: str) -> Message:
        if role not in ("user", "assistant"):
            raise ValidationException(f"Invalid message role: {role}")
        message = Message(role=role, content=content)
        self.messages.append(message)
        return message

    def exchange_messages(self) -> List[Message]:
        """Messages excluding the welcome message."""
        return [m for m in self.messages if m.id != WELCOME_ID]

    def get_llm_messages(self, n: Optional[int] = None) -> List[Dict[str, str]]:
        """Most recent messages formatted for LLM input."""
        n = n or settings.CONTEXT_WINDOW_SIZE
        recent = self.exchange_messages()[-n:]
        return [m.to_llm_message() for m in recent]

    def to_records(self) -> List[Dict[str, Any]]:
        return [m.to_dict() for m in self.exchange_messages()]

    def load_records(self, records: List[Dict[str, Any]]):
        """Replace the exchange with saved messages, keeping the welcome message."""
        self.messages = self.messages[:1] + [Message.from_dict(r) for r in records]

    def clear(self):
        self.messages = [Message(role="assistant", content=CLEARED_MESSAGE, id=WELCOME_ID)]
        self.context.reset()


@dataclass
class Session:
    """
    User session containing a conversation and its context.
    """
    session_id: str
    user_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    last_activity: datetime = field(default_factory=datetime.now)

    conversation: Conversation = field(default_factory=Conversation)
    saved_conversation_id: Optional[str] = None

    is_active: bool = True

    @property
    def context(self) -> ConversationContext:
        return self.conversation.context

    def touch(self):
        self.last_activity = datetime.now()

    def is_expired(self) -> bool:
        """Check if session has expired due to inactivity."""
        timeout = timedelta(minutes=settings.SESSION_TIMEOUT_MINUTES)
        return datetime.now() - self.last_activity > timeout

    def to_dict(self) -> Dict[str, Any]:
        """Convert session to dictionary."""
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "created_at": self.created_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
            "context": self.context.to_dict(),
            "message_count": len(self.conversation.exchange_messages()),
            "saved_conversation_id": self.saved_conversation_id,
            "is_active": self.is_active
        }


class SessionManager:
    """
    Manages user sessions with automatic cleanup.
    """

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._lock = asyncio.Lock()
        self._cleanup_task: Optional[asyncio.Task] = None

    async def start(self):
        """Start the session manager and cleanup task."""
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        logger.info("Session manager started")

    async def stop(self):
        """Stop the session manager."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
        logger.info("Session manager stopped")

    async def create_session(
        self,
        session_id: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> Session:
        """Create a new session."""
        async with self._lock:
            if len(self._sessions) >= settings.MAX_SESSIONS:
                self._evict_oldest()

            session_id = session_id or str(uuid4())
            session = Session(session_id=session_id, user_id=user_id)
            self._sessions[session_id] = session

            logger.info(f"Created new session: {session_id}")
            return session

    async def get_session(self, session_id: str) -> Optional[Session]:
        """Get an existing session."""
        async with self._lock:
            session = self._sessions.get(session_id)

            if session and session.is_expired():
                self._remove_session(session_id)
                return None

            return session

    async def get_or_create_session(
        self,
        session_id: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> Session:
        """Get existing session or create new one."""
        if session_id:
            session = await self.get_session(session_id)
            if session:
                return session

        return await self.create_session(session_id, user_id)

    async def delete_session(self, session_id: str) -> bool:
        async with self._lock:
            return self._remove_session(session_id)

    async def get_active_session_count(self) -> int:
        """Get count of active sessions."""
        async with self._lock:
            return sum(1 for s in self._sessions.values() if s.is_active and not s.is_expired())

    def _remove_session(self, session_id: str) -> bool:
        """Remove session (must be called with lock held)."""
        if session_id in self._sessions:
            del self._sessions[session_id]
            logger.info(f"Removed session: {session_id}")
            return True
        return False

    def _evict_oldest(self):
        """Evict least recently active session (must be called with lock held)."""
        if not self._sessions:
            return

        oldest_session = min(
            self._sessions.values(),
            key=lambda s: s.last_activity
        )
        self._remove_session(oldest_session.session_id)

    async def _cleanup_loop(self):
        """Periodically clean up expired sessions."""
        while True:
            try:
                await asyncio.sleep(60)

                async with self._lock:
                    expired = [
                        sid for sid, session in self._sessions.items()
                        if session.is_expired()
                    ]

                    for sid in expired:
                        self._remove_session(sid)

                    if expired:
                        logger.info(f"Cleaned up {len(expired)} expired sessions")

            except asyncio.CancelledError:
                break
