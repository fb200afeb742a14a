"""
Conversation REST Endpoints.
Text turns, conversation history and context, and saved conversations.
"""

import logging
import time
from typing import List, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel

from nova.core.chat import ChatOrchestrator, LocalChatStream
from nova.core.exceptions import (
    RecordNotFoundException,
    SessionNotFoundException,
    ValidationException
)

logger = logging.getLogger(__name__)

router = APIRouter()


class ConversationMessage(BaseModel):
    """Request model for sending a message."""
    text: str
    session_id: Optional[str] = None
    user_id: Optional[str] = None


class ConversationResponse(BaseModel):
    """Response model for a conversation turn."""
    session_id: str
    response: str
    message_id: Optional[str] = None
    latency_ms: float
    error: Optional[str] = None


async def _require_session(request: Request, session_id: str):
    session = await request.app.state.session_manager.get_session(session_id)
    if session is None:
        raise SessionNotFoundException(session_id)
    session.touch()
    return session


@router.post("/message", response_model=ConversationResponse)
async def send_message(request: Request, message: ConversationMessage):
    """
    Send a text message and get the complete reply.
    Failures produce the apology message plus an error description.
    """
    start_time = time.time()
    state = request.app.state

    session = await state.session_manager.get_or_create_session(
        message.session_id, message.user_id
    )
    if message.user_id and not session.user_id:
        session.user_id = message.user_id
    session.touch()

    notices: List[str] = []
    orchestrator = ChatOrchestrator(
        LocalChatStream(state.chat_service, session),
        session=session,
        notify=notices.append,
        repository=state.conversation_repository,
        agent_logger=state.agent_logger
    )

    reply = await orchestrator.handle_user_message(message.text)

    return ConversationResponse(
        session_id=session.session_id,
        response=reply.content if reply else "",
        message_id=reply.id if reply else None,
        latency_ms=round((time.time() - start_time) * 1000, 2),
        error=notices[0] if notices else None
    )


# =========================
# Saved conversations
# =========================

@router.get("/saved")
async def list_saved(request: Request, user_id: Optional[str] = None, limit: int = 50):
    """Saved conversations, most recently updated first."""
    records = await request.app.state.conversation_repository.list_for_user(user_id, limit)
    return {
        "conversations": [
            {
                "id": r.id,
                "title": r.title,
                "created_at": r.created_at.isoformat() if r.created_at else None,
                "updated_at": r.updated_at.isoformat() if r.updated_at else None
            }
            for r in records
        ],
        "count": len(records)
    }


@router.get("/saved/{conversation_id}")
async def get_saved(request: Request, conversation_id: str):
    record = await request.app.state.conversation_repository.get_by_id(conversation_id)
    if record is None:
        raise RecordNotFoundException("Conversation", conversation_id)
    return record.to_dict()


@router.delete("/saved/{conversation_id}")
async def delete_saved(request: Request, conversation_id: str):
    if not await request.app.state.conversation_repository.delete(conversation_id):
        raise RecordNotFoundException("Conversation", conversation_id)
    return {"id": conversation_id, "status": "deleted"}


# =========================
# Live sessions
# =========================

@router.get("/{session_id}/history")
async def get_history(request: Request, session_id: str, limit: Optional[int] = None):
    """Conversation messages for a session, welcome message first."""
    session = await _require_session(request, session_id)
    messages = session.conversation.messages
    if limit:
        messages = messages[-limit:]
    return {
        "session_id": session_id,
        "messages": [m.to_dict() for m in messages],
        "count": len(messages)
    }


@router.get("/{session_id}/context")
async def get_context(request: Request, session_id: str):
    session = await _require_session(request, session_id)
    return {
        "session_id": session_id,
        "context": session.context.to_dict()
    }


@router.post("/{session_id}/context")
async def update_context(request: Request, session_id: str):
    """Shallow-merge a partial context."""
    session = await _require_session(request, session_id)
    try:
        data = await request.json()
    except ValueError:
        raise ValidationException("Request body must be valid JSON")
    if not isinstance(data, dict):
        raise ValidationException("Context update must be a JSON object")

    session.context.merge(**data)

    return {
        "session_id": session_id,
        "context": session.context.to_dict(),
        "status": "updated"
    }


@router.post("/{session_id}/clear")
async def clear_conversation(request: Request, session_id: str):
    """Start a new conversation in the same session."""
    session = await _require_session(request, session_id)
    session.conversation.clear()
    session.saved_conversation_id = None
    return {
        "session_id": session_id,
        "messages": [m.to_dict() for m in session.conversation.messages],
        "status": "cleared"
    }


@router.post("/{session_id}/load/{conversation_id}")
async def load_conversation(request: Request, session_id: str, conversation_id: str):
    """Reopen a saved conversation in a session."""
    session = await _require_session(request, session_id)
    record = await request.app.state.conversation_repository.get_by_id(conversation_id)
    if record is None:
        raise RecordNotFoundException("Conversation", conversation_id)

    session.conversation.load_records(record.messages or [])
    session.saved_conversation_id = record.id
    return {
        "session_id": session_id,
        "conversation_id": record.id,
        "count": len(session.conversation.exchange_messages())
    }


@router.delete("/{session_id}")
async def delete_session(request: Request, session_id: str):
    """Drop a session and its in-memory conversation."""
    if not await request.app.state.session_manager.delete_session(session_id):
        raise SessionNotFoundException(session_id)
    return {
        "session_id": session_id,
        "status": "deleted"
    }
