"""
Chat Streaming Endpoint.
Server-sent events in the OpenAI delta format, terminated by [DONE].
"""

import json
import logging
from typing import AsyncIterator, Dict, List, Optional

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from nova.core.chat import LocalChatStream, Delta, Error
from nova.core.exceptions import ValidationException

logger = logging.getLogger(__name__)

router = APIRouter()


class ChatStreamRequest(BaseModel):
    messages: List[Dict[str, str]]
    session_id: Optional[str] = None


def format_delta(text: str) -> str:
    payload = {"choices": [{"index": 0, "delta": {"content": text}}]}
    return f"data: {json.dumps(payload)}\n\n"


def format_error(error: Exception) -> str:
    message = getattr(error, "message", None) or str(error)
    code = getattr(error, "error_code", "CHAT_ERROR")
    return f"event: error\ndata: {json.dumps({'error': {'message': message, 'code': code}})}\n\n"


async def sse_frames(source: LocalChatStream, messages: List[Dict[str, str]]) -> AsyncIterator[str]:
    async for event in source.events(messages):
        if isinstance(event, Delta):
            yield format_delta(event.text)
        elif isinstance(event, Error):
            yield format_error(event.error)
            return
        else:
            yield "data: [DONE]\n\n"
            return


@router.post("/stream")
async def chat_stream(request: Request, body: ChatStreamRequest):
    """Stream the assistant reply for a message list."""
    if not body.messages:
        raise ValidationException("messages must be a non-empty list")

    session = None
    if body.session_id:
        session = await request.app.state.session_manager.get_session(body.session_id)

    source = LocalChatStream(request.app.state.chat_service, session)

    return StreamingResponse(
        sse_frames(source, body.messages),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}
    )
