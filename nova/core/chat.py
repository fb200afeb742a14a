"""
Streaming Chat Orchestrator.
Consumes incremental assistant replies, finalizes them into conversation
turns and hands cleaned text to speech playback.
"""

import inspect
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Union

import httpx

from nova.config import get_settings, APOLOGY_MESSAGE
from nova.core.exceptions import ChatStreamException, NovaException, TTSException
from nova.core.session import Conversation, Message

logger = logging.getLogger(__name__)
settings = get_settings()


# =========================
# Stream events
# =========================

@dataclass(frozen=True)
class Delta:
    text: str


@dataclass(frozen=True)
class Done:
    pass


@dataclass(frozen=True)
class Error:
    error: Exception


StreamEvent = Union[Delta, Done, Error]


async def _maybe_await(result):
    if inspect.isawaitable(result):
        await result


def _error_message(payload: Any) -> str:
    if isinstance(payload, dict):
        error = payload.get("error", payload)
        if isinstance(error, dict):
            return str(error.get("message") or error)
        return str(error)
    return str(payload)


class ChatStreamClient:
    """
    Server-sent events client for an OpenAI-style chat stream endpoint.

    Yields Delta for each content fragment and exactly one terminal event.
    End of stream without a [DONE] frame counts as Done.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        headers: Optional[Dict[str, str]] = None
    ):
        self.url = url or settings.CHAT_STREAM_URL
        self.headers = headers or {}
        self._client = client

    async def events(self, messages: List[Dict[str, str]]) -> AsyncIterator[StreamEvent]:
        owns_client = self._client is None
        client = self._client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.CHAT_STREAM_TIMEOUT_SECONDS, connect=10.0)
        )

        try:
            async with client.stream(
                "POST", self.url, json={"messages": messages}, headers=self.headers
            ) as response:
                if response.status_code != 200:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    try:
                        message = _error_message(json.loads(body))
                    except ValueError:
                        message = body[:200] or response.reason_phrase
                    yield Error(ChatStreamException(
                        f"Chat stream failed ({response.status_code}): {message}",
                        details={"status_code": response.status_code}
                    ))
                    return

                event_name = None
                async for line in response.aiter_lines():
                    line = line.rstrip("\r")
                    if not line:
                        event_name = None
                        continue
                    if line.startswith(":"):
                        continue
                    if line.startswith("event:"):
                        event_name = line[6:].strip()
                        continue
                    if not line.startswith("data:"):
                        continue

                    data = line[5:].strip()
                    if data == "[DONE]":
                        yield Done()
                        return

                    try:
                        payload = json.loads(data)
                    except ValueError:
                        if event_name == "error":
                            yield Error(ChatStreamException(data))
                            return
                        logger.warning(f"Skipping malformed stream frame: {data[:100]}")
                        continue

                    if event_name == "error" or (isinstance(payload, dict) and "error" in payload):
                        yield Error(ChatStreamException(_error_message(payload)))
                        return

                    try:
                        content = payload["choices"][0]["delta"].get("content")
                    except (KeyError, IndexError, TypeError, AttributeError):
                        continue
                    if content:
                        yield Delta(content)

            yield Done()

        except httpx.HTTPError as e:
            logger.error(f"Chat stream transport error: {e}")
            yield Error(ChatStreamException(f"Chat stream connection failed: {e}"))
        finally:
            if owns_client:
                await client.aclose()


class LocalChatStream:
    """The same event stream produced in-process from a ChatService."""

    def __init__(self, chat_service, session=None):
        self.chat_service = chat_service
        self.session = session

    async def events(self, messages: List[Dict[str, str]]) -> AsyncIterator[StreamEvent]:
        try:
            async for text in self.chat_service.generate(messages, self.session):
                yield Delta(text)
        except NovaException as e:
            logger.error(f"Chat backend error: {e.message}")
            yield Error(e)
            return
        yield Done()


async def stream_chat(
    source,
    messages: List[Dict[str, str]],
    on_delta: Callable[[str], Any],
    on_done: Callable[[], Any],
    on_error: Callable[[Exception], Any]
):
    """
    Callback form of a chat stream.

    on_delta fires once per fragment; then exactly one of on_done or
    on_error fires. Callbacks may be plain functions or coroutines.
    """
    terminal: Optional[StreamEvent] = None
    events = source.events(messages)
    try:
        async for event in events:
            if isinstance(event, Delta):
                await _maybe_await(on_delta(event.text))
            else:
                terminal = event
                break
    except Exception as e:
        logger.error(f"Chat stream aborted: {e}")
        terminal = Error(e)
    finally:
        await events.aclose()

    if isinstance(terminal, Error):
        await _maybe_await(on_error(terminal.error))
    else:
        await _maybe_await(on_done())


# =========================
# Speech text cleanup
# =========================

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_HEADINGS = re.compile(r"^[ \t]*#{1,6}[ \t]*", re.MULTILINE)
_LIST_DASHES = re.compile(r"^[ \t]*[-*+][ \t]+", re.MULTILINE)
_BULLETS = re.compile(r"[•◦▪‣]")
_NEWLINES = re.compile(r"[ \t]*[\r\n]+[ \t]*")
_SPACES = re.compile(r"[ \t]{2,}")


def prepare_for_speech(text: str) -> str:
    """Strip markdown syntax, bullet glyphs and control characters for TTS."""
    text = _CONTROL_CHARS.sub("", text or "")
    text = _HEADINGS.sub("", text)
    text = _LIST_DASHES.sub("", text)
    text = text.replace("**", "").replace("__", "").replace("*", "")
    text = _BULLETS.sub("", text)
    text = _NEWLINES.sub(" ", text)
    text = text.replace("\t", " ")
    return _SPACES.sub(" ", text).strip()


# =========================
# Orchestrator
# =========================

class ChatOrchestrator:
    """
    Runs one user turn end to end.

    The user message is appended, the conversation (welcome excluded) is
    streamed through `source`, and on completion the assistant message is
    appended, persisted and optionally spoken with recognition paused.
    On failure an apology message is appended and `notify` is called.
    """

    def __init__(
        self,
        source,
        conversation: Optional[Conversation] = None,
        speaker=None,
        coordinator=None,
        voice_enabled: bool = False,
        notify: Optional[Callable[[str], Any]] = None,
        repository=None,
        session=None,
        agent_logger=None
    ):
        self.source = source
        self.session = session
        if conversation is None:
            conversation = session.conversation if session else Conversation()
        self.conversation = conversation
        self.speaker = speaker
        self.coordinator = coordinator
        self.voice_enabled = voice_enabled
        self.notify = notify
        self.repository = repository
        self.agent_logger = agent_logger
        self.is_processing = False
        self._utterance = 0

    async def handle_user_message(
        self,
        text: str,
        on_delta: Optional[Callable[[str], Any]] = None
    ) -> Optional[Message]:
        """
        Process a typed message or a final voice transcript.

        Returns:
            The appended assistant (or apology) message, or None for blank
            input or an empty reply
        """
        text = (text or "").strip()
        if not text:
            return None

        self.is_processing = True
        start_time = time.time()
        self.conversation.add_message("user", text)
        messages = self.conversation.get_llm_messages()

        parts: List[str] = []
        failure: List[Exception] = []

        async def handle_delta(fragment: str):
            parts.append(fragment)
            if on_delta:
                await _maybe_await(on_delta(fragment))

        try:
            await stream_chat(
                self.source,
                messages,
                on_delta=handle_delta,
                on_done=lambda: None,
                on_error=failure.append
            )
        finally:
            self.is_processing = False

        if failure:
            error = failure[0]
            logger.error(f"Chat turn failed: {error}")
            apology = self.conversation.add_message("assistant", APOLOGY_MESSAGE)
            if self.notify:
                await _maybe_await(self.notify(
                    getattr(error, "message", None) or "Failed to get response"
                ))
            if self.agent_logger:
                await self.agent_logger.log_error(
                    self._session_id, type(error).__name__, str(error)
                )
            return apology

        reply = "".join(parts)
        if not reply:
            return None

        message = self.conversation.add_message("assistant", reply)
        await self._persist()

        if self.agent_logger:
            await self.agent_logger.log_chat_turn(
                self._session_id, text, reply,
                latency_ms=(time.time() - start_time) * 1000
            )

        if self.voice_enabled and self.speaker:
            await self.speak(reply)

        return message

    async def speak(self, text: str):
        """Speak text with recognition paused for the duration of playback."""
        spoken = prepare_for_speech(text)
        if not spoken:
            return

        self._utterance += 1
        utterance = self._utterance
        if self.coordinator:
            self.coordinator.pause()
        try:
            await self.speaker.speak(spoken)
        except TTSException as e:
            logger.error(f"Speech playback failed: {e.message}")
        finally:
            # A newer utterance owns the pause
            if self.coordinator and utterance == self._utterance:
                self.coordinator.resume()

    def clear(self):
        self.conversation.clear()
        if self.session:
            self.session.saved_conversation_id = None

    @property
    def _session_id(self) -> str:
        return self.session.session_id if self.session else "-"

    async def _persist(self):
        if not self.repository or not self.session or not self.session.user_id:
            return
        try:
            self.session.saved_conversation_id = await self.repository.save(
                self.conversation.to_records(),
                user_id=self.session.user_id,
                conversation_id=self.session.saved_conversation_id
            )
        except NovaException as e:
            logger.error(f"Failed to save conversation: {e.message}")
