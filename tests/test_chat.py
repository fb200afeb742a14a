"""Tests for chat streaming and the chat orchestrator."""

import asyncio
import json

import httpx

from nova.config import APOLOGY_MESSAGE, CLEARED_MESSAGE
from nova.core.chat import (
    ChatOrchestrator,
    ChatStreamClient,
    Delta,
    Done,
    Error,
    LocalChatStream,
    prepare_for_speech,
    stream_chat,
)
from nova.core.exceptions import ChatStreamException, LLMNotConfiguredException, TTSException
from nova.core.session import Conversation, Session
from nova.core.voice import VoiceSessionCoordinator, VoiceState
from tests.fakes import FakeRecognizer, ManualScheduler

STREAM_URL = "https://chat.test/stream"


def sse(*fragments, done=True):
    lines = []
    for fragment in fragments:
        payload = {"choices": [{"delta": {"content": fragment}}]}
        lines.append(f"data: {json.dumps(payload)}\n\n")
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


def make_client(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ChatStreamClient(url=STREAM_URL, client=client)


def collect(source, messages=None):
    deltas, done, errors = [], [], []

    asyncio.run(stream_chat(
        source,
        messages or [{"role": "user", "content": "hi"}],
        on_delta=deltas.append,
        on_done=lambda: done.append(True),
        on_error=errors.append
    ))
    return deltas, done, errors


class ScriptedSource:
    """Chat source replaying a fixed list of events."""

    def __init__(self, *events):
        self.script = events
        self.seen = []

    async def events(self, messages):
        self.seen.append(messages)
        for event in self.script:
            yield event


class TestStreamChat:
    """Test stream_chat() against the SSE client."""

    def test_fragments_then_done(self):
        sent = []

        def handler(request):
            sent.append(json.loads(request.content))
            return httpx.Response(
                200,
                content=sse("Hel", "lo, ", "world"),
                headers={"content-type": "text/event-stream"}
            )

        deltas, done, errors = collect(make_client(handler))

        assert deltas == ["Hel", "lo, ", "world"]
        assert done == [True]
        assert errors == []
        assert sent[0] == {"messages": [{"role": "user", "content": "hi"}]}

    def test_end_of_stream_without_done_marker(self):
        def handler(request):
            return httpx.Response(200, content=sse("Hel", "lo", done=False))

        deltas, done, errors = collect(make_client(handler))
        assert deltas == ["Hel", "lo"]
        assert done == [True]
        assert errors == []

    def test_comments_and_role_frames_skipped(self):
        body = (
            b": keep-alive\n\n"
            b'data: {"choices": [{"delta": {"role": "assistant"}}]}\n\n'
            + sse("Hi")
        )

        def handler(request):
            return httpx.Response(200, content=body)

        deltas, done, _ = collect(make_client(handler))
        assert deltas == ["Hi"]
        assert done == [True]

    def test_http_error_status(self):
        def handler(request):
            return httpx.Response(429, json={"error": "Rate limits exceeded"})

        deltas, done, errors = collect(make_client(handler))
        assert deltas == []
        assert done == []
        assert len(errors) == 1
        assert isinstance(errors[0], ChatStreamException)
        assert "429" in errors[0].message
        assert "Rate limits exceeded" in errors[0].message

    def test_error_event_after_fragments(self):
        body = sse("Hel", done=False) + b'event: error\ndata: {"error": {"message": "backend down"}}\n\n'

        def handler(request):
            return httpx.Response(200, content=body)

        deltas, done, errors = collect(make_client(handler))
        assert deltas == ["Hel"]
        assert done == []
        assert [e.message for e in errors] == ["backend down"]

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        deltas, done, errors = collect(make_client(handler))
        assert done == []
        assert len(errors) == 1
        assert isinstance(errors[0], ChatStreamException)

    def test_scripted_source(self):
        deltas, done, errors = collect(ScriptedSource(Delta("a"), Delta("b"), Done()))
        assert deltas == ["a", "b"]
        assert done == [True]
        assert errors == []

    def test_exception_in_source_reported_once(self):
        class Exploding:
            async def events(self, messages):
                yield Delta("partial")
                raise RuntimeError("boom")

        deltas, done, errors = collect(Exploding())
        assert deltas == ["partial"]
        assert done == []
        assert [str(e) for e in errors] == ["boom"]


class TestLocalChatStream:
    """Test the in-process chat source."""

    def test_backend_error_becomes_error_event(self):
        class UnconfiguredChat:
            async def generate(self, messages, session=None):
                raise LLMNotConfiguredException()
                yield  # pragma: no cover

        deltas, done, errors = collect(LocalChatStream(UnconfiguredChat()))
        assert done == []
        assert isinstance(errors[0], LLMNotConfiguredException)

    def test_generated_text_becomes_deltas(self):
        class EchoChat:
            async def generate(self, messages, session=None):
                for word in ("Hel", "lo"):
                    yield word

        deltas, done, _ = collect(LocalChatStream(EchoChat()))
        assert deltas == ["Hel", "lo"]
        assert done == [True]


class TestPrepareForSpeech:
    """Test prepare_for_speech()."""

    def test_strips_markdown(self):
        text = "## Steps\n- **Open** Settings\n- Choose • Security\n\n* _Done_ *now*"
        assert prepare_for_speech(text) == "Steps Open Settings Choose Security _Done_ now"

    def test_strips_control_characters(self):
        assert prepare_for_speech("Hello\x00 there\x07") == "Hello there"

    def test_empty(self):
        assert prepare_for_speech("") == ""
        assert prepare_for_speech("**  **") == ""


class FakeSpeaker:
    def __init__(self, coordinator=None, error=None):
        self.coordinator = coordinator
        self.error = error
        self.spoken = []
        self.states = []

    async def speak(self, text):
        self.spoken.append(text)
        if self.coordinator:
            self.states.append(self.coordinator.state)
        if self.error:
            raise self.error


class FakeRepository:
    def __init__(self):
        self.saved = []

    async def save(self, messages, user_id=None, conversation_id=None):
        self.saved.append((messages, user_id, conversation_id))
        return conversation_id or "conv-1"


class TestChatOrchestrator:
    """Test ChatOrchestrator.handle_user_message()."""

    def test_successful_turn(self):
        source = ScriptedSource(Delta("Hello, "), Delta("world"), Done())
        orchestrator = ChatOrchestrator(source)
        fragments = []

        reply = asyncio.run(orchestrator.handle_user_message("  hi  ", on_delta=fragments.append))

        assert reply.role == "assistant"
        assert reply.content == "Hello, world"
        assert fragments == ["Hello, ", "world"]
        # The welcome message is never sent
        assert source.seen == [[{"role": "user", "content": "hi"}]]
        roles = [m.role for m in orchestrator.conversation.messages]
        assert roles == ["assistant", "user", "assistant"]
        assert orchestrator.is_processing is False

    def test_blank_input_ignored(self):
        source = ScriptedSource(Done())
        orchestrator = ChatOrchestrator(source)
        assert asyncio.run(orchestrator.handle_user_message("   ")) is None
        assert source.seen == []
        assert len(orchestrator.conversation.messages) == 1

    def test_error_appends_apology_and_notifies(self):
        notices = []
        source = ScriptedSource(Delta("Hel"), Error(ChatStreamException("Rate limits exceeded")))
        orchestrator = ChatOrchestrator(source, notify=notices.append)

        reply = asyncio.run(orchestrator.handle_user_message("hi"))

        assert reply.content == APOLOGY_MESSAGE
        assert orchestrator.conversation.messages[-1].content == APOLOGY_MESSAGE
        assert notices == ["Rate limits exceeded"]

    def test_empty_reply_not_appended(self):
        orchestrator = ChatOrchestrator(ScriptedSource(Done()))
        assert asyncio.run(orchestrator.handle_user_message("hi")) is None
        assert [m.role for m in orchestrator.conversation.messages] == ["assistant", "user"]

    def test_voice_reply_pauses_recognition(self):
        recognizer = FakeRecognizer()
        coordinator = VoiceSessionCoordinator(recognizer, scheduler=ManualScheduler())
        speaker = FakeSpeaker(coordinator)
        orchestrator = ChatOrchestrator(
            ScriptedSource(Delta("**Reset** your "), Delta("password."), Done()),
            speaker=speaker,
            coordinator=coordinator,
            voice_enabled=True
        )

        coordinator.start()
        asyncio.run(orchestrator.handle_user_message("how do I reset my password"))

        assert speaker.spoken == ["Reset your password."]
        assert speaker.states == [VoiceState.PAUSED]
        assert coordinator.state == VoiceState.LISTENING
        assert recognizer.starts == 2

    def test_speech_failure_still_resumes(self):
        recognizer = FakeRecognizer()
        coordinator = VoiceSessionCoordinator(recognizer, scheduler=ManualScheduler())
        speaker = FakeSpeaker(coordinator, error=TTSException("synthesis failed"))
        orchestrator = ChatOrchestrator(
            ScriptedSource(Delta("Sure."), Done()),
            speaker=speaker,
            coordinator=coordinator,
            voice_enabled=True
        )

        coordinator.start()
        reply = asyncio.run(orchestrator.handle_user_message("hi"))

        assert reply.content == "Sure."
        assert coordinator.state == VoiceState.LISTENING

    def test_voice_disabled_does_not_speak(self):
        speaker = FakeSpeaker()
        orchestrator = ChatOrchestrator(
            ScriptedSource(Delta("Sure."), Done()),
            speaker=speaker,
            voice_enabled=False
        )
        asyncio.run(orchestrator.handle_user_message("hi"))
        assert speaker.spoken == []

    def test_persists_for_signed_in_user(self):
        repository = FakeRepository()
        session = Session(session_id="s1", user_id="u1")
        orchestrator = ChatOrchestrator(
            ScriptedSource(Delta("Sure."), Done()),
            session=session,
            repository=repository
        )

        asyncio.run(orchestrator.handle_user_message("hi"))
        asyncio.run(orchestrator.handle_user_message("again"))

        assert session.saved_conversation_id == "conv-1"
        assert len(repository.saved) == 2
        messages, user_id, conversation_id = repository.saved[1]
        assert user_id == "u1"
        assert conversation_id == "conv-1"
        assert [m["content"] for m in messages] == ["hi", "Sure.", "again", "Sure."]

    def test_anonymous_not_persisted(self):
        repository = FakeRepository()
        orchestrator = ChatOrchestrator(
            ScriptedSource(Delta("Sure."), Done()),
            session=Session(session_id="s1"),
            repository=repository
        )
        asyncio.run(orchestrator.handle_user_message("hi"))
        assert repository.saved == []

    def test_clear(self):
        session = Session(session_id="s1", user_id="u1", saved_conversation_id="conv-1")
        orchestrator = ChatOrchestrator(ScriptedSource(Done()), session=session)
        orchestrator.conversation.add_message("user", "hi")

        orchestrator.clear()

        assert [m.content for m in orchestrator.conversation.messages] == [CLEARED_MESSAGE]
        assert session.saved_conversation_id is None
        assert isinstance(orchestrator.conversation, Conversation)
