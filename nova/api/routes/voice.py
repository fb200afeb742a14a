"""
Voice Endpoints.
Hands-free voice sessions: the client streams utterance audio, the server
transcribes, answers and speaks back, pausing recognition while it talks.
"""

import asyncio
import json
import logging
from typing import Optional, Set

from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from nova.config import get_settings
from nova.core.chat import ChatOrchestrator, LocalChatStream
from nova.core.exceptions import RecognitionException
from nova.core.voice import VoiceSessionCoordinator
from nova.services.stt import TranscribingRecognizer
from nova.services.tts import AudioSink, SpeechPlayer, TTSResult

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter()


class WebSocketAudioSink(AudioSink):
    """
    Plays audio on the client. play() returns when the client reports
    playback_done, on stop(), or after TTS_PLAYBACK_TIMEOUT_SECONDS.
    """

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self._finished = asyncio.Event()

    async def play(self, audio: TTSResult):
        self._finished.clear()
        await self.websocket.send_json({
            "type": "audio_start",
            "mime_type": audio.mime_type,
            "provider": audio.provider
        })
        await self.websocket.send_bytes(audio.audio_data)
        await self.websocket.send_json({"type": "audio_end"})

        try:
            await asyncio.wait_for(
                self._finished.wait(),
                timeout=settings.TTS_PLAYBACK_TIMEOUT_SECONDS
            )
        except asyncio.TimeoutError:
            logger.warning("No playback_done from client, continuing")

    async def stop(self):
        self._finished.set()
        await self.websocket.send_json({"type": "audio_stop"})

    def playback_done(self):
        self._finished.set()


class VoiceSettingsUpdate(BaseModel):
    """Partial voice settings update."""
    voice_sample_url: Optional[str] = None
    voice_name: Optional[str] = None
    language: Optional[str] = None
    fallback_voice: Optional[str] = None
    save_as_custom: bool = False


@router.get("/settings")
async def get_voice_settings(request: Request):
    """Get the current voice settings."""
    return request.app.state.voice_settings_store.load().to_dict()


@router.put("/settings")
async def update_voice_settings(update: VoiceSettingsUpdate, request: Request):
    """
    Update the voice settings.

    Setting voice_sample_url selects a cloned voice; an empty string goes
    back to the default assistant voice.
    """
    store = request.app.state.voice_settings_store
    voice_settings = store.load()

    if update.voice_sample_url is not None:
        url = update.voice_sample_url.strip() or None
        voice_settings.set_voice_sample(url, update.voice_name)
        if url and update.save_as_custom:
            voice_settings.add_custom_voice(voice_settings.voice_name, url)
    elif update.voice_name:
        voice_settings.voice_name = update.voice_name

    if update.language:
        voice_settings.language = update.language
    if update.fallback_voice:
        voice_settings.fallback_voice = update.fallback_voice

    store.save(voice_settings)
    logger.info(f"Voice settings updated: {voice_settings.voice_name}")
    return voice_settings.to_dict()


@router.websocket("/stream")
async def voice_stream(
    websocket: WebSocket,
    session_id: Optional[str] = None,
    user_id: Optional[str] = None,
    audio_format: str = "webm"
):
    """
    WebSocket endpoint for voice sessions.

    Client messages:
    - Binary: audio of the current utterance (any container Whisper accepts)
    - {"type": "start"} - start listening
    - {"type": "end_utterance"} - the buffered audio is one utterance
    - {"type": "stop"} - end the voice session
    - {"type": "pause"} / {"type": "resume"} - manual pause
    - {"type": "playback_done"} - assistant audio finished on the client
    - {"type": "ping"}

    Server messages: session, state, transcript, delta, response,
    audio_start, binary audio, audio_end, audio_stop, error, pong.
    """
    await websocket.accept()

    app = websocket.app
    state = app.state
    agent_logger = state.agent_logger

    session = await state.session_manager.get_or_create_session(session_id, user_id)
    session_id = session.session_id

    sink = WebSocketAudioSink(websocket)
    player = SpeechPlayer(state.tts_service, sink, state.voice_settings_store.load())
    recognizer = TranscribingRecognizer(
        state.stt_service, audio_format=audio_format, language=settings.VOICE_LANGUAGE
    )
    tasks: Set[asyncio.Task] = set()

    async def send_state():
        await websocket.send_json({"type": "state", "state": coordinator.state.value})

    async def notify(message: str):
        await websocket.send_json({"type": "error", "message": message})

    async def send_delta(text: str):
        await websocket.send_json({"type": "delta", "text": text})

    async def answer(text: str):
        await websocket.send_json({"type": "transcript", "text": text, "is_final": True})
        reply = await orchestrator.handle_user_message(text, on_delta=send_delta)
        if reply is not None:
            await websocket.send_json({"type": "response", "message": reply.to_dict()})
        await send_state()

    def spawn(coro):
        task = asyncio.create_task(coro)
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    def on_transcript(text: str):
        spawn(answer(text))

    def on_recognition_error(error: RecognitionException):
        spawn(notify(error.message))
        spawn(send_state())

    coordinator = VoiceSessionCoordinator(
        recognizer,
        on_transcript=on_transcript,
        on_error=on_recognition_error,
        restart_delay=settings.VOICE_RESTART_DELAY_MS / 1000
    )

    orchestrator = ChatOrchestrator(
        LocalChatStream(state.chat_service, session),
        session=session,
        speaker=player,
        coordinator=coordinator,
        voice_enabled=True,
        notify=notify,
        repository=state.conversation_repository,
        agent_logger=agent_logger
    )

    await agent_logger.log_voice_session(session_id, "connected")
    await websocket.send_json({
        "type": "session",
        "session_id": session_id,
        "voice": player.voice_settings.voice_name
    })

    audio_buffer = bytearray()

    try:
        while True:
            message = await websocket.receive()

            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect()

            if message.get("bytes"):
                audio_buffer.extend(message["bytes"])
                continue

            if not message.get("text"):
                continue

            try:
                data = json.loads(message["text"])
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON message: {message['text']}")
                continue

            msg_type = data.get("type")

            if msg_type == "start":
                coordinator.start()
                await agent_logger.log_voice_session(session_id, "listening")
                await send_state()

            elif msg_type == "end_utterance":
                if not recognizer.feed(bytes(audio_buffer)):
                    logger.debug("Utterance discarded, recognizer not running")
                audio_buffer.clear()

            elif msg_type == "stop":
                audio_buffer.clear()
                coordinator.end()
                await player.stop()
                await agent_logger.log_voice_session(session_id, "ended")
                await send_state()

            elif msg_type == "pause":
                coordinator.pause()
                await send_state()

            elif msg_type == "resume":
                coordinator.resume()
                await send_state()

            elif msg_type == "playback_done":
                sink.playback_done()

            elif msg_type == "ping":
                await websocket.send_json({"type": "pong"})

            else:
                logger.debug(f"Ignoring voice message type: {msg_type}")

    except WebSocketDisconnect:
        logger.info(f"Voice WebSocket disconnected: {session_id}")

    finally:
        coordinator.end()
        sink.playback_done()
        for task in list(tasks):
            task.cancel()
        await agent_logger.log_voice_session(session_id, "disconnected")
