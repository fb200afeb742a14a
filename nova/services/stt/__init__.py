"""
Speech-to-Text Service using the Groq Whisper transcription API,
plus a recognizer backend that feeds the voice session coordinator.
"""

import asyncio
import io
import logging
import time
import wave
from dataclasses import dataclass
from typing import Optional

import numpy as np

from nova.config import get_settings
from nova.core.exceptions import STTException
from nova.core.voice import SpeechRecognizer

logger = logging.getLogger(__name__)
settings = get_settings()

PCM_SAMPLE_RATE = 16000


@dataclass
class STTResult:
    """Result from speech-to-text transcription."""
    text: str
    language: Optional[str] = None
    audio_duration_ms: Optional[int] = None
    processing_time_ms: Optional[float] = None


def pcm16_to_wav(audio_data: bytes, sample_rate: int = PCM_SAMPLE_RATE) -> bytes:
    """Wrap raw 16-bit mono PCM into a WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(audio_data)
    return buffer.getvalue()


def pcm16_duration_ms(audio_data: bytes, sample_rate: int = PCM_SAMPLE_RATE) -> int:
    samples = np.frombuffer(audio_data[: len(audio_data) - len(audio_data) % 2], dtype=np.int16)
    return int(len(samples) * 1000 / sample_rate)


class STTService:
    """
    Transcription through Groq's hosted Whisper models.

    Accepts either a complete audio file (webm, wav, mp3, ...) or raw
    16 kHz 16-bit mono PCM, which is wrapped as WAV before upload.
    """

    def __init__(self, client=None):
        self._client = client
        self._model = settings.STT_MODEL_ID

    @property
    def is_available(self) -> bool:
        return self._client is not None

    async def initialize(self):
        """Create the Groq client when credentials are configured."""
        if self._client is not None:
            return
        if not settings.GROQ_API_KEY:
            logger.warning("GROQ_API_KEY not set, transcription unavailable")
            return

        from groq import AsyncGroq

        self._client = AsyncGroq(api_key=settings.GROQ_API_KEY)
        logger.info(f"STT service initialized with model: {self._model}")

    async def transcribe(
        self,
        audio_data: bytes,
        audio_format: str = "webm",
        language_hint: Optional[str] = None
    ) -> STTResult:
        """
        Transcribe one utterance.

        Args:
            audio_data: Audio bytes
            audio_format: Container extension, or "pcm16" for raw PCM
            language_hint: Optional ISO-639-1 language code

        Returns:
            STTResult with the transcript

        Raises:
            STTException: unavailable, timed out or provider error
        """
        if self._client is None:
            raise STTException("Transcription backend is not configured")
        if not audio_data:
            raise STTException("No audio data received")

        start_time = time.time()
        duration_ms = None

        if audio_format == "pcm16":
            duration_ms = pcm16_duration_ms(audio_data)
            audio_data = pcm16_to_wav(audio_data)
            audio_format = "wav"

        kwargs = {
            "file": (f"utterance.{audio_format}", audio_data),
            "model": self._model,
            "response_format": "json",
        }
        language = language_hint or settings.VOICE_LANGUAGE
        if language:
            kwargs["language"] = language

        try:
            response = await asyncio.wait_for(
                self._client.audio.transcriptions.create(**kwargs),
                timeout=settings.STT_TIMEOUT_SECONDS
            )
        except asyncio.TimeoutError:
            raise STTException(
                f"Transcription timed out after {settings.STT_TIMEOUT_SECONDS} seconds",
                details={"timeout_seconds": settings.STT_TIMEOUT_SECONDS}
            )
        except Exception as e:
            logger.error(f"Transcription error: {e}")
            raise STTException(f"Transcription failed: {e}")

        return STTResult(
            text=(getattr(response, "text", "") or "").strip(),
            language=language,
            audio_duration_ms=duration_ms,
            processing_time_ms=(time.time() - start_time) * 1000
        )

    async def cleanup(self):
        """Cleanup resources."""
        self._client = None
        logger.info("STT service cleaned up")


class TranscribingRecognizer(SpeechRecognizer):
    """
    Recognizer engine backed by STTService.

    Utterance-sized audio buffers are fed in with `feed()` and transcribed
    one at a time. Audio fed while stopped is discarded; starting clears
    anything still queued. After an error the engine stops itself and
    reports on_end, like a browser engine.
    """

    def __init__(self, stt: STTService, audio_format: str = "webm", language: Optional[str] = None):
        super().__init__()
        self.stt = stt
        self.audio_format = audio_format
        self.language = language
        self.running = False
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    def start(self):
        if self.running:
            return
        self._drain()
        self.running = True
        self._worker = asyncio.get_running_loop().create_task(self._work())

    def stop(self):
        if not self.running:
            return
        self._halt()
        self.on_end()

    def feed(self, audio_data: bytes) -> bool:
        """Queue an utterance. Returns False when it was discarded."""
        if not self.running or not audio_data:
            return False
        self._queue.put_nowait(audio_data)
        return True

    def _halt(self):
        self.running = False
        if self._worker is not None and self._worker is not asyncio.current_task():
            self._worker.cancel()
        self._worker = None
        self._drain()

    def _drain(self):
        while not self._queue.empty():
            self._queue.get_nowait()

    async def _work(self):
        while self.running:
            audio_data = await self._queue.get()
            try:
                result = await self.stt.transcribe(
                    audio_data, self.audio_format, self.language
                )
            except STTException as e:
                logger.warning(f"Transcription failed: {e.message}")
                self._fail("network")
                return

            if not self.running:
                return
            if not result.text:
                self._fail("no-speech")
                return

            self.on_result(result.text, True)

    def _fail(self, code: str):
        self._halt()
        self.on_error(code)
        self.on_end()
