"""
Text-to-Speech Service.
Remote voice synthesis with an edge-tts fallback, persisted voice settings
and a single-utterance speech player.
"""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import List, Optional, Dict, Any

import httpx

from nova.config import get_settings
from nova.core.exceptions import TTSException

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class TTSResult:
    """Result from text-to-speech synthesis."""
    audio_data: bytes
    mime_type: str = "audio/mpeg"
    provider: str = "edge-tts"
    processing_time_ms: Optional[float] = None


# =========================
# Voice settings
# =========================

@dataclass
class VoiceSettings:
    """User-selected voice. Passed by reference to the speech components."""
    voice_name: str = "Default Assistant"
    voice_sample_url: Optional[str] = None
    language: str = "en"
    fallback_voice: str = field(default_factory=lambda: settings.TTS_FALLBACK_VOICE)
    custom_voices: List[Dict[str, str]] = field(default_factory=list)

    def set_voice_sample(self, url: Optional[str], name: Optional[str] = None):
        self.voice_sample_url = url
        self.voice_name = name or ("Custom Voice" if url else "Default Assistant")

    def add_custom_voice(self, name: str, url: str):
        self.custom_voices = [v for v in self.custom_voices if v.get("url") != url]
        self.custom_voices.append({"name": name, "url": url})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VoiceSettings":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


class VoiceSettingsStore:
    """Explicit load/save of VoiceSettings as a JSON file."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path or settings.VOICE_SETTINGS_PATH)

    def load(self) -> VoiceSettings:
        """Load settings; a missing or unreadable file yields defaults."""
        if not self.path.exists():
            return VoiceSettings()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return VoiceSettings.from_dict(data)
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Could not read voice settings from {self.path}: {e}")
            return VoiceSettings()

    def save(self, voice_settings: VoiceSettings):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(voice_settings.to_dict(), indent=2),
            encoding="utf-8"
        )
        logger.debug(f"Voice settings saved to {self.path}")


# =========================
# Synthesis
# =========================

class TTSService:
    """
    Speech synthesis.

    Tries the remote synthesis endpoint (TTS_API_URL) first; when it is not
    configured or fails, falls back to edge-tts with the settings' fallback
    voice.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, api_url: Optional[str] = None):
        self._api_url = api_url if api_url is not None else settings.TTS_API_URL
        self._client = client
        self._owns_client = client is None

    @property
    def remote_configured(self) -> bool:
        return bool(self._api_url)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(settings.TTS_TIMEOUT_SECONDS)
            )
        return self._client

    async def synthesize(
        self,
        text: str,
        voice_settings: Optional[VoiceSettings] = None
    ) -> TTSResult:
        """
        Synthesize speech from text.

        Args:
            text: Text to speak (already cleaned of markdown)
            voice_settings: Voice to use

        Returns:
            TTSResult with encoded audio

        Raises:
            TTSException: both the remote endpoint and the fallback failed
        """
        if not text.strip():
            raise TTSException("Nothing to synthesize")

        voice_settings = voice_settings or VoiceSettings()
        start_time = time.time()

        if self.remote_configured:
            try:
                result = await self._remote_synthesize(text, voice_settings)
                result.processing_time_ms = (time.time() - start_time) * 1000
                return result
            except TTSException as e:
                logger.warning(f"Remote TTS failed, falling back to edge-tts: {e.message}")

        result = await self._edge_tts_synthesize(text, voice_settings.fallback_voice)
        result.processing_time_ms = (time.time() - start_time) * 1000
        return result

    async def _remote_synthesize(self, text: str, voice_settings: VoiceSettings) -> TTSResult:
        headers = {}
        if settings.TTS_API_KEY:
            headers["Authorization"] = f"Bearer {settings.TTS_API_KEY}"

        payload = {
            "text": text,
            "voiceSampleUrl": voice_settings.voice_sample_url,
            "language": voice_settings.language,
        }

        try:
            response = await self._get_client().post(self._api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise TTSException(f"TTS request failed: {e}")

        if response.status_code != 200:
            try:
                error = response.json().get("error")
            except ValueError:
                error = None
            raise TTSException(
                error or f"TTS failed: {response.status_code}",
                details={"status_code": response.status_code}
            )

        if not response.content:
            raise TTSException("TTS returned no audio")

        return TTSResult(
            audio_data=response.content,
            mime_type=response.headers.get("content-type", "audio/mpeg"),
            provider="remote"
        )

    async def _edge_tts_synthesize(self, text: str, voice: str) -> TTSResult:
        """Fallback synthesis using edge-tts."""
        import edge_tts

        try:
            communicate = edge_tts.Communicate(text, voice)
            audio_data = b""
            async for chunk in communicate.stream():
                if chunk["type"] == "audio":
                    audio_data += chunk["data"]
        except Exception as e:
            logger.error(f"edge-tts error: {e}")
            raise TTSException(f"Fallback synthesis failed: {e}")

        if not audio_data:
            raise TTSException("Fallback synthesis returned no audio")

        return TTSResult(audio_data=audio_data, mime_type="audio/mpeg", provider="edge-tts")

    async def cleanup(self):
        """Cleanup resources."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
        logger.info("TTS service cleaned up")


# =========================
# Playback
# =========================

class AudioSink(ABC):
    """Destination that plays synthesized audio."""

    @abstractmethod
    async def play(self, audio: TTSResult):
        """Play audio and return when playback has finished."""

    @abstractmethod
    async def stop(self):
        """Stop the current playback immediately."""


class SpeechPlayer:
    """
    Speaks one utterance at a time.

    Starting a new utterance cancels in-flight synthesis and stops the audio
    currently playing.
    """

    def __init__(self, tts: TTSService, sink: AudioSink, voice_settings: Optional[VoiceSettings] = None):
        self.tts = tts
        self.sink = sink
        self.voice_settings = voice_settings or VoiceSettings()
        self._task: Optional[asyncio.Task] = None
        self._playing: Optional[asyncio.Task] = None

    @property
    def is_speaking(self) -> bool:
        return self._task is not None and not self._task.done()

    async def speak(self, text: str):
        """
        Synthesize and play text. Returns when playback ends or the
        utterance is superseded by another speak() or stop().
        """
        if not text.strip():
            return

        await self.stop()

        task = asyncio.create_task(self._run(text))
        self._task = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if self._task is task:
                self._task = None

        if task.cancelled():
            logger.debug("Utterance superseded")
            return
        task.result()

    async def stop(self):
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
        if self._playing is not None:
            self._playing = None
            await self.sink.stop()

    async def _run(self, text: str):
        audio = await self.tts.synthesize(text, self.voice_settings)
        self._playing = asyncio.current_task()
        try:
            await self.sink.play(audio)
        finally:
            if self._playing is asyncio.current_task():
                self._playing = None
