"""Tests for speech synthesis, voice settings and the speech player."""

import asyncio
import json

import httpx
import pytest

from nova.core.exceptions import TTSException
from nova.services.tts import (
    AudioSink,
    SpeechPlayer,
    TTSResult,
    TTSService,
    VoiceSettings,
    VoiceSettingsStore,
)

TTS_URL = "https://tts.test/synthesize"


class BlockingSink(AudioSink):
    """Sink whose playback lasts until finish() or stop()."""

    def __init__(self):
        self.played = []
        self.stops = 0
        self._done = None

    async def play(self, audio):
        self.played.append(audio.audio_data)
        self._done = asyncio.Event()
        await self._done.wait()

    async def stop(self):
        self.stops += 1
        if self._done:
            self._done.set()

    def finish(self):
        self._done.set()


class EchoTTS:
    async def synthesize(self, text, voice_settings=None):
        return TTSResult(audio_data=text.encode())


class FailingTTS:
    async def synthesize(self, text, voice_settings=None):
        raise TTSException("synthesis failed")


async def settle(rounds=5):
    for _ in range(rounds):
        await asyncio.sleep(0)


class TestSpeechPlayer:
    """Test SpeechPlayer single-utterance playback."""

    def test_new_utterance_supersedes_current(self):
        sink = BlockingSink()
        player = SpeechPlayer(EchoTTS(), sink)

        async def scenario():
            first = asyncio.create_task(player.speak("one"))
            await settle()
            assert sink.played == [b"one"]
            assert player.is_speaking

            second = asyncio.create_task(player.speak("two"))
            await settle()
            assert sink.stops == 1
            assert sink.played == [b"one", b"two"]

            assert await first is None
            assert not second.done()

            sink.finish()
            await second
            return player.is_speaking

        assert asyncio.run(scenario()) is False

    def test_stop_interrupts_playback(self):
        sink = BlockingSink()
        player = SpeechPlayer(EchoTTS(), sink)

        async def scenario():
            speaking = asyncio.create_task(player.speak("hello"))
            await settle()
            await player.stop()
            await speaking
            return player.is_speaking

        assert asyncio.run(scenario()) is False
        assert sink.stops == 1

    def test_blank_text_not_spoken(self):
        sink = BlockingSink()
        asyncio.run(SpeechPlayer(EchoTTS(), sink).speak("   "))
        assert sink.played == []

    def test_synthesis_failure_propagates(self):
        player = SpeechPlayer(FailingTTS(), BlockingSink())
        with pytest.raises(TTSException):
            asyncio.run(player.speak("hello"))


class TestTTSService:
    """Test TTSService remote synthesis and fallback."""

    def make_service(self, handler, api_url=TTS_URL):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        service = TTSService(client=client, api_url=api_url)
        fallback_calls = []

        async def fake_edge_tts(text, voice):
            fallback_calls.append((text, voice))
            return TTSResult(audio_data=b"edge", provider="edge-tts")

        service._edge_tts_synthesize = fake_edge_tts
        return service, fallback_calls

    def test_remote_synthesis(self):
        sent = []

        def handler(request):
            sent.append(json.loads(request.content))
            return httpx.Response(200, content=b"RIFF....", headers={"content-type": "audio/wav"})

        service, fallback_calls = self.make_service(handler)
        voice = VoiceSettings(voice_sample_url="https://voices.test/me.wav", language="en")

        result = asyncio.run(service.synthesize("Hello there", voice))

        assert result.provider == "remote"
        assert result.audio_data == b"RIFF...."
        assert result.mime_type == "audio/wav"
        assert sent == [{
            "text": "Hello there",
            "voiceSampleUrl": "https://voices.test/me.wav",
            "language": "en"
        }]
        assert fallback_calls == []

    def test_remote_failure_falls_back(self):
        def handler(request):
            return httpx.Response(500, json={"error": "model overloaded"})

        service, fallback_calls = self.make_service(handler)
        voice = VoiceSettings(fallback_voice="en-GB-SoniaNeural")

        result = asyncio.run(service.synthesize("Hello", voice))

        assert result.provider == "edge-tts"
        assert fallback_calls == [("Hello", "en-GB-SoniaNeural")]

    def test_unconfigured_remote_uses_fallback(self):
        def handler(request):
            raise AssertionError("remote endpoint must not be called")

        service, fallback_calls = self.make_service(handler, api_url="")
        assert service.remote_configured is False

        result = asyncio.run(service.synthesize("Hello"))
        assert result.audio_data == b"edge"
        assert len(fallback_calls) == 1

    def test_blank_text_rejected(self):
        service, _ = self.make_service(lambda request: httpx.Response(200))
        with pytest.raises(TTSException):
            asyncio.run(service.synthesize("  "))


class TestVoiceSettings:
    """Test VoiceSettings and VoiceSettingsStore."""

    def test_defaults(self):
        voice = VoiceSettings()
        assert voice.voice_name == "Default Assistant"
        assert voice.voice_sample_url is None
        assert voice.language == "en"

    def test_set_voice_sample_names(self):
        voice = VoiceSettings()
        voice.set_voice_sample("https://voices.test/a.wav")
        assert voice.voice_name == "Custom Voice"
        voice.set_voice_sample("https://voices.test/b.wav", "Narrator")
        assert voice.voice_name == "Narrator"
        voice.set_voice_sample(None)
        assert voice.voice_name == "Default Assistant"

    def test_custom_voices_deduplicated_by_url(self):
        voice = VoiceSettings()
        voice.add_custom_voice("First", "https://voices.test/a.wav")
        voice.add_custom_voice("Renamed", "https://voices.test/a.wav")
        assert voice.custom_voices == [{"name": "Renamed", "url": "https://voices.test/a.wav"}]

    def test_store_save_and_load(self, tmp_path):
        store = VoiceSettingsStore(tmp_path / "voice" / "settings.json")
        voice = VoiceSettings(language="hi")
        voice.set_voice_sample("https://voices.test/a.wav", "Narrator")

        store.save(voice)
        loaded = store.load()

        assert loaded == voice

    def test_store_missing_or_corrupt_file(self, tmp_path):
        path = tmp_path / "settings.json"
        store = VoiceSettingsStore(path)
        assert store.load() == VoiceSettings()

        path.write_text("{not json", encoding="utf-8")
        assert store.load() == VoiceSettings()

    def test_store_ignores_unknown_keys(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"voice_name": "Narrator", "volume": 3}), encoding="utf-8")
        assert VoiceSettingsStore(path).load().voice_name == "Narrator"
