"""Tests for the voice session coordinator and the transcribing recognizer."""

import asyncio

from nova.core.exceptions import STTException
from nova.core.voice import VoiceSessionCoordinator, VoiceState
from nova.services.stt import STTResult, TranscribingRecognizer


def make_coordinator(recognizer, scheduler):
    transcripts, errors = [], []
    coordinator = VoiceSessionCoordinator(
        recognizer,
        on_transcript=transcripts.append,
        on_error=errors.append,
        scheduler=scheduler
    )
    return coordinator, transcripts, errors


class TestVoiceSessionCoordinator:
    """Test VoiceSessionCoordinator transitions."""

    def test_start_and_final_result(self, recognizer, scheduler):
        coordinator, transcripts, _ = make_coordinator(recognizer, scheduler)

        coordinator.start()
        recognizer.emit_result("reset my", is_final=False)
        recognizer.emit_result("reset my password")

        assert coordinator.state == VoiceState.LISTENING
        assert recognizer.starts == 1
        assert transcripts == ["reset my password"]
        assert coordinator.transcript == "reset my password"

    def test_start_twice_is_noop(self, recognizer, scheduler):
        coordinator, _, _ = make_coordinator(recognizer, scheduler)
        coordinator.start()
        coordinator.start()
        assert recognizer.starts == 1

    def test_pause_resume_restarts_once_and_drops_stale_results(self, recognizer, scheduler):
        coordinator, transcripts, _ = make_coordinator(recognizer, scheduler)

        coordinator.start()
        coordinator.pause()
        assert coordinator.state == VoiceState.PAUSED
        assert recognizer.stops == 1
        # The engine's on_end after stop must not schedule a restart
        assert scheduler.pending == []

        recognizer.emit_result("assistant echo")
        assert transcripts == []

        coordinator.resume()
        assert coordinator.state == VoiceState.LISTENING
        assert recognizer.starts == 2

        coordinator.resume()
        assert recognizer.starts == 2

    def test_end_during_pause_then_resume_is_noop(self, recognizer, scheduler):
        coordinator, _, _ = make_coordinator(recognizer, scheduler)

        coordinator.start()
        coordinator.pause()
        coordinator.end()
        coordinator.resume()

        assert coordinator.state == VoiceState.IDLE
        assert recognizer.starts == 1
        assert scheduler.pending == []

    def test_pause_while_idle_is_noop(self, recognizer, scheduler):
        coordinator, _, _ = make_coordinator(recognizer, scheduler)
        coordinator.pause()
        assert coordinator.state == VoiceState.IDLE
        assert recognizer.stops == 0

    def test_results_after_end_are_dropped(self, recognizer, scheduler):
        coordinator, transcripts, _ = make_coordinator(recognizer, scheduler)
        coordinator.start()
        coordinator.end()
        recognizer.emit_result("late result")
        assert transcripts == []

    def test_engine_end_restarts_after_delay(self, recognizer, scheduler):
        coordinator, _, _ = make_coordinator(recognizer, scheduler)

        coordinator.start()
        recognizer.emit_end()
        assert len(scheduler.pending) == 1
        assert recognizer.starts == 1

        scheduler.fire_all()
        assert recognizer.starts == 2

    def test_single_pending_restart(self, recognizer, scheduler):
        coordinator, _, _ = make_coordinator(recognizer, scheduler)

        coordinator.start()
        recognizer.emit_error("network")
        recognizer.emit_end()
        assert len(scheduler.pending) == 1

        scheduler.fire_all()
        assert recognizer.starts == 2

    def test_restart_rechecks_state(self, recognizer, scheduler):
        coordinator, _, _ = make_coordinator(recognizer, scheduler)

        coordinator.start()
        recognizer.emit_end()
        handle = scheduler.handles[0]
        coordinator.end()

        assert handle.cancelled
        # Fired anyway, e.g. already queued on the loop
        handle.callback()
        assert recognizer.starts == 1

    def test_recoverable_error_keeps_session(self, recognizer, scheduler):
        coordinator, _, errors = make_coordinator(recognizer, scheduler)

        coordinator.start()
        recognizer.emit_error("no-speech")

        assert coordinator.state == VoiceState.LISTENING
        assert errors == []

    def test_fatal_error_goes_idle_and_reports(self, recognizer, scheduler):
        coordinator, _, errors = make_coordinator(recognizer, scheduler)

        coordinator.start()
        recognizer.emit_error("not-allowed")

        assert coordinator.state == VoiceState.IDLE
        assert scheduler.pending == []
        assert len(errors) == 1
        assert errors[0].code == "not-allowed"
        assert errors[0].recoverable is False


class FakeSTT:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def transcribe(self, audio_data, audio_format="webm", language_hint=None):
        self.calls.append(audio_data)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return STTResult(text=outcome, language=language_hint or "en")


class TestTranscribingRecognizer:
    """Test TranscribingRecognizer event reporting."""

    def run_engine(self, outcomes, feeds):
        events = []
        engine = TranscribingRecognizer(FakeSTT(outcomes))
        engine.bind(
            lambda text, is_final: events.append(("result", text, is_final)),
            lambda code: events.append(("error", code)),
            lambda: events.append(("end",))
        )

        async def scenario():
            engine.start()
            for audio in feeds:
                engine.feed(audio)
            for _ in range(10):
                await asyncio.sleep(0)
            return engine.running

        running = asyncio.run(scenario())
        return events, running, engine

    def test_transcripts_are_final_results(self):
        events, running, _ = self.run_engine(["reset my password", "thanks"], [b"a", b"b"])
        assert events == [
            ("result", "reset my password", True),
            ("result", "thanks", True),
        ]
        assert running is True

    def test_empty_transcript_is_no_speech(self):
        events, running, _ = self.run_engine([""], [b"a"])
        assert events == [("error", "no-speech"), ("end",)]
        assert running is False

    def test_stt_failure_is_network_error(self):
        events, running, _ = self.run_engine([STTException("down")], [b"a"])
        assert events == [("error", "network"), ("end",)]
        assert running is False

    def test_feed_while_stopped_is_discarded(self):
        engine = TranscribingRecognizer(FakeSTT([]))
        assert engine.feed(b"audio") is False
