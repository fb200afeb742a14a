"""Test doubles for provider and engine collaborators."""

from nova.core.voice import SpeechRecognizer


class FakeEmbedder:
    """Embedding service returning canned vectors by exact text."""

    def __init__(self, vectors=None, default=None, available=True):
        self.vectors = vectors or {}
        self.default = default
        self.available = available
        self.calls = []

    @property
    def is_available(self):
        return self.available

    async def embed(self, text):
        self.calls.append(text)
        return self.vectors.get(text, self.default)


class ManualScheduler:
    """call_later replacement fired explicitly by tests."""

    class Handle:
        def __init__(self, callback):
            self.callback = callback
            self.cancelled = False

        def cancel(self):
            self.cancelled = True

    def __init__(self):
        self.handles = []

    def __call__(self, delay, callback):
        handle = self.Handle(callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self):
        return [h for h in self.handles if not h.cancelled]

    def fire_all(self):
        handles, self.handles = self.pending, []
        for handle in handles:
            handle.callback()


class FakeRecognizer(SpeechRecognizer):
    """Recognizer whose events are emitted by the test."""

    def __init__(self):
        super().__init__()
        self.running = False
        self.starts = 0
        self.stops = 0

    def start(self):
        self.running = True
        self.starts += 1

    def stop(self):
        self.stops += 1
        if self.running:
            self.running = False
            self.on_end()

    def emit_result(self, text, is_final=True):
        self.on_result(text, is_final)

    def emit_error(self, code):
        self.running = False
        self.on_error(code)
        self.on_end()

    def emit_end(self):
        self.running = False
        self.on_end()
