"""Services module initialization."""

from nova.services.embedding import EmbeddingService
from nova.services.indexing import IndexingPipeline
from nova.services.search import SearchEngine
from nova.services.stt import STTService
from nova.services.tts import TTSService
from nova.services.llm import LLMService, ChatService

__all__ = [
    "EmbeddingService",
    "IndexingPipeline",
    "SearchEngine",
    "STTService",
    "TTSService",
    "LLMService",
    "ChatService"
]
