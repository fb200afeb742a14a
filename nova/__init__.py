"""
NOVA Assistant
==============
A voice-enabled conversational assistant grounded in documents pulled in
from connected sources.

Features:
- Per-connector document indexing with content-hash deduplication
- Hybrid semantic + keyword search with graceful degradation
- Streaming chat with tool calling
- Hands-free voice sessions

Tech Stack:
- FastAPI (async backend)
- SQLAlchemy + aiosqlite (document store)
- Groq API (LLM, Whisper STT)
- Remote voice synthesis with edge-tts fallback (TTS)
"""

__version__ = "1.0.0"
