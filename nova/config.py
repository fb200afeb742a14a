"""
Configuration management for the NOVA assistant backend.
Loads settings from environment variables with sensible defaults.
"""

from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # =========================
    # Application Settings
    # =========================
    APP_NAME: str = "NOVA Assistant"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    ENVIRONMENT: str = Field(default="development", description="Environment name")

    # =========================
    # Server Settings
    # =========================
    HOST: str = Field(default="0.0.0.0", description="Server host")
    PORT: int = Field(default=8000, description="Server port")

    # =========================
    # Database Settings
    # =========================
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./data/nova.db",
        description="Database connection URL"
    )
    DATABASE_ECHO: bool = Field(default=False, description="Echo SQL queries")

    # =========================
    # Embedding Provider
    # =========================
    EMBEDDING_API_URL: str = Field(
        default="https://api.openai.com/v1/embeddings",
        description="OpenAI-compatible embeddings endpoint"
    )
    EMBEDDING_API_KEY: Optional[str] = Field(default=None, description="Embedding API key")
    EMBEDDING_MODEL: str = Field(default="text-embedding-3-small", description="Embedding model")
    EMBEDDING_MAX_INPUT_CHARS: int = Field(default=8000, description="Input truncation before embedding")
    EMBEDDING_TIMEOUT_SECONDS: float = Field(default=30.0, description="Embedding request timeout")
    EMBEDDING_MAX_RETRIES: int = Field(default=2, description="Retries on 5xx/transport errors")
    EMBEDDING_RETRY_BACKOFF_SECONDS: float = Field(default=0.5, description="Base retry backoff")

    # =========================
    # Indexing Settings
    # =========================
    DOCUMENT_MAX_CONTENT_CHARS: int = Field(default=50000, description="Stored content cap")
    CONTENT_HASH_ALGORITHM: str = Field(
        default="polynomial",
        description="Deduplication fingerprint: 'polynomial' or 'sha256'"
    )

    # =========================
    # Search Settings
    # =========================
    SEARCH_DEFAULT_LIMIT: int = Field(default=10, description="Default result count")
    SEARCH_TIMEOUT_SECONDS: float = Field(default=30.0, description="Search timeout")

    # =========================
    # LLM / STT Settings (Groq)
    # =========================
    GROQ_API_KEY: Optional[str] = Field(default=None, description="Groq API key for chat and transcription")
    LLM_MODEL_ID: str = Field(
        default="llama-3.1-8b-instant",
        description="Groq chat model"
    )
    LLM_TIMEOUT_SECONDS: float = Field(default=30.0, description="LLM API timeout")
    STT_MODEL_ID: str = Field(default="whisper-large-v3-turbo", description="Groq transcription model")
    STT_TIMEOUT_SECONDS: float = Field(default=15.0, description="Transcription timeout")

    # =========================
    # Chat Stream Client
    # =========================
    CHAT_STREAM_URL: str = Field(
        default="http://localhost:8000/api/v1/chat/stream",
        description="Server-sent chat stream endpoint consumed by the orchestrator"
    )
    CHAT_STREAM_TIMEOUT_SECONDS: float = Field(default=60.0, description="Chat stream read timeout")

    # =========================
    # TTS Settings
    # =========================
    TTS_API_URL: Optional[str] = Field(default=None, description="Remote speech synthesis endpoint")
    TTS_API_KEY: Optional[str] = Field(default=None, description="Remote synthesis API key")
    TTS_TIMEOUT_SECONDS: float = Field(default=30.0, description="Synthesis request timeout")
    TTS_FALLBACK_VOICE: str = Field(default="en-US-JennyNeural", description="edge-tts fallback voice")
    TTS_PLAYBACK_TIMEOUT_SECONDS: float = Field(default=120.0, description="Max wait for playback end")
    VOICE_SETTINGS_PATH: Path = Field(
        default=Path("./data/voice_settings.json"),
        description="Persisted voice settings"
    )

    # =========================
    # Voice Session Settings
    # =========================
    VOICE_RESTART_DELAY_MS: int = Field(default=100, description="Recognizer auto-restart delay")
    VOICE_LANGUAGE: str = Field(default="en", description="Recognition language")

    # =========================
    # Session Settings
    # =========================
    CONTEXT_WINDOW_SIZE: int = Field(default=20, description="Messages sent to the LLM")
    SESSION_TIMEOUT_MINUTES: int = Field(default=30, description="Session idle timeout")
    MAX_SESSIONS: int = Field(default=100, description="Maximum concurrent sessions")

    # =========================
    # Logging Settings
    # =========================
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    AGENT_LOG_PATH: Path = Field(
        default=Path("./logs/agent_log.md"),
        description="Path to agent markdown log"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Messages shown to the user
WELCOME_MESSAGE = (
    "Hello! I'm NOVA, your universal AI assistant. I can help you search and find "
    "information from any connected data source. Go to Settings to connect your tools "
    "like Google Drive, Confluence, Jira, ServiceNow, and more. How can I help you today?"
)
CLEARED_MESSAGE = "Conversation cleared. How can I help you?"
APOLOGY_MESSAGE = (
    "I apologize, but I encountered an error processing your request. Please try again."
)

# Known connector identifiers
CONNECTOR_NAMES = {
    "file": "File Upload",
    "web": "Web Pages",
    "email": "Email",
    "servicenow": "ServiceNow",
    "confluence": "Confluence",
    "sharepoint": "SharePoint",
    "google-drive": "Google Drive",
    "jira": "Jira",
}

# Incident creation sub-flow steps
INCIDENT_FLOW_STEPS = [
    "description",
    "details",
    "urgency",
    "impact",
    "category",
    "confirm"
]
