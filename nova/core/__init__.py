"""Core module initialization."""

from nova.core.exceptions import (
    NovaException,
    ValidationException,
    ConflictException,
    ProviderException,
    StorageException,
    RecognitionException,
    SessionException
)
from nova.core.session import SessionManager, Session, Conversation
from nova.core.voice import VoiceSessionCoordinator, VoiceState

__all__ = [
    "NovaException",
    "ValidationException",
    "ConflictException",
    "ProviderException",
    "StorageException",
    "RecognitionException",
    "SessionException",
    "SessionManager",
    "Session",
    "Conversation",
    "VoiceSessionCoordinator",
    "VoiceState"
]
