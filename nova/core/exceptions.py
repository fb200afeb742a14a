"""
Core exceptions for the NOVA assistant.
Custom exception classes for structured error handling.
"""

from typing import Optional, Dict, Any


class NovaException(Exception):
    """Base exception for NOVA errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "NOVA_ERROR",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# =========================
# Validation Exceptions
# =========================

class ValidationException(NovaException):
    """Raised when a request is missing required fields."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            status_code=400,
            details=details
        )


# =========================
# Conflict Exceptions
# =========================

class ConflictException(NovaException):
    """Base exception for uniqueness violations."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="CONFLICT",
            status_code=409,
            details=details
        )


class DocumentConflictException(ConflictException):
    """Raised when identical content was already stored for the same source and owner."""

    def __init__(self, connector_id: str, content_hash: str, owner_user_id: Optional[str] = None):
        super().__init__(
            message=f"Document with hash '{content_hash}' already exists for connector '{connector_id}'",
            details={
                "connector_id": connector_id,
                "content_hash": content_hash,
                "owner_user_id": owner_user_id
            }
        )


# =========================
# Provider Exceptions
# =========================

class ProviderException(NovaException):
    """Base exception for remote provider failures (embedding, chat, speech)."""

    def __init__(
        self,
        message: str,
        error_code: str = "PROVIDER_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=502,
            details=details
        )


class LLMException(ProviderException):
    """Base exception for LLM errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, error_code="LLM_ERROR", details=details)


class LLMNotConfiguredException(LLMException):
    """Raised when no chat backend credentials are configured."""

    def __init__(self):
        super().__init__(
            message="Chat backend is not configured. Set GROQ_API_KEY.",
            details={"error_type": "not_configured"}
        )


class LLMAPIException(LLMException):
    """Raised when the Groq API returns an error."""

    def __init__(self, api_error: str, status_code: int = 500):
        super().__init__(
            message=f"LLM API error: {api_error}",
            details={"api_error": api_error, "api_status_code": status_code}
        )


class LLMTimeoutException(LLMException):
    """Raised when LLM processing times out."""

    def __init__(self, timeout_seconds: float):
        super().__init__(
            message=f"LLM processing timed out after {timeout_seconds} seconds",
            details={"timeout_seconds": timeout_seconds}
        )


class LLMRateLimitException(LLMException):
    """Raised when LLM API rate limit is exceeded."""

    def __init__(self, retry_after: Optional[float] = None):
        super().__init__(
            message="LLM API rate limit exceeded",
            details={"retry_after_seconds": retry_after}
        )


class ChatStreamException(ProviderException):
    """Raised when the chat stream endpoint fails or sends an error frame."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, error_code="CHAT_STREAM_ERROR", details=details)


class TTSException(ProviderException):
    """Raised when speech synthesis fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, error_code="TTS_ERROR", details=details)


class STTException(ProviderException):
    """Raised when transcription fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, error_code="STT_ERROR", details=details)


# =========================
# Storage Exceptions
# =========================

class StorageException(NovaException):
    """Raised when persistence fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="STORAGE_ERROR",
            status_code=500,
            details=details
        )


class RecordNotFoundException(StorageException):
    """Raised when a database record is not found."""

    def __init__(self, entity: str, identifier: str):
        super().__init__(
            message=f"{entity} with identifier '{identifier}' not found",
            details={"entity": entity, "identifier": identifier}
        )
        self.status_code = 404


# =========================
# Recognition Exceptions
# =========================

# Recognizer error codes that must not trigger an automatic restart
FATAL_RECOGNITION_ERRORS = frozenset({"not-allowed", "service-not-allowed", "aborted"})


class RecognitionException(NovaException):
    """Speech recognition engine error."""

    def __init__(self, code: str, message: Optional[str] = None):
        self.code = code
        self.recoverable = code not in FATAL_RECOGNITION_ERRORS
        super().__init__(
            message=message or f"Speech recognition error: {code}",
            error_code="RECOGNITION_ERROR",
            status_code=500,
            details={"code": code, "recoverable": self.recoverable}
        )


# =========================
# Tool Exceptions
# =========================

class ToolException(NovaException):
    """Base exception for tool execution errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="TOOL_ERROR",
            status_code=500,
            details=details
        )


class ToolNotFoundException(ToolException):
    """Raised when requested tool is not found."""

    def __init__(self, tool_name: str):
        super().__init__(
            message=f"Tool '{tool_name}' not found in registry",
            details={"tool_name": tool_name}
        )


class ToolExecutionException(ToolException):
    """Raised when tool execution fails."""

    def __init__(self, tool_name: str, error: str):
        super().__init__(
            message=f"Tool '{tool_name}' execution failed: {error}",
            details={"tool_name": tool_name, "error": error}
        )


class ToolValidationException(ToolException):
    """Raised when tool input validation fails."""

    def __init__(self, tool_name: str, validation_errors: list):
        super().__init__(
            message=f"Tool '{tool_name}' input validation failed",
            details={"tool_name": tool_name, "validation_errors": validation_errors}
        )


# =========================
# Session Exceptions
# =========================

class SessionException(NovaException):
    """Base exception for session errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="SESSION_ERROR",
            status_code=400,
            details=details
        )


class SessionNotFoundException(SessionException):
    """Raised when session is not found."""

    def __init__(self, session_id: str):
        super().__init__(
            message=f"Session '{session_id}' not found",
            details={"session_id": session_id}
        )
        self.status_code = 404
