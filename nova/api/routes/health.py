"""
Health Check Endpoints.
System health and readiness checks.
"""

from datetime import datetime
from fastapi import APIRouter, Request

from nova.config import get_settings
from nova.db.database import is_initialized

router = APIRouter()
settings = get_settings()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": settings.APP_VERSION
    }


@router.get("/health/ready")
async def readiness_check(request: Request):
    """
    Readiness check. The database and tool registry are required; the
    providers are reported but optional because every one of them has a
    degraded path.
    """
    state = request.app.state

    checks = {
        "database": is_initialized(),
        "tool_registry": hasattr(state, "tool_registry") and bool(state.tool_registry.get_tool_schemas()),
    }
    providers = {
        "embedding": hasattr(state, "embedding_service") and state.embedding_service.is_available,
        "llm": hasattr(state, "llm_service") and state.llm_service.is_available,
        "stt": hasattr(state, "stt_service") and state.stt_service.is_available,
        "tts_remote": hasattr(state, "tts_service") and state.tts_service.remote_configured,
    }

    all_ready = all(checks.values())

    return {
        "status": "ready" if all_ready else "not_ready",
        "checks": checks,
        "providers": providers,
        "timestamp": datetime.utcnow().isoformat()
    }


@router.get("/health/live")
async def liveness_check():
    """
    Liveness check - just verifies the server is responding.
    """
    return {
        "status": "alive",
        "timestamp": datetime.utcnow().isoformat()
    }


@router.get("/health/metrics")
async def metrics(request: Request):
    """Basic system metrics."""
    state = request.app.state
    metrics_data = {
        "timestamp": datetime.utcnow().isoformat(),
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT
    }

    if hasattr(state, "session_manager"):
        metrics_data["active_sessions"] = await state.session_manager.get_active_session_count()
    if hasattr(state, "document_repository") and is_initialized():
        metrics_data["documents"] = await state.document_repository.count()

    return metrics_data
