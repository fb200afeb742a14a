"""
FastAPI Application Entry Point
===============================
Main application with lifecycle management, middleware, and route mounting.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nova.config import get_settings
from nova.core.exceptions import NovaException
from nova.core.session import SessionManager
from nova.api.routes import rag, documents, chat, voice, conversation, health
from nova.db.database import init_db, close_db
from nova.db.repositories import DocumentRepository, ConversationRepository
from nova.services.embedding import EmbeddingService
from nova.services.indexing import IndexingPipeline
from nova.services.search import SearchEngine
from nova.services.stt import STTService
from nova.services.tts import TTSService, VoiceSettingsStore
from nova.services.llm import LLMService, ChatService
from nova.logging.agent_logger import AgentLogger
from nova.tools.registry import ToolRegistry

logging.basicConfig(
    level=getattr(logging, get_settings().LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info("Starting NOVA Assistant")
    logger.info("=" * 60)

    # ==================
    # STARTUP
    # ==================

    Path("./logs").mkdir(parents=True, exist_ok=True)
    Path("./data").mkdir(parents=True, exist_ok=True)

    logger.info("Initializing agent logger...")
    app.state.agent_logger = AgentLogger(str(settings.AGENT_LOG_PATH))
    await app.state.agent_logger.initialize_log()
    await app.state.agent_logger.log_system_event("Application starting", {
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT
    })

    logger.info("Initializing database...")
    await init_db()

    app.state.session_manager = SessionManager()
    await app.state.session_manager.start()

    logger.info("Initializing document services...")
    app.state.document_repository = DocumentRepository()
    app.state.conversation_repository = ConversationRepository()
    app.state.embedding_service = EmbeddingService()
    if not app.state.embedding_service.is_available:
        logger.warning("EMBEDDING_API_KEY not set, search runs keyword-only")

    app.state.indexing_pipeline = IndexingPipeline(
        repository=app.state.document_repository,
        embedding_service=app.state.embedding_service,
        agent_logger=app.state.agent_logger
    )
    app.state.search_engine = SearchEngine(
        repository=app.state.document_repository,
        embedding_service=app.state.embedding_service,
        agent_logger=app.state.agent_logger
    )

    logger.info("Initializing LLM service...")
    app.state.llm_service = LLMService()
    await app.state.llm_service.initialize()

    logger.info("Initializing tool registry...")
    app.state.tool_registry = ToolRegistry(services={
        "search_engine": app.state.search_engine,
        "document_repository": app.state.document_repository
    })
    await app.state.tool_registry.initialize()

    app.state.chat_service = ChatService(app.state.llm_service, app.state.tool_registry)

    logger.info("Initializing speech services...")
    app.state.stt_service = STTService()
    await app.state.stt_service.initialize()
    app.state.tts_service = TTSService()
    app.state.voice_settings_store = VoiceSettingsStore()

    logger.info("=" * 60)
    logger.info("NOVA Assistant Ready!")
    logger.info(f"Server: http://{settings.HOST}:{settings.PORT}")
    logger.info(f"Docs: http://{settings.HOST}:{settings.PORT}/docs")
    logger.info("=" * 60)

    await app.state.agent_logger.log_system_event("Application started successfully", {
        "host": settings.HOST,
        "port": settings.PORT
    })

    yield

    # ==================
    # SHUTDOWN
    # ==================

    logger.info("Shutting down NOVA Assistant...")

    await app.state.agent_logger.log_system_event("Application shutting down", {})

    await app.state.session_manager.stop()
    await app.state.embedding_service.cleanup()
    await app.state.stt_service.cleanup()
    await app.state.tts_service.cleanup()
    await app.state.llm_service.cleanup()
    await app.state.agent_logger.close()

    await close_db()

    logger.info("Shutdown complete.")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
    ## NOVA Voice Assistant

    Conversational assistant grounded in documents from connected sources.

    ### Features:
    - Document indexing per connector with content-hash deduplication
    - Hybrid semantic + keyword search with keyword fallback
    - Streaming chat with tool calling
    - Hands-free voice sessions via WebSocket

    ### Pipeline:
    ```
    Connector docs → Sanitize → Hash → Embed → Store → Search → LLM (Groq) → TTS
    ```
    """,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

# ==================
# MIDDLEWARE
# ==================

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_timing_header(request: Request, call_next):
    """Add request timing information to response headers."""
    start_time = datetime.now()
    response = await call_next(request)
    process_time = (datetime.now() - start_time).total_seconds() * 1000
    response.headers["X-Process-Time-Ms"] = f"{process_time:.2f}"
    return response


# ==================
# EXCEPTION HANDLERS
# ==================

@app.exception_handler(NovaException)
async def nova_exception_handler(request: Request, exc: NovaException):
    """Handle NOVA exceptions."""
    logger.error(f"NovaException: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "details": str(exc) if settings.DEBUG else None
        }
    )


# ==================
# ROUTES
# ==================

app.include_router(health.router, tags=["Health"])
app.include_router(rag.router, prefix="/api/v1/rag", tags=["RAG"])
app.include_router(documents.router, prefix="/api/v1/documents", tags=["Documents"])
app.include_router(chat.router, prefix="/api/v1/chat", tags=["Chat"])
app.include_router(conversation.router, prefix="/api/v1/conversation", tags=["Conversation"])
app.include_router(voice.router, prefix="/api/v1/voice", tags=["Voice"])


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/docs",
        "health": "/health"
    }


if settings.DEBUG:
    @app.get("/debug/config")
    async def debug_config():
        """Debug endpoint to view configuration (DEBUG mode only)."""
        return {
            "environment": settings.ENVIRONMENT,
            "database_url": settings.DATABASE_URL,
            "embedding_model": settings.EMBEDDING_MODEL,
            "llm_model": settings.LLM_MODEL_ID,
            "stt_model": settings.STT_MODEL_ID,
            "tts_remote": bool(settings.TTS_API_URL)
        }
