"""
FastAPI application exposing the support chat API.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from support_chat.cache import Cache, RedisCache
from support_chat.claude_client import ClaudeChat, CompletionProvider
from support_chat.config import Settings, settings as default_settings
from support_chat.coordinator import SessionCoordinator
from support_chat.errors import ChatError
from support_chat.history import HistoryService
from support_chat.ledger import Ledger
from support_chat.models import ChatRequest, ChatResponse, HistoryPage

SERVICE_NAME = "Spur Chat Agent API"
VERSION = "1.0.0"

logging.basicConfig(
    level=default_settings.log_level.upper(),
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    ledger: Optional[Ledger] = None,
    cache: Optional[Cache] = None,
    provider: Optional[CompletionProvider] = None,
) -> FastAPI:
    """Build the application. Collaborators not passed in are created from
    settings when the app starts."""
    if settings is None:
        settings = default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Construct the ledger, cache and provider once per process."""
        app_ledger = ledger or Ledger(settings.database_path)
        await app_ledger.init()
        app_cache = cache or RedisCache.from_url(settings.redis_url)
        app_provider = provider or ClaudeChat(
            oauth_token=settings.claude_code_oauth_token,
            model=settings.claude_model,
        )

        app.state.coordinator = SessionCoordinator(app_ledger, app_cache, app_provider, settings)
        app.state.history = HistoryService(app_ledger, app_cache, settings)
        logger.info("Chat service ready (database=%s)", settings.database_path)
        try:
            yield
        finally:
            if cache is None:
                await app_cache.close()

    app = FastAPI(
        title=SERVICE_NAME,
        version=VERSION,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError):
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_body()))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid input", "details": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})

    @app.get("/")
    async def root():
        return {"status": "ok", "service": SERVICE_NAME}

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": "support-chat-service",
            "version": VERSION
        }

    @app.post("/chat/message", response_model=ChatResponse)
    async def post_message(
        body: ChatRequest,
        coordinator: SessionCoordinator = Depends(get_coordinator),
    ):
        """Run one turn and return the reply."""
        result = await coordinator.handle_turn(body.session_id, body.message)
        return ChatResponse(reply=result.reply, session_id=result.session_id)

    @app.get(
        "/chat/history/{session_id}",
        response_model=HistoryPage,
        response_model_exclude_none=True,
    )
    async def get_history(
        session_id: str,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
        history: HistoryService = Depends(get_history_service),
    ):
        """Newest-first page of a session's messages."""
        return await history.get_history(session_id, cursor=cursor, limit=limit)

    return app


def get_coordinator(request: Request) -> SessionCoordinator:
    return request.app.state.coordinator


def get_history_service(request: Request) -> HistoryService:
    return request.app.state.history


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=3000)
