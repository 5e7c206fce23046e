import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1 import auth, chat, chat_websocket, upload, users
from app.chat.registry import SessionRegistry
from app.core.config import settings
from app.core.database import SessionLocal, init_db
from app.core.exceptions import AuthError, ChatAppError, CooldownError, RateLimitError
from app.core.logging import configure_logging
from app.core.redis import get_redis_url, is_redis_available
from app.core.security import token_expiry
from app.data.feed import ChangeFeed, RedisChangeFeed
from app.data.sql import SqlDataAccess
from app.data.storage import LocalFileStorage
from app.middleware.logging import LoggingMiddleware


logger = logging.getLogger("app.main")


def _build_feed() -> ChangeFeed:
    if is_redis_available():
        return RedisChangeFeed(get_redis_url(), settings.REALTIME_CHANNEL)
    return ChangeFeed()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.AUTO_CREATE_TABLES:
        init_db()
    feed = app.state.feed
    if isinstance(feed, RedisChangeFeed):
        feed.start()
    try:
        yield
    finally:
        await app.state.registry.close_all()
        if isinstance(feed, RedisChangeFeed):
            await feed.stop()
        logger.info("Shutdown complete")


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"detail": str(exc)},
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(CooldownError)
    async def cooldown_error_handler(request: Request, exc: CooldownError):
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"detail": str(exc), "retry_after": round(exc.retry_after, 2)},
        )

    @app.exception_handler(RateLimitError)
    async def rate_limit_error_handler(request: Request, exc: RateLimitError):
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"detail": str(exc)},
        )

    @app.exception_handler(ChatAppError)
    async def chat_app_error_handler(request: Request, exc: ChatAppError):
        logger.warning("Request failed: path=%s, error=%s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": str(exc)},
        )


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="Chat Inbox",
        version="0.1.0",
        lifespan=lifespan,
    )

    feed = _build_feed()
    storage = LocalFileStorage(settings.UPLOAD_DIR, settings.UPLOAD_PUBLIC_URL)
    app.state.feed = feed
    app.state.storage = storage
    app.state.registry = SessionRegistry(
        lambda token: SqlDataAccess(SessionLocal, feed, storage, token),
        expiry_of=token_expiry,
    )

    # CORS middleware - must be added before other middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",
            "http://localhost:3000",
            "http://127.0.0.1:5173",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Middleware
    app.add_middleware(LoggingMiddleware)

    register_exception_handlers(app)

    # API routes
    prefix = settings.API_V1_PREFIX
    app.include_router(auth.router, prefix=prefix)
    app.include_router(users.router, prefix=prefix)
    app.include_router(chat.router, prefix=prefix)
    app.include_router(chat_websocket.router, prefix=prefix)
    app.include_router(upload.router, prefix=prefix)

    @app.get("/health", tags=["health"])
    async def health_check() -> dict:
        return {
            "status": "ok",
            "environment": settings.ENVIRONMENT,
            "sessions": len(app.state.registry),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import os
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
    )
