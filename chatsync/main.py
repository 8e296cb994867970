"""
FastAPI application factory and configuration.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chatsync.core.config import get_settings
from chatsync.core.database import init_db
from chatsync.core.errors import ChatSyncError
from chatsync.core.logging import setup_logging, get_logger
from chatsync.core.metrics import set_startup_time
from chatsync.api import contacts, conversations, health, messages, metrics, realtime, webhook
from chatsync.api.deps import get_messaging_service
from chatsync.api.metrics import MetricsMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger = get_logger(__name__)
    logger.info("Starting application...")

    # Initialize database
    init_db()
    logger.info("Database initialized")

    # Record startup time for metrics
    set_startup_time()

    yield

    # Shutdown
    logger.info("Shutting down application...")
    if get_messaging_service.cache_info().currsize:
        get_messaging_service().close()


async def handle_chatsync_error(request: Request, exc: ChatSyncError) -> JSONResponse:
    """Render core errors as {"detail": ...} with the error's status."""
    logger = get_logger(__name__)
    if exc.status_code >= 500:
        logger.error(f"Request failed: {exc.detail}")
    else:
        logger.info(
            "Request rejected",
            extra={"extra_data": {"error": type(exc).__name__, "detail": exc.detail}}
        )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # Setup logging
    setup_logging(settings)
    logger = get_logger(__name__)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Conversation and messaging synchronization service with SMS fallback",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add metrics middleware
    app.add_middleware(MetricsMiddleware)

    app.add_exception_handler(ChatSyncError, handle_chatsync_error)

    # Include routers
    app.include_router(messages.router)
    app.include_router(conversations.router)
    app.include_router(contacts.router)
    app.include_router(webhook.router)
    app.include_router(realtime.router)
    app.include_router(health.router)
    app.include_router(metrics.router)

    logger.info(
        "Application created",
        extra={
            "extra_data": {
                "app_name": settings.app_name,
                "version": settings.app_version,
                "debug": settings.debug,
            }
        }
    )

    return app


# Create the application instance
app = create_app()

