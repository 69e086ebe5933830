"""FastAPI application factory for the local development backend.

Serves the same wire API as the hosted processing backend over in-memory
collaborators, so clients can be exercised end to end without cloud services.
"""

import logging

from fastapi import APIRouter, FastAPI

from duet import __version__
from duet.backend.memory import InMemoryIdeaLookup, InMemoryProcessingBackend, InMemoryUpdateChannel
from duet.config import settings
from duet.logging_config import configure_logging

logger = logging.getLogger(__name__)


def create_app(
    backend: InMemoryProcessingBackend | None = None,
    channel: InMemoryUpdateChannel | None = None,
    ideas: InMemoryIdeaLookup | None = None,
    *,
    configure_logs: bool = False,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    if configure_logs:
        configure_logging(log_level=settings.log_level, json_output=settings.json_logs)

    if channel is None:
        channel = backend.channel if backend is not None and backend.channel is not None else InMemoryUpdateChannel()
    if backend is None:
        backend = InMemoryProcessingBackend(channel)

    app = FastAPI(
        title="Duet processing dev server",
        version=__version__,
        description="In-memory stand-in for the video processing backend.",
    )
    app.state.backend = backend
    app.state.channel = channel
    app.state.ideas = ideas or InMemoryIdeaLookup()

    # Register error handlers
    from duet.errors.handlers import register_exception_handlers
    register_exception_handlers(app)

    # Stream route first so /processing/stream is not taken for a job id
    from duet.api.routes import health, processing, stream

    router = APIRouter()
    router.include_router(health.router, tags=["Health"])
    router.include_router(stream.router)
    router.include_router(processing.router)
    app.include_router(router)

    logger.info("Dev server app created (backend=%s)", backend.backend_type)
    return app


def create_dev_app() -> FastAPI:
    """Factory used by ``duet-dev-server``."""
    return create_app(configure_logs=True)
