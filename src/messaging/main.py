from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from shared.config import Settings, get_settings
from shared.exceptions import register_exception_handlers
from shared.health import router as health_router
from shared.http.middleware.request_id_middleware import RequestIdMiddleware
from shared.infrastructure.observability.logger import configure_logging, get_logger

from messaging.api import messaging_router
from messaging.bootstrap import Container, build_container

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[Container] = None,
    *,
    run_background: bool = True,
) -> FastAPI:
    """
    Application factory.

    `run_background=False` skips the sweep scheduler and the retry worker,
    which tests drive by hand.
    """
    settings = settings or get_settings()
    configure_logging(settings)
    container = container or build_container(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if run_background:
            container.sweeps.start()
            container.retry_worker.start()
        logger.info("Dispatch service started", environment=settings.environment, backend=settings.counter_backend)
        try:
            yield
        finally:
            if run_background:
                await container.retry_worker.shutdown()
                container.sweeps.shutdown()
            await container.close()
            logger.info("Dispatch service stopped")

    app = FastAPI(
        title="WhatsApp Dispatch Service API",
        version="1.0.0",
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.container = container

    app.add_middleware(RequestIdMiddleware)

    app.include_router(health_router)
    app.include_router(messaging_router)

    # Centralized error handling → {code, message, details?, correlation_id?}
    register_exception_handlers(app)

    @app.get("/", tags=["Root"])
    async def root():
        return {"message": "WhatsApp Dispatch Service API", "docs": "/docs", "health": "/_health/live"}

    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=8000, log_config=None)
