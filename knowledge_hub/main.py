"""Knowledge Hub API: documents, versions, search and grounded chat."""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from knowledge_hub.api import documents, qa, search
from knowledge_hub.api.health import check_all_dependencies, check_readiness
from knowledge_hub.core.config import settings
from knowledge_hub.core.dependencies import ServiceContainer
from knowledge_hub.services.sessions import RAGSessionManager

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


async def sweep_idle_sessions(sessions: RAGSessionManager, max_idle: timedelta, interval: float) -> None:
    """Close idle chat sessions until cancelled."""
    while True:
        await asyncio.sleep(interval)
        try:
            sessions.sweep_idle(max_idle)
        except Exception as e:
            logger.error(f"Idle session sweep failed: {str(e)}")


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the application around a service container.

    Args:
        services: Pre-wired container; built from settings when omitted.

    Returns:
        FastAPI application.
    """
    services = services if services is not None else ServiceContainer()
    config = services.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        await services.initialize()
        sweeper = None
        if config.chat_session_idle_seconds > 0:
            sweeper = asyncio.create_task(sweep_idle_sessions(
                services.sessions,
                timedelta(seconds=config.chat_session_idle_seconds),
                config.chat_sweep_interval_seconds,
            ))
        logger.info(f"{config.service_name} started")
        yield
        if sweeper is not None:
            sweeper.cancel()
            try:
                await sweeper
            except asyncio.CancelledError:
                pass
        await services.shutdown()
        logger.info(f"{config.service_name} stopped")

    app = FastAPI(title="Knowledge Hub", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(documents.router)
    app.include_router(qa.router)
    app.include_router(search.router)

    @app.get("/metrics")
    async def metrics() -> Response:
        """Prometheus metrics endpoint."""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/health")
    async def health() -> dict:
        """
        Health check endpoint with dependency verification.

        Returns:
            Health status with service dependencies.
        """
        result = await check_all_dependencies(services)
        return {"service": config.service_name, **result}

    @app.get("/ready")
    async def readiness() -> dict:
        """
        Readiness check endpoint.

        Returns:
            Readiness status.
        """
        result = await check_readiness(services)
        return {"service": config.service_name, **result}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.service_port)
