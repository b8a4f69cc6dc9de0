"""FastAPI Application Factory for the Broker Agent.

This module provides the FastAPI application factory and configuration
for the broker agent REST API.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from broker_config import BrokerConfig, load_config_from_yaml
from broker_core import BrokerAgent, create_store
from broker_runtime import CheckpointStore
from fastapi import FastAPI, Response  # type: ignore[import-not-found]
from fastapi.middleware.cors import CORSMiddleware  # type: ignore[import-not-found]
from prometheus_client import (  # type: ignore[import-not-found]
    CONTENT_TYPE_LATEST,
    generate_latest,
)

logger = logging.getLogger(__name__)


class AppState:
    """Application state container."""

    def __init__(self) -> None:
        """Initialize application state."""
        self.agent: Optional[BrokerAgent] = None
        self.store: Optional[CheckpointStore] = None
        self.config: Optional[BrokerConfig] = None


app_state = AppState()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan.

    Args:
        app: FastAPI application instance

    Yields:
        None during application lifetime
    """
    if app_state.store is None:
        app_state.store = CheckpointStore()

    yield

    if app_state.store is not None:
        evicted = app_state.store.cleanup_expired()
        logger.debug("Shutdown: evicted %d expired checkpoint(s)", evicted)
    app_state.agent = None
    app_state.store = None
    app_state.config = None


def create_app(
    config: Optional[BrokerConfig] = None,
    config_path: Optional[str] = None,
    cors_origins: Optional[list[str]] = None,
    agent: Optional[BrokerAgent] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Without a configuration the API still starts; thread endpoints answer
    503 until an agent is available.

    Args:
        config: Optional pre-loaded broker configuration
        config_path: Optional path to configuration file
        cors_origins: Optional list of allowed CORS origins
        agent: Optional pre-built agent (its config and store are adopted)

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Broker Agent",
        description="REST API for the financial broker agent",
        version="0.1.0",
        lifespan=lifespan,
    )

    if cors_origins is None:
        cors_origins = ["*"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if agent is not None:
        app_state.agent = agent
        app_state.config = agent.config
        app_state.store = agent.store
    else:
        if config is not None:
            app_state.config = config
        elif config_path is not None:
            app_state.config = load_config_from_yaml(config_path)

        if app_state.config is not None:
            if app_state.store is None:
                app_state.store = create_store(app_state.config)
            app_state.agent = BrokerAgent(app_state.config, app_state.store)
            logger.info("Broker agent configured with model %s", app_state.config.llm.model_name)
        else:
            logger.warning("No configuration provided; thread endpoints are disabled")

    _register_routes(app)

    return app


def _register_routes(app: FastAPI) -> None:
    """Register API routes.

    Args:
        app: FastAPI application instance
    """
    from .routes import router as threads_router

    app.include_router(threads_router)

    @app.get("/health")  # type: ignore[misc]
    async def health_check() -> dict[str, Any]:
        """Health check endpoint.

        Returns:
            Health status information
        """
        return {
            "status": "healthy",
            "version": "0.1.0",
            "agent_configured": app_state.agent is not None,
        }

    @app.get("/")  # type: ignore[misc]
    async def root() -> dict[str, Any]:
        """Root endpoint.

        Returns:
            Welcome message and API information
        """
        return {
            "message": "Welcome to the Broker Agent API",
            "version": "0.1.0",
            "docs_url": "/docs",
        }

    @app.get("/metrics")  # type: ignore[misc]
    async def metrics() -> Response:
        """Prometheus exposition of the process metrics."""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def get_app_state() -> AppState:
    """Get the application state.

    Returns:
        Current application state
    """
    return app_state
