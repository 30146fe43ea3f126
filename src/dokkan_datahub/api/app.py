"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dokkan_datahub.api.deps import AppState
from dokkan_datahub.api.routes import router
from dokkan_datahub.core.config import HubConfig, load_config
from dokkan_datahub.core.exceptions import (
    CacheIOError,
    ConfigurationError,
    DataHubError,
    SourceExhaustedError,
)
from dokkan_datahub.hub import DataHub, build_hub


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle."""
    hub = app.state._pending_hub
    owns_hub = hub is None
    if hub is None:
        config = app.state._pending_config or load_config()
        hub = await build_hub(config)

    app.state.app_state = AppState(config=hub.config, hub=hub, owns_hub=owns_hub)

    yield

    if owns_hub:
        await hub.close()


def create_app(config: HubConfig | None = None, hub: DataHub | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    A prebuilt `hub` is used as-is and left open on shutdown; otherwise one is
    built from `config` (or `load_config()`) and closed on shutdown.
    """
    import dokkan_datahub

    app = FastAPI(
        title="Dokkan DataHub API",
        description="Aggregated Dokkan Battle game data from multiple sources",
        version=dokkan_datahub.__version__,
        lifespan=lifespan,
    )

    # Stash config/hub so lifespan can retrieve them
    app.state._pending_config = config
    app.state._pending_hub = hub

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    # Exception handlers
    @app.exception_handler(DataHubError)
    async def datahub_exception_handler(request: Request, exc: DataHubError):
        status_map = {
            ConfigurationError: 404,
            SourceExhaustedError: 502,
            CacheIOError: 500,
        }
        status = status_map.get(type(exc), 500)
        return JSONResponse(
            status_code=status,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    return app
