"""Dependency injection for FastAPI routes."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from dokkan_datahub.aggregation.coordinator import UpdateCoordinator
from dokkan_datahub.core.config import HubConfig
from dokkan_datahub.hub import DataHub


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan."""

    config: HubConfig
    hub: DataHub
    owns_hub: bool = True


def get_app_state(request: Request) -> AppState:
    """Dependency: retrieve AppState from the request."""
    return request.app.state.app_state


def get_hub(request: Request) -> DataHub:
    return request.app.state.app_state.hub


def get_coordinator(request: Request) -> UpdateCoordinator:
    """Dependency: retrieve the update coordinator."""
    return request.app.state.app_state.hub.coordinator
