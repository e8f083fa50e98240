"""Dependency injection for FastAPI routes."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from dayahead.api.resolver import PathQueryResolver
from dayahead.core.config import PricesConfig
from dayahead.service import PriceService


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan."""

    config: PricesConfig
    service: PriceService
    owns_service: bool = True


def get_service(request: Request) -> PriceService:
    """Dependency: retrieve the price service."""
    return request.app.state.app_state.service


def get_resolver(request: Request) -> PathQueryResolver:
    return request.app.state.app_state.service.resolver
