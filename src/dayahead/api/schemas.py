"""API-specific response schemas (Pydantic v2)."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    status: int
    error: str


class HealthResponse(BaseModel):
    status: str
    version: str


class WindowSlotsResponse(BaseModel):
    previous: date | None = None
    current: date | None = None
    next: date | None = None


class PricesIndexResponse(BaseModel):
    """Available dates, live window state and cached days."""

    state: str
    yesterday: date
    today: date
    tomorrow: date | None = None
    slots: WindowSlotsResponse
    cached_dates: list[date]
