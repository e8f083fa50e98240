"""FastAPI route definitions for the read API."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from dayahead.api.deps import get_resolver, get_service
from dayahead.api.resolver import PathQueryResolver
from dayahead.api.schemas import PricesIndexResponse, WindowSlotsResponse
from dayahead.service import PriceService

router = APIRouter()


@router.get("/prices", response_model=PricesIndexResponse)
async def list_prices(service: PriceService = Depends(get_service)):
    """Available dates, window state and cached days."""
    window = service.window
    dates = window.available_dates()
    slots = {
        slot: (day.price_date if day is not None else None)
        for slot, day in (
            ("previous", window.get_previous_day_object()),
            ("current", window.get_current_day_object()),
            ("next", window.get_next_day_object()),
        )
    }
    return PricesIndexResponse(
        state=str(window.state),
        yesterday=dates["yesterday"],
        today=dates["today"],
        tomorrow=dates["tomorrow"],
        slots=WindowSlotsResponse(**slots),
        cached_dates=await service.coordinator.cached_dates(),
    )


@router.get("/prices/{price_date}")
async def get_day(
    price_date: str,
    resolver: PathQueryResolver = Depends(get_resolver),
) -> Any:
    """The whole cached day object, exactly as stored."""
    return await resolver.resolve(price_date)


@router.get("/prices/{price_date}/{path:path}")
async def get_day_path(
    price_date: str,
    path: str,
    resolver: PathQueryResolver = Depends(get_resolver),
) -> Any:
    """A value inside the day object: daily, an hour, or any sub-path."""
    return await resolver.resolve(price_date, path)
