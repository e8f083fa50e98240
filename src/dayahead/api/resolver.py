"""Path-shaped read queries against cached day objects.

Grammar::

    path    := segment ('/' segment)*
    segment := digits   -> index into a list (out of range is not found)
             | other    -> key lookup on a mapping (absent key is not found)

Routes under ``{date}``, most specific first:

    daily               the daily summary block
    daily/{field}       one field of it
    {hour}              hourly[hour], hour in 0..23
    {hour}/{field}      one field of that hourly entry
    <any path>          generic resolution
    (empty)             the whole day object

The day object comes from the live window slot when present, else from the
cache, and is never reassembled.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from datetime import date
from typing import Any
from dayahead.cache.coordinator import CacheCoordinator
from dayahead.core.exceptions import (
    DayAheadError,
    NotFound,
    ServiceUnavailable,
    ValidationError,
)
from dayahead.window.store import DayWindowStore

logger = logging.getLogger(__name__)

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_INDEX_RE = re.compile(r"^[0-9]+$")

_MISSING = object()


def split_path(path: str) -> list[str]:
    """Split ``path`` into segments, ignoring empty ones.

    Segments are taken literally; the web framework has already decoded them.
    """
    return [part for part in path.split("/") if part]


def resolve_path(root: Any, segments: Sequence[str]) -> Any:
    """Walk ``root`` along ``segments``.

    Raises:
        NotFound: A segment did not resolve. The message echoes the full
            requested sub-path.
    """
    current = root
    for segment in segments:
        current = _step(current, segment)
        if current is _MISSING:
            path = "/" + "/".join(segments)
            raise NotFound(f"Path not found: {path}", context={"path": path})
    return current


def _step(node: Any, segment: str) -> Any:
    if isinstance(node, list) and _INDEX_RE.match(segment):
        index = int(segment)
        return node[index] if index < len(node) else _MISSING
    if isinstance(node, Mapping):
        return node.get(segment, _MISSING)
    return _MISSING


def _upstream_status(exc: Exception) -> int:
    """HTTP status carried by ``exc``, or 500 when none is known."""
    status = exc.context.get("status_code") if isinstance(exc, DayAheadError) else None
    if status is None:
        status = getattr(exc, "status_code", None)
    return status if isinstance(status, int) and 400 <= status < 600 else 500


def parse_date(raw: str) -> date:
    """Parse a ``YYYY-MM-DD`` request segment.

    Raises:
        ValidationError: Wrong shape or not a real calendar date.
    """
    if _DATE_RE.match(raw):
        try:
            return date.fromisoformat(raw)
        except ValueError:
            pass
    raise ValidationError(
        "Invalid date format. Expected YYYY-MM-DD.", context={"date": raw}
    )


def parse_hour(raw: str) -> int:
    hour = int(raw)
    if not 0 <= hour <= 23:
        raise ValidationError("Invalid hour. Must be 0-23.", context={"hour": raw})
    return hour


class PathQueryResolver:
    """Answers ``{date}[/path]`` queries from the window or the cache."""

    def __init__(self, window: DayWindowStore, coordinator: CacheCoordinator) -> None:
        self._window = window
        self._coordinator = coordinator

    async def resolve(self, date_segment: str, path: str = "") -> Any:
        """Resolve ``path`` inside the day object for ``date_segment``.

        Raises:
            ValidationError: Malformed date or hour.
            NotFound: No day object, or a segment did not resolve.
            ServiceUnavailable: Anything else went wrong underneath.
        """
        price_date = parse_date(date_segment)
        segments = split_path(path)
        try:
            payload = await self.load(price_date)
            return self._route(payload, segments)
        except (ValidationError, NotFound):
            raise
        except Exception as e:
            status = _upstream_status(e)
            logger.error("Read query %s/%s failed: %s", date_segment, path, e)
            raise ServiceUnavailable(
                str(e) or type(e).__name__,
                context={"date": date_segment, "path": path},
                status_code=status,
            ) from e

    async def load(self, price_date: date) -> dict[str, Any]:
        """The stored day object for ``price_date``, as-is.

        Raises:
            NotFound: Neither a live slot nor the cache holds the day.
        """
        live = self._window.get_day_object(price_date)
        if live is not None:
            return live.to_payload()
        cached = await self._coordinator.get_price_payload(price_date)
        if cached is None:
            raise NotFound(
                f"Price data not available for date: {price_date.isoformat()}",
                context={"date": price_date.isoformat()},
            )
        return cached

    def _route(self, payload: dict[str, Any], segments: list[str]) -> Any:
        if not segments:
            return payload
        head = segments[0]
        if head == "daily" and len(segments) <= 2:
            return resolve_path(payload, segments)
        if _INDEX_RE.match(head) and len(segments) <= 2:
            hour = parse_hour(head)
            return resolve_path(payload, ["hourly", str(hour), *segments[1:]])
        return resolve_path(payload, segments)
