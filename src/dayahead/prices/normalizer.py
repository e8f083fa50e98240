"""Interval normalizer — reconciles hourly and quarter-hourly upstream series.

Upstream markets disagree on resolution: some publish 24 hourly points per
day, others 96 quarter-hour points. ``normalize`` turns whatever arrived
into a sorted series at the caller's target resolution:

    raw points → filter/sort → detect_interval → aggregate | expand | as-is

The normalizer is pure and never raises. Points with unparsable timestamps,
non-numeric or non-finite values, or ``start >= end`` are dropped silently;
callers that want to log the loss run ``clean_points`` first and count.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from dayahead.core.models import PricePoint, PriceResolution

_QUARTER = timedelta(minutes=15)

# Above this many points a day is assumed to be quarter-hourly
_QUARTER_HOUR_COUNT_THRESHOLD = 48


def normalize(
    points: Iterable[Mapping[str, Any] | PricePoint],
    target_interval: PriceResolution | str,
) -> list[PricePoint]:
    """Normalize raw points to ``target_interval``.

    Deterministic and idempotent: a series already at the target resolution
    comes back filtered and sorted but otherwise unchanged.
    """
    target = PriceResolution(target_interval)
    series = clean_points(points)
    if not series:
        return []

    source = detect_interval(series)
    if source == target:
        return series
    if target is PriceResolution.HOURLY:
        return aggregate_to_hourly(series)
    return expand_to_quarter_hour(series)


def detect_interval(points: list[PricePoint]) -> PriceResolution:
    """Infer the resolution of a sorted series.

    Uses the gap between the first two starts (rounded to minutes). When
    there are fewer than two points, or the gap is neither 15 nor 60
    minutes, falls back to counting: more than 48 points means 15m.
    """
    if len(points) >= 2:
        gap = _round_half_up((points[1].start - points[0].start).total_seconds() / 60)
        if gap == 15:
            return PriceResolution.QUARTER_HOUR
        if gap == 60:
            return PriceResolution.HOURLY
    if len(points) > _QUARTER_HOUR_COUNT_THRESHOLD:
        return PriceResolution.QUARTER_HOUR
    return PriceResolution.HOURLY


def aggregate_to_hourly(points: list[PricePoint]) -> list[PricePoint]:
    """Average quarter-hour points into hourly buckets.

    Buckets are keyed by the start truncated to the hour. A bucket spans from
    its earliest contributing start to its latest contributing end and takes
    the first non-empty currency.
    """
    buckets: dict[datetime, dict[str, Any]] = {}
    for point in points:
        hour = point.start.replace(minute=0, second=0, microsecond=0)
        bucket = buckets.get(hour)
        if bucket is None:
            bucket = buckets[hour] = {
                "start": point.start,
                "end": point.end,
                "values": [],
                "currency": point.currency,
            }
        bucket["values"].append(point.value)
        if point.start < bucket["start"]:
            bucket["start"] = point.start
        if point.end > bucket["end"]:
            bucket["end"] = point.end
        if not bucket["currency"]:
            bucket["currency"] = point.currency

    hourly = [
        PricePoint(
            start=b["start"],
            end=b["end"],
            value=sum(b["values"]) / len(b["values"]),
            currency=b["currency"],
        )
        for b in buckets.values()
    ]
    return sorted(hourly, key=lambda p: p.start)


def expand_to_quarter_hour(points: list[PricePoint]) -> list[PricePoint]:
    """Split each point into consecutive 15-minute slices.

    A point of ``d`` minutes becomes ``max(1, round(d / 15))`` slices, each
    carrying ``value / slices`` and starting at the original start.
    """
    expanded: list[PricePoint] = []
    for point in points:
        slices = max(1, _round_half_up(point.duration_minutes / 15))
        slice_value = point.value / slices
        for index in range(slices):
            slice_start = point.start + index * _QUARTER
            expanded.append(
                PricePoint(
                    start=slice_start,
                    end=slice_start + _QUARTER,
                    value=slice_value,
                    currency=point.currency,
                )
            )
    return sorted(expanded, key=lambda p: p.start)


def clean_points(points: Iterable[Mapping[str, Any] | PricePoint]) -> list[PricePoint]:
    """Drop malformed points and sort the rest by start."""
    valid: list[PricePoint] = []
    for raw in points:
        point = _coerce(raw)
        if point is not None:
            valid.append(point)
    # naive and aware starts cannot be ordered together; aware wins
    if any(p.start.tzinfo is not None for p in valid):
        valid = [p for p in valid if p.start.tzinfo is not None]
    return sorted(valid, key=lambda p: p.start)


def _coerce(raw: Mapping[str, Any] | PricePoint) -> PricePoint | None:
    if isinstance(raw, PricePoint):
        return raw
    if not isinstance(raw, Mapping):
        return None
    value = raw.get("value")
    # bool is an int subclass; a flag is not a price
    if isinstance(value, bool):
        return None
    try:
        point = PricePoint.model_validate(dict(raw))
    except (PydanticValidationError, TypeError, ValueError, OverflowError):
        return None
    return point


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))
