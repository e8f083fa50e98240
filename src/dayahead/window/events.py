"""Explicit subscriber channel for day-window notifications."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum

logger = logging.getLogger(__name__)


class WindowEventType(StrEnum):
    NEW_PRICES = "newPrices"
    DAY_ROLLOVER = "dayRollover"


@dataclass(frozen=True)
class WindowEvent:
    """A notification emitted by the day window.

    For ``NEW_PRICES`` ``price_date`` is the ingested day and ``slot`` the
    slot it landed in. For ``DAY_ROLLOVER`` ``price_date`` is the new
    "today" and ``previous_date`` the day that was current before.
    """

    type: WindowEventType
    price_date: date
    slot: str | None = None
    previous_date: date | None = None
    details: dict = field(default_factory=dict)


Subscriber = Callable[[WindowEvent], None]


class EventChannel:
    """Ordered subscriber list owned by one publisher.

    Subscribers are called synchronously in registration order. A failing
    subscriber is logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            self.unsubscribe(callback)

        return unsubscribe

    def unsubscribe(self, callback: Subscriber) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def emit(self, event: WindowEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Subscriber %r failed on %s", callback, event.type)

    def __len__(self) -> int:
        return len(self._subscribers)
