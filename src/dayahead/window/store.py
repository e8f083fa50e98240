"""Rolling {previous, current, next} window of day objects.

State machine
-------------
    NO_DATA ──ingest(today)──▶ CURRENT_ONLY ──ingest(tomorrow)──▶ CURRENT_AND_NEXT
                                     ▲                                  │
                                     └──────── rollover (date +1) ◀─────┘

The rollover check runs on every accessor call. When the wall-clock date
has moved past the day tagged current, slots shift once per elapsed day
(``previous ← current``, ``current ← next``, ``next ← absent``) and a
``dayRollover`` event is emitted. Nothing is discarded except the old
``previous`` slot, which the shift overwrites.

Missing data is always ``None``. The only error raised is
``IndexOutOfRange`` from ``get_hourly_data``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, timedelta

from dayahead.core.exceptions import IndexOutOfRange
from dayahead.core.models import (
    DailySummary,
    PriceDayObject,
    PriceEntry,
    WindowSlot,
    WindowState,
)
from dayahead.window.events import EventChannel, WindowEvent, WindowEventType

logger = logging.getLogger(__name__)

_OFFSET_TO_SLOT = {
    -1: WindowSlot.PREVIOUS,
    0: WindowSlot.CURRENT,
    1: WindowSlot.NEXT,
}


class DayWindowStore:
    """In-process owner of the three window slots.

    Parameters
    ----------
    today : Callable[[], date]
        Wall-clock "today" in the market's timezone.
    events : EventChannel | None
        Channel for ``newPrices`` / ``dayRollover``. A private one is created
        if None.
    """

    def __init__(
        self,
        today: Callable[[], date],
        events: EventChannel | None = None,
    ) -> None:
        self._today = today
        self.events = events or EventChannel()
        self._slots: dict[WindowSlot, PriceDayObject | None] = {
            slot: None for slot in WindowSlot
        }
        self._current_date: date | None = None
        self._new_data = False

    # --- Transitions ---

    def check_rollover(self) -> bool:
        """Shift slots if the calendar has advanced. Returns True on rollover."""
        today = self._today()
        if self._current_date is None:
            self._current_date = today
            return False
        if today <= self._current_date:
            return False

        previous = self._current_date
        elapsed = (today - previous).days
        for _ in range(min(elapsed, len(WindowSlot))):
            self._slots[WindowSlot.PREVIOUS] = self._slots[WindowSlot.CURRENT]
            self._slots[WindowSlot.CURRENT] = self._slots[WindowSlot.NEXT]
            self._slots[WindowSlot.NEXT] = None
        self._current_date = today

        logger.info("Day rollover: %s -> %s", previous, today)
        self.events.emit(
            WindowEvent(
                type=WindowEventType.DAY_ROLLOVER,
                price_date=today,
                previous_date=previous,
                details={"elapsed_days": elapsed, "state": str(self._state())},
            )
        )
        return True

    def ingest(self, day: PriceDayObject) -> WindowSlot | None:
        """Place ``day`` in the slot matching its date relative to today.

        Days outside yesterday..tomorrow are ignored and return None.
        Re-ingesting an identical object does not emit ``newPrices``.
        """
        self.check_rollover()
        assert self._current_date is not None
        offset = (day.price_date - self._current_date).days
        slot = _OFFSET_TO_SLOT.get(offset)
        if slot is None:
            logger.debug(
                "Ignoring %s: outside window around %s", day.price_date, self._current_date
            )
            return None
        if self._slots[slot] == day:
            return slot

        self._slots[slot] = day
        self._new_data = True
        logger.debug("Ingested %s into %s slot", day.price_date, slot)
        self.events.emit(
            WindowEvent(
                type=WindowEventType.NEW_PRICES,
                price_date=day.price_date,
                slot=str(slot),
            )
        )
        return slot

    # --- Accessors ---

    @property
    def state(self) -> WindowState:
        self.check_rollover()
        return self._state()

    def _state(self) -> WindowState:
        if self._slots[WindowSlot.CURRENT] is None:
            return WindowState.NO_DATA
        if self._slots[WindowSlot.NEXT] is None:
            return WindowState.CURRENT_ONLY
        return WindowState.CURRENT_AND_NEXT

    @property
    def current_date(self) -> date:
        self.check_rollover()
        assert self._current_date is not None
        return self._current_date

    def get_slot(self, slot: WindowSlot | str) -> PriceDayObject | None:
        self.check_rollover()
        return self._slots[WindowSlot(slot)]

    def get_previous_day_object(self) -> PriceDayObject | None:
        return self.get_slot(WindowSlot.PREVIOUS)

    def get_current_day_object(self) -> PriceDayObject | None:
        return self.get_slot(WindowSlot.CURRENT)

    def get_next_day_object(self) -> PriceDayObject | None:
        return self.get_slot(WindowSlot.NEXT)

    def get_day_object(self, price_date: date) -> PriceDayObject | None:
        """The slot object whose price date is ``price_date``, if any."""
        self.check_rollover()
        for day in self._slots.values():
            if day is not None and day.price_date == price_date:
                return day
        return None

    def is_next_day_available(self) -> bool:
        return self.get_next_day_object() is not None

    def get_current_day_summary(self) -> DailySummary | None:
        current = self.get_current_day_object()
        return None if current is None else current.daily

    def get_hourly_data(
        self, index: int, target: WindowSlot | str = WindowSlot.CURRENT
    ) -> PriceEntry | None:
        """Entry ``index`` of the target slot's interval array.

        Returns None when the slot is empty.

        Raises:
            IndexOutOfRange: ``index`` is outside the slot's array.
        """
        slot = WindowSlot(target)
        day = self.get_slot(slot)
        if day is None:
            return None
        entries = day.entries
        if not 0 <= index < len(entries):
            raise IndexOutOfRange(
                f"Index {index} out of range for {slot} day ({len(entries)} entries)",
                context={"index": index, "length": len(entries), "slot": str(slot)},
            )
        return entries[index]

    def available_dates(self) -> dict[str, date | None]:
        today = self.current_date
        return {
            "yesterday": today - timedelta(days=1),
            "today": today,
            "tomorrow": today + timedelta(days=1) if self.is_next_day_available() else None,
        }

    def describe(self) -> dict[str, object]:
        """JSON-friendly view of the window for status endpoints."""
        today = self.current_date
        return {
            "state": str(self.state),
            "today": today.isoformat(),
            "slots": {
                str(slot): (day.price_date.isoformat() if day is not None else None)
                for slot, day in self._slots.items()
            },
        }

    # --- New-data flag ---

    @property
    def has_new_data(self) -> bool:
        return self._new_data

    def clear_new_data(self) -> None:
        self._new_data = False
