"""Rollover publish controller keeping the retained topic set consistent.

Each cycle reads a snapshot of four days from the cache and plans an ordered
list of actions:

    tomorrow cached:   publish(today), publish(tomorrow), retract(yesterday)
    otherwise:         publish(yesterday), publish(today), retract(twoDaysAgo)

New retained state always goes out before old state is cleared, so a
subscriber reconnecting mid-cycle sees at least one day. A retraction is an
empty retained payload on the same topic, sent only while the stale day is
still cached.
On the first transport failure the cycle stops. Nothing is retracted after a
failed publish, and the next cycle replays the whole plan.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, timedelta
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

from dayahead.cache.coordinator import CacheCoordinator
from dayahead.core.config import PublishConfig
from dayahead.core.exceptions import TransportError

logger = logging.getLogger(__name__)

PUBLISH_QOS = 1
PUBLISH_RETAIN = True


@runtime_checkable
class PublishTransport(Protocol):
    """Retained-message transport (e.g. an MQTT client wrapper).

    Implementations raise ``TransportError`` when a publish is not acked.
    """

    async def publish(self, topic: str, payload: str, *, retain: bool, qos: int) -> None: ...


class ActionKind(StrEnum):
    PUBLISH = "publish"
    RETRACT = "retract"


@dataclass(frozen=True)
class PublishAction:
    kind: ActionKind
    price_date: date
    topic: str
    payload: str


@dataclass(frozen=True)
class WindowSnapshot:
    """Cached payloads around ``today``; None where a day is not cached."""

    today_date: date
    two_days_ago: Mapping[str, Any] | None = None
    yesterday: Mapping[str, Any] | None = None
    today: Mapping[str, Any] | None = None
    tomorrow: Mapping[str, Any] | None = None


async def snapshot_from_cache(coordinator: CacheCoordinator, today: date) -> WindowSnapshot:
    """Read the four publish-relevant days from the cache, not the window.

    The in-memory window is cold after a restart; the cache is not.
    """
    payloads = [
        await coordinator.get_price_payload(today + timedelta(days=offset))
        for offset in (-2, -1, 0, 1)
    ]
    return WindowSnapshot(today, *payloads)


class RolloverPublishController:
    """Plans and executes retained publishes for one cycle."""

    def __init__(self, transport: PublishTransport, config: PublishConfig) -> None:
        self._transport = transport
        self._prefix = config.topic_prefix

    def topic(self, price_date: date) -> str:
        return f"{self._prefix}/{price_date.isoformat()}"

    def plan(self, snapshot: WindowSnapshot) -> list[PublishAction]:
        """Ordered actions for ``snapshot``. Pure; touches no transport."""
        today = snapshot.today_date
        if snapshot.tomorrow is not None:
            publish = [(today, snapshot.today), (today + timedelta(days=1), snapshot.tomorrow)]
            retract = (today - timedelta(days=1), snapshot.yesterday)
        else:
            publish = [(today - timedelta(days=1), snapshot.yesterday), (today, snapshot.today)]
            retract = (today - timedelta(days=2), snapshot.two_days_ago)

        actions = [
            PublishAction(
                ActionKind.PUBLISH,
                day,
                self.topic(day),
                json.dumps(payload, indent=2),
            )
            for day, payload in publish
            if payload is not None
        ]
        stale_day, stale_payload = retract
        if stale_payload is not None:
            actions.append(
                PublishAction(ActionKind.RETRACT, stale_day, self.topic(stale_day), "")
            )
        return actions

    async def execute(self, snapshot: WindowSnapshot) -> list[PublishAction]:
        """Run the plan for ``snapshot``; returns the actions performed.

        Raises:
            TransportError: A publish failed. Later actions were not attempted.
        """
        completed: list[PublishAction] = []
        for action in self.plan(snapshot):
            try:
                await self._transport.publish(
                    action.topic, action.payload, retain=PUBLISH_RETAIN, qos=PUBLISH_QOS
                )
            except TransportError as e:
                logger.error("Publish cycle aborted at %s %s: %s", action.kind, action.topic, e)
                raise TransportError(
                    f"{action.kind} {action.topic} failed: {e}",
                    context={
                        "topic": action.topic,
                        "completed": [a.topic for a in completed],
                    },
                ) from e
            logger.info("%s %s", action.kind.capitalize(), action.topic)
            completed.append(action)
        return completed

    async def publish_from_cache(
        self, coordinator: CacheCoordinator, today: date
    ) -> list[PublishAction]:
        return await self.execute(await snapshot_from_cache(coordinator, today))
