"""Watch events and the in-process bus that fans them out to controllers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Dict, List, Optional

from ..model.resources import Resource, ResourceKey

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass(frozen=True)
class WatchEvent:
    type: EventType
    resource: Resource
    old: Optional[Resource] = None

    @property
    def key(self) -> ResourceKey:
        return self.resource.key


class Subscription:
    """Queue of events for one kind; iterate it with ``async for``."""

    def __init__(self, bus: "EventBus", kind: str) -> None:
        self.kind = kind
        self._bus = bus
        self._queue: asyncio.Queue = asyncio.Queue()
        self._busy = False

    def deliver(self, event: WatchEvent) -> None:
        self._queue.put_nowait(event)

    @property
    def is_drained(self) -> bool:
        """True when no event is queued and the last one handed out was processed."""
        return self._queue.empty() and not self._busy

    def close(self) -> None:
        self._bus.unsubscribe(self)

    def __aiter__(self) -> AsyncIterator[WatchEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[WatchEvent]:
        try:
            while True:
                event = await self._queue.get()
                self._busy = True
                try:
                    yield event
                finally:
                    self._busy = False
        finally:
            self.close()


class EventBus:
    """Simple in-process pub/sub for resource watch events."""

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Subscription]] = {}

    def subscribe(self, kind: str) -> Subscription:
        subscription = Subscription(self, kind)
        self._subscribers.setdefault(kind, []).append(subscription)
        logger.debug("New watch on %s (%d watchers)", kind, len(self._subscribers[kind]))
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscribers = self._subscribers.get(subscription.kind, [])
        if subscription in subscribers:
            subscribers.remove(subscription)

    def publish(self, event: WatchEvent) -> None:
        for subscription in list(self._subscribers.get(event.resource.kind, [])):
            subscription.deliver(event)


__all__ = ["EventBus", "EventType", "Subscription", "WatchEvent"]
