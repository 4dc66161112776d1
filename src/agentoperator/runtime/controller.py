"""
agentoperator.runtime.controller

Explicit controller registrations and the asyncio control loop that drives
them.

A :class:`Controller` owns one work queue of :class:`ResourceKey` values fed
by watch subscriptions on its primary kind and on any secondary kinds (through
a mapper). Workers pop keys and run, in order, the registered dependent
resources and the reconciler against the *current* stored primary. The loop
guarantees:

* a key is never reconciled concurrently with itself; events arriving while a
  key is in flight mark it dirty and it is queued again afterwards;
* duplicate queued keys coalesce;
* ``ReconcileResult.reschedule`` queues a delayed re-check;
* failures follow the registration's :class:`BackoffPolicy` and exhausted keys
  land in :attr:`Controller.failures` instead of crashing the process;
* a primary that no longer exists triggers ``Reconciler.cleanup``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Protocol,
    Set,
    Tuple,
    Type,
)

from ..exceptions import AgentOperatorError, ConfigError
from ..logging_config import reconcile_context
from ..model.resources import Resource, ResourceKey
from .events import EventType, Subscription, WatchEvent
from .retry import DEFAULT_RETRY_POLICY, BackoffPolicy
from .store import ResourceStore, matches_labels

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    reschedule_after: Optional[float] = None

    @classmethod
    def no_update(cls) -> "ReconcileResult":
        return cls()

    @classmethod
    def reschedule(cls, seconds: float) -> "ReconcileResult":
        return cls(reschedule_after=seconds)


class Context:
    """Per-invocation scratch space shared by dependents and the reconciler."""

    def __init__(self, store: ResourceStore, key: ResourceKey, retry_count: int = 0) -> None:
        self.store = store
        self.key = key
        self.retry_count = retry_count
        self._values: Dict[str, Any] = {}

    def put(self, name: str, value: Any) -> None:
        self._values[name] = value

    def get(self, name: str, default: Any = None) -> Any:
        return self._values.get(name, default)

    @property
    def is_retry(self) -> bool:
        return self.retry_count > 0


class Reconciler(Protocol):
    async def reconcile(self, resource: Any, context: Context) -> ReconcileResult:
        ...

    async def cleanup(self, key: ResourceKey, context: Context) -> None:
        ...


class DependentResource(Protocol):
    async def reconcile(self, primary: Any, context: Context) -> None:
        ...


Mapper = Callable[[WatchEvent], Awaitable[Iterable[ResourceKey]]]


@dataclass(frozen=True)
class SecondaryWatch:
    """Watch on another kind whose events map to primary keys."""

    model: Type[Resource]
    mapper: Mapper


@dataclass(frozen=True)
class ControllerRegistration:
    name: str
    model: Type[Resource]
    reconciler: Reconciler
    label_selector: Mapping[str, str] = field(default_factory=dict)
    predicate: Optional[Callable[[Resource], bool]] = None
    generation_aware: bool = False
    secondaries: Tuple[SecondaryWatch, ...] = ()
    dependents: Tuple[DependentResource, ...] = ()
    retry: BackoffPolicy = DEFAULT_RETRY_POLICY
    workers: int = 4

    def accepts(self, resource: Resource) -> bool:
        if not matches_labels(resource, self.label_selector):
            return False
        return self.predicate is None or self.predicate(resource)


class ControllerRegistry:
    """Ordered collection of controller registrations."""

    def __init__(self) -> None:
        self._registrations: Dict[str, ControllerRegistration] = {}

    def register(self, registration: ControllerRegistration) -> ControllerRegistration:
        if registration.name in self._registrations:
            raise ConfigError(f"Controller {registration.name!r} is already registered")
        if registration.workers < 1:
            raise ConfigError(f"Controller {registration.name!r} needs at least one worker")
        self._registrations[registration.name] = registration
        logger.debug("Registered controller %s for %s", registration.name, registration.model.kind)
        return registration

    def get(self, name: str) -> ControllerRegistration:
        return self._registrations[name]

    def __iter__(self) -> Iterator[ControllerRegistration]:
        return iter(self._registrations.values())

    def __len__(self) -> int:
        return len(self._registrations)


@dataclass(frozen=True)
class FailureRecord:
    key: ResourceKey
    attempts: int
    error: Dict[str, Any]
    failed_at: datetime


def _describe(exc: BaseException) -> Dict[str, Any]:
    if isinstance(exc, AgentOperatorError):
        return exc.to_dict()
    return {"error": exc.__class__.__name__, "message": str(exc)}


class Controller:
    """Runs one registration: watches, work queue, workers and retry bookkeeping."""

    def __init__(self, registration: ControllerRegistration, store: ResourceStore) -> None:
        self.registration = registration
        self.store = store
        self.failures: Dict[ResourceKey, FailureRecord] = {}

        self._queue: "asyncio.Queue[ResourceKey]" = asyncio.Queue()
        self._queued: Set[ResourceKey] = set()
        self._in_flight: Set[ResourceKey] = set()
        self._dirty: Set[ResourceKey] = set()
        self._retries: Dict[ResourceKey, int] = {}
        self._timers: Dict[ResourceKey, asyncio.TimerHandle] = {}
        self._subscriptions: List[Subscription] = []
        self._tasks: List[asyncio.Task] = []
        self._mapping = 0
        self.reconcile_count = 0

    @property
    def name(self) -> str:
        return self.registration.name

    # ------------------------------------------------------------------ #
    # lifecycle
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        if self._tasks:
            return
        reg = self.registration

        # Subscribe before listing so nothing written in between is missed.
        primary = self.store.watch(reg.model.kind)
        self._subscriptions.append(primary)
        self._tasks.append(
            asyncio.create_task(self._pump(primary, self._on_primary), name=f"{self.name}-watch")
        )
        for secondary in reg.secondaries:
            subscription = self.store.watch(secondary.model.kind)
            self._subscriptions.append(subscription)
            handler = self._secondary_handler(secondary)
            self._tasks.append(
                asyncio.create_task(
                    self._pump(subscription, handler),
                    name=f"{self.name}-watch-{secondary.model.kind}",
                )
            )

        for resource in await self.store.list(reg.model, labels=reg.label_selector or None):
            if reg.accepts(resource):
                self.enqueue(resource.key)

        for index in range(reg.workers):
            self._tasks.append(asyncio.create_task(self._worker(), name=f"{self.name}-worker-{index}"))
        logger.info("Started controller %s (%d workers)", self.name, reg.workers)

    async def stop(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        for subscription in self._subscriptions:
            subscription.close()
        self._subscriptions.clear()
        logger.info("Stopped controller %s", self.name)

    @property
    def is_idle(self) -> bool:
        """No queued, in-flight or unprocessed watch work. Pending timers do not count."""
        return (
            not self._queued
            and not self._in_flight
            and not self._dirty
            and self._mapping == 0
            and all(s.is_drained for s in self._subscriptions)
        )

    @property
    def pending_timers(self) -> Set[ResourceKey]:
        return set(self._timers)

    # ------------------------------------------------------------------ #
    # queueing
    # ------------------------------------------------------------------ #

    def enqueue(self, key: ResourceKey) -> None:
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        if key in self._in_flight:
            self._dirty.add(key)
            return
        if key in self._queued:
            return
        self._queued.add(key)
        self._queue.put_nowait(key)

    def enqueue_after(self, key: ResourceKey, delay: float) -> None:
        existing = self._timers.pop(key, None)
        if existing is not None:
            existing.cancel()
        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(delay, self._fire_timer, key)

    def _fire_timer(self, key: ResourceKey) -> None:
        self._timers.pop(key, None)
        self.enqueue(key)

    # ------------------------------------------------------------------ #
    # watches
    # ------------------------------------------------------------------ #

    async def _pump(
        self, subscription: Subscription, handler: Callable[[WatchEvent], Awaitable[None]]
    ) -> None:
        async for event in subscription:
            await handler(event)

    async def _on_primary(self, event: WatchEvent) -> None:
        resource = event.resource
        if not self.registration.accepts(resource):
            if event.old is not None and self.registration.accepts(event.old):
                # No longer selected: let the reconciler clean up as if it was deleted.
                logger.debug("%s left the selection of %s", resource.key, self.name)
                self.enqueue(resource.key)
            return
        if (
            event.type is EventType.MODIFIED
            and self.registration.generation_aware
            and event.old is not None
            and event.old.metadata.generation == resource.metadata.generation
            # Labels select agents and routing, so a relabel counts as a change.
            and event.old.metadata.labels == resource.metadata.labels
        ):
            return
        self.enqueue(resource.key)

    def _secondary_handler(
        self, secondary: SecondaryWatch
    ) -> Callable[[WatchEvent], Awaitable[None]]:
        async def handle(event: WatchEvent) -> None:
            self._mapping += 1
            try:
                keys = await secondary.mapper(event)
            except Exception:
                logger.exception(
                    "%s: mapping %s event for %s failed",
                    self.name,
                    event.type.value,
                    event.key,
                    extra=reconcile_context(self.name, event.key),
                )
                return
            finally:
                self._mapping -= 1
            for key in keys:
                self.enqueue(key)

        return handle

    # ------------------------------------------------------------------ #
    # workers
    # ------------------------------------------------------------------ #

    async def _worker(self) -> None:
        while True:
            key = await self._queue.get()
            self._queued.discard(key)
            self._in_flight.add(key)
            try:
                await self._process(key)
            finally:
                self._in_flight.discard(key)
                self._queue.task_done()
                if key in self._dirty:
                    self._dirty.discard(key)
                    self.enqueue(key)

    async def _process(self, key: ResourceKey) -> None:
        reg = self.registration
        context = Context(self.store, key, self._retries.get(key, 0))
        self.reconcile_count += 1
        try:
            resource = await self.store.get(reg.model, key.namespace, key.name)
            if resource is None or not reg.accepts(resource):
                logger.debug(
                    "%s: %s is gone, running cleanup",
                    self.name,
                    key,
                    extra=reconcile_context(self.name, key),
                )
                await reg.reconciler.cleanup(key, context)
                result = ReconcileResult.no_update()
            else:
                for dependent in reg.dependents:
                    await dependent.reconcile(resource, context)
                result = await reg.reconciler.reconcile(resource, context)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._on_failure(key, exc)
            return

        self._retries.pop(key, None)
        if self.failures.pop(key, None) is not None:
            logger.info(
                "%s: %s recovered", self.name, key, extra=reconcile_context(self.name, key)
            )
        if result.reschedule_after is not None:
            self.enqueue_after(key, result.reschedule_after)

    def _on_failure(self, key: ResourceKey, exc: Exception) -> None:
        policy = self.registration.retry
        attempt = self._retries.get(key, 0) + 1
        if policy.can_retry(attempt):
            self._retries[key] = attempt
            delay = policy.delay_for(attempt)
            logger.warning(
                "Retry %d/%d for %s after %.2fs – %s",
                attempt,
                policy.max_attempts,
                key,
                delay,
                exc,
                extra=reconcile_context(self.name, key),
            )
            self.enqueue_after(key, delay)
            return

        self._retries.pop(key, None)
        self.failures[key] = FailureRecord(
            key=key,
            attempts=attempt,
            error=_describe(exc),
            failed_at=datetime.now(timezone.utc),
        )
        logger.error(
            "Retry exhausted after %d attempts for %s: %s",
            attempt,
            key,
            exc,
            exc_info=exc,
            extra=reconcile_context(self.name, key),
        )


__all__ = [
    "Context",
    "Controller",
    "ControllerRegistration",
    "ControllerRegistry",
    "DependentResource",
    "FailureRecord",
    "Mapper",
    "ReconcileResult",
    "Reconciler",
    "SecondaryWatch",
]
