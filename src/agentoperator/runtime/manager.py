"""Starts and stops every registered controller against one store."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from .controller import Controller, ControllerRegistry
from .store import ResourceStore

logger = logging.getLogger(__name__)


class OperatorManager:
    def __init__(self, store: ResourceStore, registry: ControllerRegistry) -> None:
        self.store = store
        self.registry = registry
        self._shutdown_hooks: List[Callable[[], Awaitable[None]]] = []
        self.controllers: Dict[str, Controller] = {
            registration.name: Controller(registration, store) for registration in registry
        }
        self._running = False

    def controller(self, name: str) -> Controller:
        return self.controllers[name]

    def add_shutdown_hook(self, hook: Callable[[], Awaitable[None]]) -> None:
        """Register a coroutine function awaited after the controllers stop."""
        self._shutdown_hooks.append(hook)

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        for controller in self.controllers.values():
            await controller.start()
        self._running = True
        logger.info("Operator started with %d controllers", len(self.controllers))

    async def stop(self) -> None:
        if not self._running:
            return
        await asyncio.gather(*(c.stop() for c in self.controllers.values()))
        for hook in self._shutdown_hooks:
            await hook()
        self._running = False
        logger.info("Operator stopped")

    def is_idle(self) -> bool:
        return all(c.is_idle for c in self.controllers.values())

    async def wait_until_idle(
        self, timeout: Optional[float] = 5.0, poll_interval: float = 0.01
    ) -> None:
        """Block until no controller has queued, in-flight or unprocessed watch work.

        Idleness must hold on two consecutive polls, since work done by one
        controller can emit events for another. Delayed requeues (reschedules
        and retries) are not waited for.

        Raises:
            TimeoutError: when the controllers are still busy after ``timeout`` seconds.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        quiet = 0
        while quiet < 2:
            await asyncio.sleep(poll_interval)
            quiet = quiet + 1 if self.is_idle() else 0
            if deadline is not None and loop.time() > deadline and quiet < 2:
                busy = sorted(name for name, c in self.controllers.items() if not c.is_idle)
                raise TimeoutError(f"Controllers still busy after {timeout}s: {', '.join(busy)}")

    async def __aenter__(self) -> "OperatorManager":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()


__all__ = ["OperatorManager"]
