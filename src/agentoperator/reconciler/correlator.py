"""Map secondary-resource events onto the Channels that must be re-evaluated."""

from __future__ import annotations

import logging
from typing import Set

from ..model.resources import Channel, ResourceKey
from ..runtime.events import WatchEvent
from ..runtime.store import ResourceStore

logger = logging.getLogger(__name__)


class EventCorrelator:
    def __init__(self, store: ResourceStore) -> None:
        self.store = store

    async def map_agent_change(self, namespace: str) -> Set[ResourceKey]:
        """Every Channel in the namespace, whatever its labels.

        Filtering by the Agent's current tenants or channels would miss Channels
        the Agent just stopped supporting, leaving them wrongly RESOLVED.
        """
        channels = await self.store.list(Channel, namespace=namespace)
        keys = {channel.key for channel in channels}
        logger.debug("Agent change in %s maps to %d channel(s)", namespace, len(keys))
        return keys

    async def map_agent_event(self, event: WatchEvent) -> Set[ResourceKey]:
        return await self.map_agent_change(event.resource.namespace)

    async def map_owned_routing(self, event: WatchEvent) -> Set[ResourceKey]:
        owner = event.resource.metadata.controller_owner()
        if owner is None or owner.kind != Channel.kind:
            return set()
        return {ResourceKey(Channel.kind, event.resource.namespace, owner.name)}


__all__ = ["EventCorrelator"]
