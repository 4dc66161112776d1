"""Read side of the routing data, for whatever serves it to the traffic router."""

from __future__ import annotations

import logging
from typing import List, Optional

from .constants import CHANNEL_LABEL_KEY, SUBSET_LABEL_KEY, TENANT_LABEL_KEY
from .model.resources import Channel, ChannelRouting
from .runtime.store import ResourceStore

logger = logging.getLogger(__name__)


class RoutingQueryService:
    """Label-based lookups of Channels and their routing tables."""

    def __init__(self, store: ResourceStore) -> None:
        self.store = store

    async def get_routing(self, tenant: str, channel: str, subset: str) -> Optional[ChannelRouting]:
        """The routing table for a channel, without its owner references."""
        routings = await self.store.list(
            ChannelRouting,
            labels={TENANT_LABEL_KEY: tenant, CHANNEL_LABEL_KEY: channel, SUBSET_LABEL_KEY: subset},
        )
        if not routings:
            logger.debug("No routing for %s/%s/%s", tenant, channel, subset)
            return None
        return routings[0].with_metadata(owner_references=())

    async def get_channels(self, tenant: str, subset: str) -> List[Channel]:
        return await self.store.list(
            Channel, labels={TENANT_LABEL_KEY: tenant, SUBSET_LABEL_KEY: subset}
        )

    async def get_channel(self, tenant: str, channel: str, subset: str) -> Optional[Channel]:
        channels = await self.store.list(
            Channel,
            labels={TENANT_LABEL_KEY: tenant, CHANNEL_LABEL_KEY: channel, SUBSET_LABEL_KEY: subset},
        )
        return channels[0] if channels else None


__all__ = ["RoutingQueryService"]
