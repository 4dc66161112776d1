"""
agentoperator.reconciler.channel_routing

Keeps each Channel's routing table and status in line with the Agents that can
serve it.

The dependent resource runs first: it filters the Agents in the Channel's
namespace, resolves the Channel's required capabilities against them and
writes the ChannelRouting, even when resolution is incomplete. The reconciler
then patches the Channel status from the same resolution result, which the
dependent leaves in the reconcile context.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from ..exceptions import ReconcileError
from ..model.resources import (
    Agent,
    CapabilityGroup,
    Channel,
    ChannelRouting,
    ChannelRoutingSpec,
    ChannelStatus,
    ObjectMeta,
    OwnerReference,
    ResourceKey,
    RoutedCapability,
)
from ..resolver import CapabilityResolver, ResolutionResult, ResolverException
from ..runtime.controller import Context, ReconcileResult
from ..runtime.store import ResourceStore
from .filters import AgentResourcesFilter

logger = logging.getLogger(__name__)

RESOLUTION_CONTEXT_KEY = "resolution"


def capability_group_name(agent: Agent) -> str:
    return f"{agent.name}-{agent.subset}"


def build_channel_routing(channel: Channel, result: ResolutionResult) -> ChannelRouting:
    """Derive the routing table of ``channel`` from a resolution result.

    Only Agents with at least one wire get a group; groups are ordered by name
    and capabilities inside a group by name.
    """
    groups: List[CapabilityGroup] = []
    for wires in result.wires_by_agent().values():
        agent = wires[0].agent
        capabilities = sorted(
            (
                RoutedCapability(
                    id=wire.provided_capability.id,
                    name=wire.provided_capability.name,
                    required_version=wire.required_capability.version,
                    provided_version=wire.provided_capability.version,
                    description=wire.provided_capability.description,
                    host=agent.address,
                )
                for wire in wires
            ),
            key=lambda c: (c.name, c.id),
        )
        groups.append(
            CapabilityGroup(
                name=capability_group_name(agent),
                description=agent.spec.description,
                capabilities=tuple(capabilities),
            )
        )
    groups.sort(key=lambda g: g.name)

    owner = OwnerReference(
        api_version=channel.api_version,
        kind=channel.kind,
        name=channel.name,
        uid=channel.metadata.uid,
    )
    return ChannelRouting(
        metadata=ObjectMeta(
            name=channel.name,
            namespace=channel.namespace,
            labels=dict(channel.labels),
            owner_references=(owner,),
        ),
        spec=ChannelRoutingSpec(capability_groups=tuple(groups)),
    )


class ChannelRoutingDependentResource:
    """Resolves a Channel and upserts its ChannelRouting before the reconciler runs."""

    def __init__(self, store: ResourceStore, resolver: Optional[CapabilityResolver] = None) -> None:
        self.store = store
        self.resolver = resolver or CapabilityResolver()

    async def resolve(self, channel: Channel) -> ResolutionResult:
        agents = await self.store.list(Agent, namespace=channel.namespace)
        candidates = AgentResourcesFilter(channel).apply(agents)
        logger.debug(
            "Channel %s/%s: %d of %d agents are candidates",
            channel.namespace,
            channel.name,
            len(candidates),
            len(agents),
        )
        try:
            return self.resolver.resolve_or_raise(channel.spec.required_capabilities, candidates)
        except ResolverException as exc:
            logger.warning("Channel %s/%s: %s", channel.namespace, channel.name, exc)
            return ResolutionResult(exc.resolved_wires, exc.unresolved_required_capabilities)

    async def reconcile(self, channel: Channel, context: Context) -> None:
        result = await self.resolve(channel)
        routing = await self.store.create_or_replace(build_channel_routing(channel, result))
        logger.debug(
            "ChannelRouting %s/%s has %d capability group(s)",
            routing.namespace,
            routing.name,
            len(routing.spec.capability_groups),
        )
        context.put(RESOLUTION_CONTEXT_KEY, result)


class ChannelRoutingReconciler:
    def __init__(self, store: ResourceStore) -> None:
        self.store = store

    async def reconcile(self, channel: Channel, context: Context) -> ReconcileResult:
        result: Optional[ResolutionResult] = context.get(RESOLUTION_CONTEXT_KEY)
        if result is None:
            raise ReconcileError(
                f"No resolution result for {channel.key}; is ChannelRoutingDependentResource registered?"
            )
        status = ChannelStatus.from_unresolved(result.unresolved)
        await self.store.patch_status(channel.model_copy(update={"status": status}))
        logger.info(
            "Channel %s/%s is %s",
            channel.namespace,
            channel.name,
            status.resolve_status.value,
        )
        return ReconcileResult.no_update()

    async def cleanup(self, key: ResourceKey, context: Context) -> None:
        # The ChannelRouting is owned by the Channel and garbage collected with it.
        logger.debug("Channel %s/%s removed", key.namespace, key.name)


__all__ = [
    "ChannelRoutingDependentResource",
    "ChannelRoutingReconciler",
    "RESOLUTION_CONTEXT_KEY",
    "build_channel_routing",
    "capability_group_name",
]
