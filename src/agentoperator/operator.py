"""Wiring of the controllers into a runnable operator."""

from __future__ import annotations

import logging
from typing import Optional

from .config import OperatorConfig
from .discovery.client import AgentClient
from .model.resources import Agent, Channel, ChannelRouting, Workload
from .reconciler.agent_discovery import AgentDiscoveryReconciler
from .reconciler.channel_routing import ChannelRoutingDependentResource, ChannelRoutingReconciler
from .reconciler.correlator import EventCorrelator
from .resolver import CapabilityResolver
from .runtime.controller import ControllerRegistration, ControllerRegistry, SecondaryWatch
from .runtime.manager import OperatorManager
from .runtime.store import ResourceStore

logger = logging.getLogger(__name__)

AGENT_DISCOVERY_CONTROLLER = "agent-discovery"
CHANNEL_ROUTING_CONTROLLER = "channel-routing"


def build_registry(
    store: ResourceStore,
    config: OperatorConfig,
    client: Optional[AgentClient] = None,
    resolver: Optional[CapabilityResolver] = None,
) -> ControllerRegistry:
    registry = ControllerRegistry()
    workers = config.controllers.workers

    if config.discovery.enabled:
        if client is None:
            client = AgentClient(timeout=config.discovery.http_timeout)
        registry.register(
            ControllerRegistration(
                name=AGENT_DISCOVERY_CONTROLLER,
                model=Workload,
                reconciler=AgentDiscoveryReconciler(
                    store,
                    client,
                    not_ready_recheck_seconds=config.discovery.not_ready_recheck_seconds,
                    default_path=config.discovery.default_path,
                ),
                label_selector=dict(config.discovery.label_selector),
                retry=config.retry.discovery.to_policy(),
                workers=workers,
            )
        )

    correlator = EventCorrelator(store)
    registry.register(
        ControllerRegistration(
            name=CHANNEL_ROUTING_CONTROLLER,
            model=Channel,
            reconciler=ChannelRoutingReconciler(store),
            generation_aware=True,
            secondaries=(
                SecondaryWatch(Agent, correlator.map_agent_event),
                SecondaryWatch(ChannelRouting, correlator.map_owned_routing),
            ),
            dependents=(ChannelRoutingDependentResource(store, resolver),),
            retry=config.retry.default.to_policy(),
            workers=workers,
        )
    )
    return registry


def create_operator(
    store: ResourceStore,
    config: Optional[OperatorConfig] = None,
    *,
    client: Optional[AgentClient] = None,
    resolver: Optional[CapabilityResolver] = None,
) -> OperatorManager:
    """Build an :class:`OperatorManager` running every enabled controller on ``store``."""
    config = config or OperatorConfig()
    owned_client = None
    if client is None and config.discovery.enabled:
        client = owned_client = AgentClient(timeout=config.discovery.http_timeout)

    registry = build_registry(store, config, client=client, resolver=resolver)
    logger.debug("Operator controllers: %s", ", ".join(r.name for r in registry))
    manager = OperatorManager(store, registry)
    if owned_client is not None:
        manager.add_shutdown_hook(owned_client.aclose)
    return manager


__all__ = [
    "AGENT_DISCOVERY_CONTROLLER",
    "CHANNEL_ROUTING_CONTROLLER",
    "build_registry",
    "create_operator",
]
