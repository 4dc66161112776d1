"""Reconcilers for workload discovery and channel routing."""

from .agent_discovery import AgentDiscoveryReconciler, DiscoveryState
from .channel_routing import (
    ChannelRoutingDependentResource,
    ChannelRoutingReconciler,
    build_channel_routing,
)
from .correlator import EventCorrelator
from .filters import AgentResourcesFilter

__all__ = [
    "AgentDiscoveryReconciler",
    "AgentResourcesFilter",
    "ChannelRoutingDependentResource",
    "ChannelRoutingReconciler",
    "DiscoveryState",
    "EventCorrelator",
    "build_channel_routing",
]
