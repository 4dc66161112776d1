"""Value types and cluster resource models."""

from .capabilities import ProvidedCapability, RequiredCapability, ResolveStrategy
from .resources import (
    Agent,
    AgentSpec,
    CapabilityGroup,
    Channel,
    ChannelRouting,
    ChannelRoutingSpec,
    ChannelSpec,
    ChannelStatus,
    ObjectMeta,
    OwnerReference,
    Resource,
    ResourceKey,
    ResolveStatus,
    RoutedCapability,
    Service,
    ServicePort,
    ServiceSpec,
    Workload,
    WorkloadSpec,
    WorkloadStatus,
    load_resource,
)
from .semver import SemanticVersion, VersionError, VersionRange

__all__ = [
    "Agent",
    "AgentSpec",
    "CapabilityGroup",
    "Channel",
    "ChannelRouting",
    "ChannelRoutingSpec",
    "ChannelSpec",
    "ChannelStatus",
    "ObjectMeta",
    "OwnerReference",
    "ProvidedCapability",
    "RequiredCapability",
    "Resource",
    "ResourceKey",
    "ResolveStatus",
    "ResolveStrategy",
    "RoutedCapability",
    "SemanticVersion",
    "Service",
    "ServicePort",
    "ServiceSpec",
    "VersionError",
    "VersionRange",
    "Workload",
    "WorkloadSpec",
    "WorkloadStatus",
    "load_resource",
]
