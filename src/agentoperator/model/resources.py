"""Cluster resource models read and written by the reconcilers.

Every resource is an immutable pydantic model with a ``metadata`` block and a
``spec``; some carry a ``status``. Builders elsewhere return whole objects and
updates go through :meth:`Resource.with_metadata` / ``model_copy``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar, Dict, FrozenSet, Iterable, List, NamedTuple, Optional, Tuple, Type

from pydantic import Field, field_serializer, field_validator, model_validator

from ..constants import (
    API_VERSION,
    CHANNEL_LABEL_KEY,
    CLUSTER_DOMAIN,
    SUBSET_LABEL_DEFAULT_VALUE,
    SUBSET_LABEL_KEY,
    TENANT_LABEL_KEY,
)
from .capabilities import ProvidedCapability, RequiredCapability, ValueModel


class ResourceKey(NamedTuple):
    """Identity of a resource in the store."""

    kind: str
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.kind} {self.namespace}/{self.name}"


class OwnerReference(ValueModel):
    api_version: str = API_VERSION
    kind: str
    name: str
    uid: str
    controller: bool = True
    block_owner_deletion: bool = True


class ObjectMeta(ValueModel):
    name: str
    namespace: str = "default"
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    uid: str = ""
    resource_version: int = 0
    generation: int = 0
    owner_references: Tuple[OwnerReference, ...] = ()

    def controller_owner(self) -> Optional[OwnerReference]:
        for ref in self.owner_references:
            if ref.controller:
                return ref
        return None


class Resource(ValueModel):
    kind: ClassVar[str] = ""
    api_version: ClassVar[str] = API_VERSION

    metadata: ObjectMeta

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def labels(self) -> Dict[str, str]:
        return self.metadata.labels

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(self.kind, self.metadata.namespace, self.metadata.name)

    def with_metadata(self, **changes: Any) -> "Resource":
        return self.model_copy(update={"metadata": self.metadata.model_copy(update=changes)})

    def to_manifest(self) -> Dict[str, Any]:
        return {"apiVersion": self.api_version, "kind": self.kind, **self.to_dict()}

    @classmethod
    def from_manifest(cls, data: Dict[str, Any]) -> "Resource":
        return cls.model_validate(data)


# --------------------------------------------------------------------------- #
# Workloads and services (read-only inputs)
# --------------------------------------------------------------------------- #

class WorkloadSpec(ValueModel):
    replicas: int = 1
    selector: Dict[str, str] = Field(default_factory=dict)
    template_labels: Dict[str, str] = Field(default_factory=dict)


class WorkloadStatus(ValueModel):
    replicas: Optional[int] = None
    available_replicas: Optional[int] = None


class Workload(Resource):
    """A Deployment-like workload that may host an agent."""

    kind: ClassVar[str] = "Deployment"
    api_version: ClassVar[str] = "apps/v1"

    spec: WorkloadSpec = Field(default_factory=WorkloadSpec)
    status: WorkloadStatus = Field(default_factory=WorkloadStatus)

    @property
    def subset(self) -> str:
        return self.metadata.labels.get(SUBSET_LABEL_KEY, SUBSET_LABEL_DEFAULT_VALUE)


class ServicePort(ValueModel):
    name: Optional[str] = None
    port: int
    app_protocol: Optional[str] = None


class ServiceSpec(ValueModel):
    selector: Dict[str, str] = Field(default_factory=dict)
    ports: Tuple[ServicePort, ...] = ()


class Service(Resource):
    kind: ClassVar[str] = "Service"
    api_version: ClassVar[str] = "v1"

    spec: ServiceSpec = Field(default_factory=ServiceSpec)


# --------------------------------------------------------------------------- #
# Agents
# --------------------------------------------------------------------------- #

class AgentSpec(ValueModel):
    id: str = ""
    description: str = ""
    supported_tenants: FrozenSet[str] = frozenset()
    supported_channels: FrozenSet[str] = frozenset()
    provided_capabilities: Tuple[ProvidedCapability, ...] = ()

    @field_validator("provided_capabilities")
    @classmethod
    def unique_capability_ids(
        cls, v: Tuple[ProvidedCapability, ...]
    ) -> Tuple[ProvidedCapability, ...]:
        seen = set()
        for capability in v:
            if capability.id in seen:
                raise ValueError(f"Duplicate provided capability id: {capability.id}")
            seen.add(capability.id)
        return v

    @field_serializer("supported_tenants", "supported_channels")
    def serialize_sorted(self, v: FrozenSet[str]) -> List[str]:
        return sorted(v)


class Agent(Resource):
    kind: ClassVar[str] = "Agent"

    spec: AgentSpec = Field(default_factory=AgentSpec)

    @property
    def subset(self) -> str:
        return self.metadata.labels.get(SUBSET_LABEL_KEY, SUBSET_LABEL_DEFAULT_VALUE)

    @property
    def address(self) -> str:
        return f"{self.metadata.name}.{self.metadata.namespace}.{CLUSTER_DOMAIN}"


# --------------------------------------------------------------------------- #
# Channels
# --------------------------------------------------------------------------- #

class ResolveStatus(str, Enum):
    RESOLVED = "RESOLVED"
    UNRESOLVED = "UNRESOLVED"


class ChannelSpec(ValueModel):
    required_capabilities: Tuple[RequiredCapability, ...] = ()


class ChannelStatus(ValueModel):
    resolve_status: ResolveStatus
    unresolved_required_capabilities: FrozenSet[RequiredCapability] = frozenset()

    @model_validator(mode="after")
    def check_consistency(self) -> "ChannelStatus":
        resolved = self.resolve_status is ResolveStatus.RESOLVED
        if resolved == bool(self.unresolved_required_capabilities):
            raise ValueError(
                "resolveStatus must be RESOLVED exactly when no required capability is unresolved"
            )
        return self

    @field_serializer("unresolved_required_capabilities")
    def serialize_sorted(self, v: FrozenSet[RequiredCapability]) -> List[RequiredCapability]:
        return sorted(v, key=lambda c: (c.id, c.version))

    @classmethod
    def from_unresolved(cls, unresolved: Iterable[RequiredCapability]) -> "ChannelStatus":
        unresolved = frozenset(unresolved)
        return cls(
            resolve_status=ResolveStatus.UNRESOLVED if unresolved else ResolveStatus.RESOLVED,
            unresolved_required_capabilities=unresolved,
        )


class Channel(Resource):
    kind: ClassVar[str] = "Channel"

    spec: ChannelSpec = Field(default_factory=ChannelSpec)
    status: Optional[ChannelStatus] = None

    @property
    def tenant(self) -> str:
        return self.metadata.labels.get(TENANT_LABEL_KEY, "")

    @property
    def channel(self) -> str:
        return self.metadata.labels.get(CHANNEL_LABEL_KEY, "")

    @property
    def subset(self) -> str:
        return self.metadata.labels.get(SUBSET_LABEL_KEY, SUBSET_LABEL_DEFAULT_VALUE)

    @property
    def identity(self) -> Tuple[str, str, str, str]:
        return (self.metadata.namespace, self.tenant, self.channel, self.subset)


# --------------------------------------------------------------------------- #
# Channel routing (derived)
# --------------------------------------------------------------------------- #

class RoutedCapability(ValueModel):
    id: str
    name: str
    required_version: str
    provided_version: str
    description: str = ""
    host: str = ""


class CapabilityGroup(ValueModel):
    name: str
    description: str = ""
    capabilities: Tuple[RoutedCapability, ...] = ()

    def capability(self, name: str) -> Optional[RoutedCapability]:
        return next((c for c in self.capabilities if c.name == name), None)


class ChannelRoutingSpec(ValueModel):
    capability_groups: Tuple[CapabilityGroup, ...] = ()

    def group(self, name: str) -> Optional[CapabilityGroup]:
        return next((g for g in self.capability_groups if g.name == name), None)


class ChannelRouting(Resource):
    kind: ClassVar[str] = "ChannelRouting"

    spec: ChannelRoutingSpec = Field(default_factory=ChannelRoutingSpec)


RESOURCE_KINDS: Dict[str, Type[Resource]] = {
    cls.kind: cls for cls in (Workload, Service, Agent, Channel, ChannelRouting)
}


def load_resource(manifest: Dict[str, Any]) -> Resource:
    """Build the typed resource for a manifest dict carrying a ``kind`` key."""
    kind = manifest.get("kind")
    try:
        model = RESOURCE_KINDS[kind]
    except KeyError:
        raise ValueError(f"Unsupported resource kind: {kind!r}") from None
    return model.from_manifest(manifest)


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
    "RESOURCE_KINDS",
    "Resource",
    "ResourceKey",
    "ResolveStatus",
    "RoutedCapability",
    "Service",
    "ServicePort",
    "ServiceSpec",
    "Workload",
    "WorkloadSpec",
    "WorkloadStatus",
    "load_resource",
]
