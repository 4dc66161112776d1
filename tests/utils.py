# tests/utils.py
"""
Builders and helpers used by many test modules.
"""

from typing import Iterable, Optional, Sequence

import httpx

from agentoperator.constants import (
    CHANNEL_LABEL_KEY,
    DISCOVERY_LABEL_KEY,
    DISCOVERY_LABEL_VALUE,
    SUBSET_LABEL_KEY,
    TENANT_LABEL_KEY,
)
from agentoperator.discovery.client import AgentClient
from agentoperator.model import (
    Agent,
    AgentSpec,
    Channel,
    ChannelSpec,
    ObjectMeta,
    ProvidedCapability,
    RequiredCapability,
    ResolveStrategy,
    Service,
    ServicePort,
    ServiceSpec,
    Workload,
    WorkloadSpec,
    WorkloadStatus,
)


# ----------------------------------------------------------------------
# Builders
# ----------------------------------------------------------------------
def cap(id: str, version: str, name: Optional[str] = None, description: str = "") -> ProvidedCapability:
    return ProvidedCapability(id=id, name=name or id, version=version, description=description)


def req(
    id: str, version: str = "*", strategy: ResolveStrategy = ResolveStrategy.HIGHEST
) -> RequiredCapability:
    return RequiredCapability(id=id, name=id, version=version, strategy=strategy)


def make_agent(
    name: str,
    capabilities: Sequence[ProvidedCapability] = (),
    *,
    namespace: str = "default",
    tenants: Iterable[str] = ("acme",),
    channels: Iterable[str] = ("ivr",),
    subset: Optional[str] = None,
    description: str = "",
) -> Agent:
    labels = {SUBSET_LABEL_KEY: subset} if subset else {}
    return Agent(
        metadata=ObjectMeta(name=name, namespace=namespace, labels=labels),
        spec=AgentSpec(
            id=name,
            description=description or f"{name} description",
            supported_tenants=frozenset(tenants),
            supported_channels=frozenset(channels),
            provided_capabilities=tuple(capabilities),
        ),
    )


def make_channel(
    name: str = "acme-ivr-stable",
    required: Sequence[RequiredCapability] = (),
    *,
    namespace: str = "default",
    tenant: str = "acme",
    channel: str = "ivr",
    subset: str = "stable",
) -> Channel:
    return Channel(
        metadata=ObjectMeta(
            name=name,
            namespace=namespace,
            labels={TENANT_LABEL_KEY: tenant, CHANNEL_LABEL_KEY: channel, SUBSET_LABEL_KEY: subset},
        ),
        spec=ChannelSpec(required_capabilities=tuple(required)),
    )


def make_workload(
    name: str = "billing-agent",
    *,
    namespace: str = "default",
    replicas: int = 1,
    ready: bool = True,
    subset: Optional[str] = None,
    annotations: Optional[dict] = None,
    discover: bool = True,
) -> Workload:
    labels = {"app": name}
    if discover:
        labels[DISCOVERY_LABEL_KEY] = DISCOVERY_LABEL_VALUE
    if subset:
        labels[SUBSET_LABEL_KEY] = subset
    status = (
        WorkloadStatus(replicas=replicas, available_replicas=replicas)
        if ready
        else WorkloadStatus(replicas=replicas, available_replicas=0)
    )
    return Workload(
        metadata=ObjectMeta(
            name=name, namespace=namespace, labels=labels, annotations=annotations or {}
        ),
        spec=WorkloadSpec(replicas=replicas, selector={"app": name}, template_labels={"app": name}),
        status=status,
    )


def make_service(
    name: str = "billing-agent",
    *,
    namespace: str = "default",
    selector: Optional[dict] = None,
    ports: Sequence[ServicePort] = (ServicePort(name="http", port=8080),),
) -> Service:
    return Service(
        metadata=ObjectMeta(name=name, namespace=namespace),
        spec=ServiceSpec(selector={"app": name} if selector is None else selector, ports=tuple(ports)),
    )


def manifest_payload(agent_id: str = "billing-agent", capabilities=None, **extra) -> dict:
    payload = {
        "id": agent_id,
        "description": "Handles bills",
        "supportedTenants": ["acme"],
        "supportedChannels": ["ivr", "web"],
        "capabilities": capabilities
        if capabilities is not None
        else [
            {"id": "view-bill", "name": "view-bill", "version": "1.0.0", "description": "Shows a bill"},
            {"id": "download-bill", "name": "download-bill", "version": "1.1.0"},
        ],
    }
    payload.update(extra)
    return payload


def mock_client(handler) -> AgentClient:
    """AgentClient whose HTTP calls are answered by ``handler``."""
    return AgentClient(http=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


