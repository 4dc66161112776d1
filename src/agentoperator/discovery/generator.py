"""Build the Agent resource published for a discovered workload."""

from __future__ import annotations

from ..constants import AGENT_ID_LABEL_KEY, SUBSET_LABEL_KEY
from ..model.resources import Agent, AgentSpec, ObjectMeta, Workload
from .manifest import CapabilityManifest


def build_agent_resource(workload: Workload, manifest: CapabilityManifest) -> Agent:
    """The Agent is named after the workload and mirrors the manifest."""
    labels = {SUBSET_LABEL_KEY: workload.subset}
    if manifest.id:
        labels[AGENT_ID_LABEL_KEY] = manifest.id
    return Agent(
        metadata=ObjectMeta(
            name=workload.name,
            namespace=workload.namespace,
            labels=labels,
        ),
        spec=AgentSpec(
            id=manifest.id,
            description=manifest.description,
            supported_tenants=manifest.supported_tenants,
            supported_channels=manifest.supported_channels,
            provided_capabilities=manifest.capabilities,
        ),
    )


__all__ = ["build_agent_resource"]
