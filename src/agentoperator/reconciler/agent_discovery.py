"""
agentoperator.reconciler.agent_discovery

Publishes an Agent resource for every ready workload that opts in to
discovery.

Each workload moves through ``NOT_READY -> READY_PENDING_DISCOVERY ->
DISCOVERED``; ``DELETED`` is final and drops the workload from the state map.
A workload that is not ready yet is checked again after a fixed interval;
discovery failures are raised so the controller applies its retry policy.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Optional

from ..constants import DEFAULT_CAPABILITIES_PATH
from ..discovery.client import AgentClient
from ..discovery.generator import build_agent_resource
from ..discovery.workloads import is_ready, service_url
from ..exceptions import DiscoveryError
from ..model.resources import Agent, ResourceKey, Workload
from ..runtime.controller import Context, ReconcileResult
from ..runtime.store import ResourceStore

logger = logging.getLogger(__name__)

DEFAULT_NOT_READY_RECHECK_SECONDS = 10.0


class DiscoveryState(str, Enum):
    NOT_READY = "NOT_READY"
    READY_PENDING_DISCOVERY = "READY_PENDING_DISCOVERY"
    DISCOVERED = "DISCOVERED"
    DELETED = "DELETED"


class AgentDiscoveryReconciler:
    def __init__(
        self,
        store: ResourceStore,
        client: AgentClient,
        *,
        not_ready_recheck_seconds: float = DEFAULT_NOT_READY_RECHECK_SECONDS,
        default_path: str = DEFAULT_CAPABILITIES_PATH,
    ) -> None:
        self.store = store
        self.client = client
        self.not_ready_recheck_seconds = not_ready_recheck_seconds
        self.default_path = default_path
        self._states: Dict[ResourceKey, DiscoveryState] = {}

    def state_of(self, key: ResourceKey) -> Optional[DiscoveryState]:
        return self._states.get(key)

    async def reconcile(self, workload: Workload, context: Context) -> ReconcileResult:
        key = workload.key
        if not is_ready(workload):
            self._states[key] = DiscoveryState.NOT_READY
            logger.info(
                "Workload %s/%s is not ready, checking again in %.0fs",
                workload.namespace,
                workload.name,
                self.not_ready_recheck_seconds,
            )
            return ReconcileResult.reschedule(self.not_ready_recheck_seconds)

        self._states[key] = DiscoveryState.READY_PENDING_DISCOVERY
        try:
            url = await service_url(self.store, workload, self.default_path)
            manifest = await self.client.fetch_manifest(url)
        except DiscoveryError as exc:
            raise DiscoveryError(
                f"Failed to create agent resource for workload '{workload.name}'",
                cause=exc,
                payload={"namespace": workload.namespace, "workload": workload.name},
            ) from exc

        agent = await self.store.create_or_replace(build_agent_resource(workload, manifest))
        self._states[key] = DiscoveryState.DISCOVERED
        logger.info(
            "Agent %s/%s published with %d capabilities",
            agent.namespace,
            agent.name,
            len(agent.spec.provided_capabilities),
        )
        return ReconcileResult.no_update()

    async def cleanup(self, key: ResourceKey, context: Context) -> None:
        deleted = await self.store.delete(Agent, key.namespace, key.name)
        previous = self._states.pop(key, None)
        logger.debug(
            "Workload %s/%s moved from %s to %s",
            key.namespace,
            key.name,
            previous.value if previous else "UNKNOWN",
            DiscoveryState.DELETED.value,
        )
        if deleted:
            logger.info("Deleted agent %s/%s for removed workload", key.namespace, key.name)


__all__ = ["AgentDiscoveryReconciler", "DEFAULT_NOT_READY_RECHECK_SECONDS", "DiscoveryState"]
