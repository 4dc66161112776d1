"""
agentoperator.resolver.capability_resolver

Capability resolution for Channels.

Every required capability is matched independently against the capabilities
provided by a list of candidate agents:

1. collect the provided capabilities whose id equals the required id and
   whose version satisfies the required range;
2. nothing collected -> the requirement is unresolved;
3. otherwise the requirement's :class:`ResolveStrategy` picks the version and
   equal versions from several agents are decided by agent identity
   ``(namespace, name)`` so the routing table does not flap;
4. a :class:`Wire` binds the requirement to the chosen capability and agent.

The resolver is stateless and performs no I/O. Candidates are expected to be
pre-filtered by the caller (tenant, channel and subset).
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, NamedTuple, Sequence, Tuple

from ..model.capabilities import ProvidedCapability, RequiredCapability
from ..model.resources import Agent, ResourceKey
from ..model.semver import SemanticVersion
from .exceptions import ResolverException

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Wire:
    """A resolved binding of a required capability to an agent's capability."""

    required_capability: RequiredCapability
    provided_capability: ProvidedCapability
    agent_key: ResourceKey
    agent: Agent = field(compare=False, hash=False, repr=False)

    @classmethod
    def of(
        cls, required: RequiredCapability, provided: ProvidedCapability, agent: Agent
    ) -> "Wire":
        return cls(required, provided, agent.key, agent)


@dataclass(frozen=True)
class ResolutionResult:
    wires: Tuple[Wire, ...] = ()
    unresolved: FrozenSet[RequiredCapability] = frozenset()

    @property
    def is_resolved(self) -> bool:
        return not self.unresolved

    def wires_by_agent(self) -> Dict[ResourceKey, List[Wire]]:
        grouped: Dict[ResourceKey, List[Wire]] = defaultdict(list)
        for wire in self.wires:
            grouped[wire.agent_key].append(wire)
        return dict(grouped)


class _Candidate(NamedTuple):
    version: SemanticVersion
    namespace: str
    agent_name: str
    literal: str
    capability: ProvidedCapability
    agent: Agent

    @property
    def tie_breaker(self) -> Tuple[str, str, str]:
        return (self.namespace, self.agent_name, self.literal)


def _requirement_order(requirement: RequiredCapability) -> Tuple[str, str, str]:
    return (requirement.id, requirement.version, requirement.strategy.value)


class CapabilityResolver:
    """Stateless per-requirement matcher; safe to share between reconcilers."""

    def resolve(
        self,
        required: Iterable[RequiredCapability],
        candidates: Sequence[Agent],
    ) -> ResolutionResult:
        wires: List[Wire] = []
        unresolved: List[RequiredCapability] = []

        for requirement in sorted(set(required), key=_requirement_order):
            matches = list(self._matches(requirement, candidates))
            if not matches:
                logger.debug("No agent provides %s", requirement)
                unresolved.append(requirement)
                continue

            target = requirement.strategy.pick(m.version for m in matches)
            winner = min(
                (m for m in matches if m.version == target), key=lambda m: m.tie_breaker
            )
            logger.debug(
                "Resolved %s to %s@%s from agent %s/%s",
                requirement,
                winner.capability.id,
                winner.literal,
                winner.namespace,
                winner.agent_name,
            )
            wires.append(Wire.of(requirement, winner.capability, winner.agent))

        return ResolutionResult(tuple(wires), frozenset(unresolved))

    def resolve_or_raise(
        self,
        required: Iterable[RequiredCapability],
        candidates: Sequence[Agent],
    ) -> ResolutionResult:
        """Like :meth:`resolve`, but raise :class:`ResolverException` on any shortfall."""
        result = self.resolve(required, candidates)
        if result.unresolved:
            raise ResolverException(result.wires, result.unresolved)
        return result

    @staticmethod
    def _matches(
        requirement: RequiredCapability, candidates: Sequence[Agent]
    ) -> Iterable[_Candidate]:
        version_range = requirement.version_range
        for agent in candidates:
            for capability in agent.spec.provided_capabilities:
                if capability.id != requirement.id:
                    continue
                version = capability.semantic_version
                if version_range.satisfied_by(version):
                    yield _Candidate(
                        version,
                        agent.metadata.namespace,
                        agent.metadata.name,
                        capability.version,
                        capability,
                        agent,
                    )


__all__ = ["CapabilityResolver", "ResolutionResult", "Wire"]
