"""Which Agents may serve a given Channel."""

from __future__ import annotations

from typing import Iterable, List

from ..model.resources import Agent, Channel


class AgentResourcesFilter:
    """Predicate selecting the Agents eligible for one Channel.

    An Agent qualifies when its subset equals the Channel's, it supports the
    Channel's tenant (an empty tenant list supports every tenant) and it lists
    the Channel's channel explicitly.
    """

    def __init__(self, channel: Channel) -> None:
        self.tenant = channel.tenant
        self.channel = channel.channel
        self.subset = channel.subset

    def __call__(self, agent: Agent) -> bool:
        if agent.subset != self.subset:
            return False
        tenants = agent.spec.supported_tenants
        if tenants and self.tenant not in tenants:
            return False
        return self.channel in agent.spec.supported_channels

    def apply(self, agents: Iterable[Agent]) -> List[Agent]:
        return [agent for agent in agents if self(agent)]


__all__ = ["AgentResourcesFilter"]
