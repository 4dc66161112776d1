"""Tests for agent filtering, routing generation and the channel reconcilers."""

import logging

import pytest

from agentoperator.exceptions import ReconcileError
from agentoperator.model import Channel, ChannelRouting, ResolveStatus, ResourceKey
from agentoperator.reconciler import (
    AgentResourcesFilter,
    ChannelRoutingDependentResource,
    ChannelRoutingReconciler,
    EventCorrelator,
    build_channel_routing,
)
from agentoperator.reconciler.channel_routing import RESOLUTION_CONTEXT_KEY
from agentoperator.resolver import CapabilityResolver
from agentoperator.runtime import Context, EventType, WatchEvent
from utils import cap, make_agent, make_channel, req


class TestAgentResourcesFilter:
    def test_matching_agent(self):
        assert AgentResourcesFilter(make_channel())(make_agent("a"))

    def test_subset_must_match(self):
        check = AgentResourcesFilter(make_channel(subset="canary"))
        assert not check(make_agent("a"))
        assert check(make_agent("a", subset="canary"))

    def test_empty_tenant_list_supports_everyone(self):
        assert AgentResourcesFilter(make_channel(tenant="globex"))(make_agent("a", tenants=()))

    def test_other_tenant_rejected(self):
        assert not AgentResourcesFilter(make_channel(tenant="globex"))(make_agent("a"))

    def test_channel_must_be_listed(self):
        check = AgentResourcesFilter(make_channel(channel="web"))
        assert not check(make_agent("a"))
        assert not check(make_agent("a", channels=()))
        assert check(make_agent("a", channels=("ivr", "web")))

    def test_apply_keeps_order(self):
        agents = [make_agent("b"), make_agent("x", tenants=("other",)), make_agent("a")]
        assert [a.name for a in AgentResourcesFilter(make_channel()).apply(agents)] == ["b", "a"]


class TestBuildChannelRouting:
    @pytest.fixture
    def routing(self, ivr_channel, billing_agent, contract_agent):
        channel = ivr_channel.with_metadata(uid="channel-uid")
        result = CapabilityResolver().resolve(
            channel.spec.required_capabilities, [contract_agent, billing_agent]
        )
        return build_channel_routing(channel, result)

    def test_metadata(self, routing, ivr_channel):
        assert routing.name == ivr_channel.name
        assert routing.namespace == ivr_channel.namespace
        assert routing.labels == ivr_channel.labels
        (owner,) = routing.metadata.owner_references
        assert (owner.kind, owner.name, owner.uid, owner.controller) == (
            "Channel",
            ivr_channel.name,
            "channel-uid",
            True,
        )

    def test_groups_per_agent(self, routing):
        groups = routing.spec.capability_groups
        assert [g.name for g in groups] == ["billing-agent-stable", "contract-agent-stable"]
        assert groups[0].description == "Handles bills"

    def test_routed_capabilities(self, routing):
        billing = routing.spec.group("billing-agent-stable")
        assert [c.name for c in billing.capabilities] == ["download-bill", "view-bill"]
        download = billing.capability("download-bill")
        assert download.required_version == ">=1.0.0"
        assert download.provided_version == "1.1.0"
        assert download.host == "billing-agent.default.svc.cluster.local"

    def test_provided_name_and_description_are_used(self, ivr_channel):
        agent = make_agent("a", [cap("view-bill", "1.0.0", name="View bill", description="Shows it")])
        result = CapabilityResolver().resolve([req("view-bill")], [agent])
        routed = build_channel_routing(ivr_channel, result).spec.capability_groups[0].capabilities[0]
        assert (routed.id, routed.name, routed.description) == ("view-bill", "View bill", "Shows it")

    def test_unresolved_agents_get_no_group(self, ivr_channel):
        result = CapabilityResolver().resolve(ivr_channel.spec.required_capabilities, [])
        assert build_channel_routing(ivr_channel, result).spec.capability_groups == ()


class TestChannelRoutingDependentResource:
    @pytest.mark.asyncio
    async def test_writes_routing_and_context(self, store, ivr_channel, billing_agent, contract_agent):
        await store.create_or_replace(billing_agent)
        await store.create_or_replace(contract_agent)
        channel = await store.create_or_replace(ivr_channel)
        context = Context(store, channel.key)

        await ChannelRoutingDependentResource(store).reconcile(channel, context)

        routing = await store.get(ChannelRouting, "default", channel.name)
        assert len(routing.spec.capability_groups) == 2
        assert context.get(RESOLUTION_CONTEXT_KEY).is_resolved

    @pytest.mark.asyncio
    async def test_partial_resolution_still_routes(self, store, ivr_channel, billing_agent, caplog):
        caplog.set_level(logging.WARNING)
        await store.create_or_replace(billing_agent)
        channel = await store.create_or_replace(ivr_channel)
        context = Context(store, channel.key)

        await ChannelRoutingDependentResource(store).reconcile(channel, context)

        routing = await store.get(ChannelRouting, "default", channel.name)
        assert [g.name for g in routing.spec.capability_groups] == ["billing-agent-stable"]
        assert {c.id for c in context.get(RESOLUTION_CONTEXT_KEY).unresolved} == {"view-contract"}
        assert "view-contract" in caplog.text

    @pytest.mark.asyncio
    async def test_only_agents_of_the_channel_namespace(self, store, ivr_channel):
        await store.create_or_replace(make_agent("remote", [cap("view-bill", "1.0.0")], namespace="other"))
        channel = await store.create_or_replace(ivr_channel)

        result = await ChannelRoutingDependentResource(store).resolve(channel)

        assert {c.id for c in result.unresolved} == {"view-bill", "download-bill", "view-contract"}


class TestChannelRoutingReconciler:
    @pytest.mark.asyncio
    async def test_patches_status(self, store, ivr_channel, billing_agent):
        await store.create_or_replace(billing_agent)
        channel = await store.create_or_replace(ivr_channel)
        context = Context(store, channel.key)
        await ChannelRoutingDependentResource(store).reconcile(channel, context)

        result = await ChannelRoutingReconciler(store).reconcile(channel, context)

        assert result.reschedule_after is None
        stored = await store.get(Channel, "default", channel.name)
        assert stored.status.resolve_status is ResolveStatus.UNRESOLVED
        assert {c.id for c in stored.status.unresolved_required_capabilities} == {"view-contract"}
        assert stored.metadata.generation == channel.metadata.generation

    @pytest.mark.asyncio
    async def test_resolved_status(self, store):
        channel = await store.create_or_replace(make_channel(required=()))
        context = Context(store, channel.key)
        await ChannelRoutingDependentResource(store).reconcile(channel, context)
        await ChannelRoutingReconciler(store).reconcile(channel, context)

        stored = await store.get(Channel, "default", channel.name)
        assert stored.status.resolve_status is ResolveStatus.RESOLVED

    @pytest.mark.asyncio
    async def test_missing_resolution_is_an_error(self, store, ivr_channel):
        channel = await store.create_or_replace(ivr_channel)
        with pytest.raises(ReconcileError):
            await ChannelRoutingReconciler(store).reconcile(channel, Context(store, channel.key))

    @pytest.mark.asyncio
    async def test_cleanup_is_a_no_op(self, store, ivr_channel):
        await ChannelRoutingReconciler(store).cleanup(ivr_channel.key, Context(store, ivr_channel.key))
        assert len(store) == 0


class TestEventCorrelator:
    @pytest.mark.asyncio
    async def test_agent_event_maps_to_every_channel_in_namespace(self, store, billing_agent):
        await store.create_or_replace(make_channel("acme-ivr-stable"))
        await store.create_or_replace(make_channel("globex-web", tenant="globex", channel="web"))
        await store.create_or_replace(make_channel("elsewhere", namespace="other"))

        keys = await EventCorrelator(store).map_agent_event(WatchEvent(EventType.DELETED, billing_agent))

        assert keys == {
            ResourceKey("Channel", "default", "acme-ivr-stable"),
            ResourceKey("Channel", "default", "globex-web"),
        }

    @pytest.mark.asyncio
    async def test_routing_event_maps_to_owner(self, store, ivr_channel):
        channel = await store.create_or_replace(ivr_channel)
        routing = build_channel_routing(channel, CapabilityResolver().resolve([], []))

        keys = await EventCorrelator(store).map_owned_routing(WatchEvent(EventType.MODIFIED, routing))

        assert keys == {channel.key}

    @pytest.mark.asyncio
    async def test_unowned_routing_maps_to_nothing(self, store):
        routing = ChannelRouting.model_validate({"metadata": {"name": "orphan"}})
        keys = await EventCorrelator(store).map_owned_routing(WatchEvent(EventType.ADDED, routing))
        assert keys == set()
