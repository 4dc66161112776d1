"""Tests for manifest decoding, the HTTP agent client and workload addressing."""

import json

import httpx
import pytest

from agentoperator.constants import AGENT_ID_LABEL_KEY, CAPABILITIES_PATH_ANNOTATION, SUBSET_LABEL_KEY
from agentoperator.discovery import (
    build_agent_resource,
    decode_manifest,
    encode_manifest,
    find_service,
    is_ready,
    service_url,
)
from agentoperator.discovery.client import AgentClient
from agentoperator.discovery.workloads import base_url, join_url, select_port
from agentoperator.exceptions import (
    DiscoveryError,
    DiscoveryProtocolError,
    MalformedManifestError,
    NetworkError,
    ServiceResolutionError,
)
from agentoperator.model import ServicePort, WorkloadStatus
from utils import make_service, make_workload, manifest_payload, mock_client

URL = "http://billing-agent.default.svc.cluster.local:8080/.well-known/capabilities.json"


# ----------------------------------------------------------------------
# Manifest codec
# ----------------------------------------------------------------------
class TestManifest:
    def test_decode(self):
        manifest = decode_manifest(json.dumps(manifest_payload()))
        assert manifest.id == "billing-agent"
        assert manifest.supported_channels == frozenset({"ivr", "web"})
        assert [c.id for c in manifest.capabilities] == ["view-bill", "download-bill"]
        assert manifest.capabilities[0].description == "Shows a bill"

    def test_decode_accepts_provided_capabilities_key(self):
        payload = manifest_payload(capabilities=[])
        del payload["capabilities"]
        payload["providedCapabilities"] = [{"name": "view-bill", "version": "1.0.0"}]
        manifest = decode_manifest(json.dumps(payload))
        assert manifest.capabilities[0].id == "view-bill"

    def test_unknown_keys_are_ignored(self):
        manifest = decode_manifest(json.dumps(manifest_payload(owner="billing-team")))
        assert manifest.id == "billing-agent"

    def test_decode_bytes(self):
        assert decode_manifest(json.dumps(manifest_payload()).encode()).id == "billing-agent"

    @pytest.mark.parametrize("body", ["{not json", "", "[1, 2]", '"text"'])
    def test_invalid_documents(self, body):
        with pytest.raises(MalformedManifestError):
            decode_manifest(body)

    def test_schema_violation_lists_errors(self):
        payload = manifest_payload(capabilities=[{"id": "x", "name": "x", "version": "one"}])
        with pytest.raises(MalformedManifestError) as exc_info:
            decode_manifest(json.dumps(payload))
        assert exc_info.value.payload["errors"]
        assert isinstance(exc_info.value, DiscoveryProtocolError)

    def test_duplicate_capability_ids(self):
        payload = manifest_payload(
            capabilities=[
                {"id": "x", "name": "x", "version": "1.0.0"},
                {"id": "x", "name": "x", "version": "2.0.0"},
            ]
        )
        with pytest.raises(MalformedManifestError):
            decode_manifest(json.dumps(payload))

    def test_encode_is_canonical(self):
        manifest = decode_manifest(json.dumps(manifest_payload()))
        encoded = encode_manifest(manifest)
        data = json.loads(encoded)
        assert data["supportedChannels"] == ["ivr", "web"]
        assert list(data) == sorted(data)
        assert decode_manifest(encoded) == manifest


# ----------------------------------------------------------------------
# HTTP client
# ----------------------------------------------------------------------
class TestAgentClient:
    @pytest.mark.asyncio
    async def test_fetch_manifest(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["accept"] = request.headers["accept"]
            return httpx.Response(200, json=manifest_payload())

        async with mock_client(handler) as client:
            manifest = await client.fetch_manifest(URL)

        assert manifest.id == "billing-agent"
        assert seen == {"url": URL, "accept": "application/json"}

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        async with mock_client(lambda request: httpx.Response(404, text="nope")) as client:
            with pytest.raises(DiscoveryProtocolError) as exc_info:
                await client.fetch_manifest(URL)
        assert str(exc_info.value) == f"Discovery endpoint {URL} returned HTTP 404"
        assert exc_info.value.payload["status"] == 404

    @pytest.mark.asyncio
    async def test_empty_body(self):
        async with mock_client(lambda request: httpx.Response(200, content=b"  ")) as client:
            with pytest.raises(DiscoveryProtocolError, match="is empty"):
                await client.fetch_manifest(URL)

    @pytest.mark.asyncio
    async def test_transport_failure_is_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with mock_client(handler) as client:
            with pytest.raises(NetworkError) as exc_info:
                await client.fetch_manifest(URL)
        assert isinstance(exc_info.value.cause, httpx.ConnectError)
        assert isinstance(exc_info.value, DiscoveryError)

    @pytest.mark.asyncio
    async def test_malformed_body(self):
        async with mock_client(lambda request: httpx.Response(200, text="<html/>")) as client:
            with pytest.raises(MalformedManifestError):
                await client.fetch_manifest(URL)

    @pytest.mark.asyncio
    async def test_borrowed_http_client_is_not_closed(self):
        http = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(204)))
        await AgentClient(http=http).aclose()
        assert not http.is_closed
        await http.aclose()


# ----------------------------------------------------------------------
# Workloads and services
# ----------------------------------------------------------------------
class TestReadiness:
    def test_ready(self):
        assert is_ready(make_workload(replicas=3))

    def test_not_available(self):
        assert not is_ready(make_workload(ready=False))

    def test_missing_status(self):
        workload = make_workload().model_copy(update={"status": WorkloadStatus()})
        assert not is_ready(workload)

    def test_scaling(self):
        workload = make_workload(replicas=3).model_copy(
            update={"status": WorkloadStatus(replicas=2, available_replicas=2)}
        )
        assert not is_ready(workload)


class TestServiceLookup:
    @pytest.mark.asyncio
    async def test_single_matching_service(self, store):
        await store.create_or_replace(make_service())
        await store.create_or_replace(make_service("other", selector={"app": "other"}))
        service = await find_service(store, make_workload())
        assert service.name == "billing-agent"

    @pytest.mark.asyncio
    async def test_no_service(self, store):
        with pytest.raises(ServiceResolutionError) as exc_info:
            await find_service(store, make_workload())
        assert str(exc_info.value) == (
            "Expected exactly one service for workload 'billing-agent', but got 0"
        )

    @pytest.mark.asyncio
    async def test_ambiguous_services(self, store):
        await store.create_or_replace(make_service("a", selector={"app": "billing-agent"}))
        await store.create_or_replace(make_service("b", selector={"app": "billing-agent"}))
        with pytest.raises(ServiceResolutionError, match="but got 2"):
            await find_service(store, make_workload())

    @pytest.mark.asyncio
    async def test_empty_selector_never_matches(self, store):
        await store.create_or_replace(make_service(selector={}))
        with pytest.raises(ServiceResolutionError):
            await find_service(store, make_workload())

    @pytest.mark.asyncio
    async def test_other_namespace_is_ignored(self, store):
        await store.create_or_replace(make_service(namespace="elsewhere"))
        with pytest.raises(ServiceResolutionError):
            await find_service(store, make_workload())


class TestServiceUrl:
    def test_plain_http(self):
        assert base_url(make_service()) == "http://billing-agent.default.svc.cluster.local:8080"

    def test_https_by_app_protocol(self):
        service = make_service(ports=[ServicePort(name="web", port=8443, app_protocol="https")])
        assert base_url(service).startswith("https://")

    def test_https_by_port_443(self):
        service = make_service(ports=[ServicePort(port=443)])
        assert base_url(service) == "https://billing-agent.default.svc.cluster.local:443"

    def test_port_preference(self):
        ports = [
            ServicePort(name="metrics", port=9090),
            ServicePort(name="grpc", port=9000, app_protocol="grpc"),
            ServicePort(name="http", port=8080),
        ]
        assert select_port(make_service(ports=ports)).port == 8080

        ports.append(ServicePort(name="api", port=8081, app_protocol="http"))
        assert select_port(make_service(ports=ports)).port == 8081

    def test_first_port_as_fallback(self):
        ports = [ServicePort(name="a", port=7000), ServicePort(name="b", port=7001)]
        assert select_port(make_service(ports=ports)).port == 7000

    def test_no_ports(self):
        with pytest.raises(ServiceResolutionError):
            select_port(make_service(ports=()))

    def test_join_url(self):
        assert join_url("http://h:1", "a/b") == "http://h:1/a/b"
        assert join_url("http://h:1", "/a/b") == "http://h:1/a/b"

    @pytest.mark.asyncio
    async def test_default_path(self, store):
        await store.create_or_replace(make_service())
        assert await service_url(store, make_workload()) == URL

    @pytest.mark.asyncio
    async def test_path_annotation(self, store):
        await store.create_or_replace(make_service())
        workload = make_workload(annotations={CAPABILITIES_PATH_ANNOTATION: "/api/caps"})
        url = await service_url(store, workload)
        assert url == "http://billing-agent.default.svc.cluster.local:8080/api/caps"


# ----------------------------------------------------------------------
# Agent generation
# ----------------------------------------------------------------------
class TestGenerator:
    def test_agent_mirrors_manifest(self):
        manifest = decode_manifest(json.dumps(manifest_payload(agent_id="billing")))
        agent = build_agent_resource(make_workload(subset="canary"), manifest)

        assert agent.name == "billing-agent"
        assert agent.namespace == "default"
        assert agent.labels == {SUBSET_LABEL_KEY: "canary", AGENT_ID_LABEL_KEY: "billing"}
        assert agent.spec.supported_tenants == frozenset({"acme"})
        assert agent.spec.provided_capabilities == manifest.capabilities

    def test_default_subset_and_missing_id(self):
        manifest = decode_manifest(json.dumps(manifest_payload(agent_id="")))
        agent = build_agent_resource(make_workload(), manifest)
        assert agent.labels == {SUBSET_LABEL_KEY: "stable"}
