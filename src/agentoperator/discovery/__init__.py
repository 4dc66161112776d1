"""Discovery of agent capabilities from running workloads."""

from .client import AgentClient
from .generator import build_agent_resource
from .manifest import CapabilityManifest, decode_manifest, encode_manifest
from .workloads import base_url, find_service, is_ready, service_url

__all__ = [
    "AgentClient",
    "CapabilityManifest",
    "base_url",
    "build_agent_resource",
    "decode_manifest",
    "encode_manifest",
    "find_service",
    "is_ready",
    "service_url",
]
