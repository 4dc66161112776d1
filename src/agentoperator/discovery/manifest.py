"""Capability manifest served by agents at their discovery endpoint.

``decode_manifest`` and ``encode_manifest`` are the only places where the
manifest crosses the JSON boundary; everything else works with
:class:`CapabilityManifest`.
"""

from __future__ import annotations

import json
from typing import FrozenSet, Tuple, Union

from pydantic import AliasChoices, Field, ValidationError, field_serializer, field_validator

from ..exceptions import MalformedManifestError
from ..model.capabilities import ProvidedCapability, ValueModel


class CapabilityManifest(ValueModel):
    """What an agent says about itself: identity, audience and capabilities."""

    id: str = ""
    description: str = ""
    supported_tenants: FrozenSet[str] = frozenset()
    supported_channels: FrozenSet[str] = frozenset()
    capabilities: Tuple[ProvidedCapability, ...] = Field(
        default=(),
        validation_alias=AliasChoices("capabilities", "providedCapabilities"),
    )

    @field_validator("capabilities")
    @classmethod
    def unique_capability_ids(
        cls, v: Tuple[ProvidedCapability, ...]
    ) -> Tuple[ProvidedCapability, ...]:
        ids = [c.id for c in v]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate capability ids: {', '.join(duplicates)}")
        return v

    @field_serializer("supported_tenants", "supported_channels")
    def serialize_sorted(self, v: FrozenSet[str]) -> list:
        return sorted(v)


def decode_manifest(payload: Union[str, bytes]) -> CapabilityManifest:
    """Parse a manifest document.

    Raises:
        MalformedManifestError: invalid JSON, a schema violation, an unparsable
            version or a duplicate capability id.
    """
    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as exc:
        raise MalformedManifestError(f"Manifest is not valid JSON: {exc}", cause=exc) from exc
    if not isinstance(data, dict):
        raise MalformedManifestError(
            f"Manifest must be a JSON object, got {type(data).__name__}",
            payload={"type": type(data).__name__},
        )
    try:
        return CapabilityManifest.model_validate(data)
    except ValidationError as exc:
        raise MalformedManifestError(
            f"Manifest violates the schema: {exc.error_count()} error(s)",
            cause=exc,
            payload={"errors": [e["msg"] for e in exc.errors()]},
        ) from exc


def encode_manifest(manifest: CapabilityManifest) -> str:
    return json.dumps(manifest.to_dict(), sort_keys=True)


__all__ = ["CapabilityManifest", "decode_manifest", "encode_manifest"]
