"""Capability value types shared by Agents, Channels and the resolver."""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, Tuple

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .semver import SemanticVersion, VersionRange


class ResolveStrategy(str, Enum):
    """Which satisfying version wins when several agents qualify."""

    HIGHEST = "HIGHEST"
    LOWEST = "LOWEST"

    @classmethod
    def _missing_(cls, value: object) -> "ResolveStrategy | None":
        if isinstance(value, str):
            return cls.__members__.get(value.upper())
        return None

    def pick(self, versions: Iterable[SemanticVersion]) -> SemanticVersion:
        if self is ResolveStrategy.LOWEST:
            return min(versions)
        return max(versions)


class ValueModel(BaseModel):
    """Immutable model serialized with camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _default_id_to_name(data: Any) -> Any:
    # a blank id falls back to the capability name
    if isinstance(data, dict) and not data.get("id") and data.get("name"):
        return {**data, "id": data["name"]}
    return data


class ProvidedCapability(ValueModel):
    id: str
    name: str
    version: str
    description: str = ""
    examples: Tuple[str, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def default_id(cls, data: Any) -> Any:
        return _default_id_to_name(data)

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        SemanticVersion.parse(v)
        return v

    @property
    def semantic_version(self) -> SemanticVersion:
        return SemanticVersion.parse(self.version)


class RequiredCapability(ValueModel):
    id: str
    name: str
    version: str = "*"
    strategy: ResolveStrategy = ResolveStrategy.HIGHEST

    @model_validator(mode="before")
    @classmethod
    def default_id(cls, data: Any) -> Any:
        return _default_id_to_name(data)

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        VersionRange.parse(v)
        return v

    @property
    def version_range(self) -> VersionRange:
        return VersionRange.parse(self.version)

    def is_satisfied_by(self, capability: ProvidedCapability) -> bool:
        return capability.id == self.id and self.version_range.satisfied_by(
            capability.semantic_version
        )

    def __str__(self) -> str:
        return f"{self.id}:{self.version} ({self.strategy.value})"


__all__ = [
    "ProvidedCapability",
    "RequiredCapability",
    "ResolveStrategy",
    "ValueModel",
]
