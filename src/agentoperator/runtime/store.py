"""Resource store interface and the in-memory backend.

The in-memory store mirrors the semantics controllers rely on from a cluster
API server: named upserts, label-selector lists, watch events, a status
subresource for Channels, generation tracking and owner-reference garbage
collection.
"""

from __future__ import annotations

import itertools
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Optional, Type, TypeVar

from ..exceptions import ConflictError, NotFoundError
from ..model.resources import Channel, Resource, ResourceKey
from .events import EventBus, EventType, Subscription, WatchEvent

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=Resource)

# Kinds whose status is only writable through ``patch_status``.
STATUS_SUBRESOURCE_KINDS = frozenset({Channel.kind})


def _content(value):
    """Field values of a model, ignoring which fields were explicitly set."""
    return value.model_dump() if value is not None else None


def matches_labels(resource: Resource, selector: Optional[Mapping[str, str]]) -> bool:
    if not selector:
        return True
    labels = resource.metadata.labels
    return all(labels.get(k) == v for k, v in selector.items())


class ResourceStore(ABC):
    """Abstract base class for resource store backends."""

    @abstractmethod
    async def get(self, model: Type[R], namespace: str, name: str) -> Optional[R]:
        """Return the resource or ``None`` when it does not exist."""

    @abstractmethod
    async def list(
        self,
        model: Type[R],
        namespace: Optional[str] = None,
        labels: Optional[Mapping[str, str]] = None,
    ) -> List[R]:
        """List resources of a kind, optionally narrowed by namespace and labels."""

    @abstractmethod
    async def create_or_replace(self, resource: R) -> R:
        """Create the resource or replace the stored one with the same name."""

    @abstractmethod
    async def patch_status(self, resource: R) -> R:
        """Replace only the status of an existing resource."""

    @abstractmethod
    async def delete(self, model: Type[Resource], namespace: str, name: str) -> bool:
        """Delete a resource; returns ``False`` when it was already gone."""

    @abstractmethod
    def watch(self, kind: str) -> Subscription:
        """Subscribe to ADDED/MODIFIED/DELETED events for a kind."""


class InMemoryResourceStore(ResourceStore):
    """In-memory store for development, tests and the local CLI."""

    def __init__(self) -> None:
        self._objects: Dict[ResourceKey, Resource] = {}
        self._bus = EventBus()
        self._versions = itertools.count(1)

    async def get(self, model: Type[R], namespace: str, name: str) -> Optional[R]:
        return self._objects.get(ResourceKey(model.kind, namespace, name))  # type: ignore[return-value]

    async def list(
        self,
        model: Type[R],
        namespace: Optional[str] = None,
        labels: Optional[Mapping[str, str]] = None,
    ) -> List[R]:
        found = [
            obj
            for key, obj in self._objects.items()
            if key.kind == model.kind
            and (namespace is None or key.namespace == namespace)
            and matches_labels(obj, labels)
        ]
        found.sort(key=lambda obj: obj.key)
        return found  # type: ignore[return-value]

    async def create_or_replace(self, resource: R) -> R:
        key = resource.key
        existing = self._objects.get(key)

        if existing is None:
            stored = resource.with_metadata(
                uid=resource.metadata.uid or uuid.uuid4().hex,
                resource_version=next(self._versions),
                generation=1,
            )
            self._objects[key] = stored
            logger.debug("Created %s", key)
            self._bus.publish(WatchEvent(EventType.ADDED, stored))
            return stored  # type: ignore[return-value]

        requested_version = resource.metadata.resource_version
        if requested_version and requested_version != existing.metadata.resource_version:
            raise ConflictError(
                f"{key} was modified (have {requested_version}, "
                f"stored {existing.metadata.resource_version})",
                payload={"key": str(key)},
            )

        if key.kind in STATUS_SUBRESOURCE_KINDS:
            resource = resource.model_copy(update={"status": existing.status})  # type: ignore[attr-defined]

        if not self._differs(existing, resource):
            return existing  # type: ignore[return-value]

        spec_changed = _content(existing.spec) != _content(resource.spec)  # type: ignore[attr-defined]
        stored = resource.with_metadata(
            uid=existing.metadata.uid,
            resource_version=next(self._versions),
            generation=existing.metadata.generation + (1 if spec_changed else 0),
        )
        self._objects[key] = stored
        logger.debug("Replaced %s (generation %d)", key, stored.metadata.generation)
        self._bus.publish(WatchEvent(EventType.MODIFIED, stored, existing))
        return stored  # type: ignore[return-value]

    async def patch_status(self, resource: R) -> R:
        key = resource.key
        existing = self._objects.get(key)
        if existing is None:
            raise NotFoundError(f"Cannot patch status of missing {key}", payload={"key": str(key)})

        status = resource.status  # type: ignore[attr-defined]
        if _content(existing.status) == _content(status):  # type: ignore[attr-defined]
            return existing  # type: ignore[return-value]

        stored = existing.model_copy(update={"status": status}).with_metadata(
            resource_version=next(self._versions)
        )
        self._objects[key] = stored
        logger.debug("Patched status of %s", key)
        self._bus.publish(WatchEvent(EventType.MODIFIED, stored, existing))
        return stored  # type: ignore[return-value]

    async def delete(self, model: Type[Resource], namespace: str, name: str) -> bool:
        return self._delete(ResourceKey(model.kind, namespace, name))

    def watch(self, kind: str) -> Subscription:
        return self._bus.subscribe(kind)

    def _delete(self, key: ResourceKey) -> bool:
        removed = self._objects.pop(key, None)
        if removed is None:
            return False
        logger.debug("Deleted %s", key)
        self._bus.publish(WatchEvent(EventType.DELETED, removed))

        uid = removed.metadata.uid
        dependents = [
            dep_key
            for dep_key, obj in self._objects.items()
            if any(ref.uid == uid for ref in obj.metadata.owner_references)
        ]
        for dep_key in dependents:
            logger.debug("Garbage collecting %s owned by %s", dep_key, key)
            self._delete(dep_key)
        return True

    @staticmethod
    def _differs(existing: Resource, candidate: Resource) -> bool:
        old = existing.metadata
        return _content(existing) != _content(candidate.model_copy(update={"metadata": old})) or (
            (old.labels, old.annotations, old.owner_references)
            != (
                candidate.metadata.labels,
                candidate.metadata.annotations,
                candidate.metadata.owner_references,
            )
        )

    def __len__(self) -> int:
        return len(self._objects)


__all__ = ["InMemoryResourceStore", "ResourceStore", "STATUS_SUBRESOURCE_KINDS", "matches_labels"]
