"""Asyncio control-loop runtime: store, watch events, controllers and retry."""

from .controller import (
    Context,
    Controller,
    ControllerRegistration,
    ControllerRegistry,
    DependentResource,
    FailureRecord,
    ReconcileResult,
    Reconciler,
    SecondaryWatch,
)
from .events import EventBus, EventType, Subscription, WatchEvent
from .manager import OperatorManager
from .retry import DEFAULT_RETRY_POLICY, DISCOVERY_RETRY_POLICY, BackoffPolicy
from .store import InMemoryResourceStore, ResourceStore

__all__ = [
    "BackoffPolicy",
    "Context",
    "Controller",
    "ControllerRegistration",
    "ControllerRegistry",
    "DEFAULT_RETRY_POLICY",
    "DISCOVERY_RETRY_POLICY",
    "DependentResource",
    "EventBus",
    "EventType",
    "FailureRecord",
    "InMemoryResourceStore",
    "OperatorManager",
    "ReconcileResult",
    "Reconciler",
    "ResourceStore",
    "SecondaryWatch",
    "Subscription",
    "WatchEvent",
]
