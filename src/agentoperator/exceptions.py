"""Exception hierarchy for the agent operator.

Provides structured error handling with context preservation and serialization
for logs and the controller failure table.
"""

from __future__ import annotations

from typing import Any, Optional


class AgentOperatorError(RuntimeError):
    """Base class for all errors raised by the operator.

    Stores optional context that can be rendered in logs and failure reports.
    """

    def __init__(
        self,
        message: str,
        *,
        cause: Optional[BaseException] = None,
        payload: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.cause = cause
        self.payload = payload or {}

    def to_dict(self) -> dict[str, Any]:
        """Serializable representation for logs and failure reports."""
        data = {"error": self.__class__.__name__, "message": str(self)}
        if self.payload:
            data["payload"] = self.payload
        if self.cause:
            data["cause"] = repr(self.cause)
        return data


# Configuration errors
class ConfigError(AgentOperatorError):
    """Raised when essential configuration is missing or malformed."""
    pass


# Discovery errors
class DiscoveryError(AgentOperatorError):
    """Base for every failure while discovering an agent's capabilities."""
    pass


class NetworkError(DiscoveryError):
    """Transport-level problems (timeouts, connection refused, etc.)."""
    pass


class DiscoveryProtocolError(DiscoveryError):
    """The discovery endpoint answered, but not with a usable response (non-2xx, empty body)."""
    pass


class MalformedManifestError(DiscoveryProtocolError):
    """The capability manifest is not valid JSON or violates the manifest schema."""
    pass


class ServiceResolutionError(DiscoveryError):
    """Zero or several services match a workload, so it has no unambiguous address."""
    pass


# Resource store errors
class StoreError(AgentOperatorError):
    """Base class for resource store problems."""
    pass


class NotFoundError(StoreError):
    """The addressed resource does not exist."""
    pass


class ConflictError(StoreError):
    """A write was rejected because the stored object changed concurrently."""
    pass


# Control loop errors
class ReconcileError(AgentOperatorError):
    """A reconcile invocation failed and should be retried by the control loop."""
    pass
