"""Failure type used to report an incomplete capability resolution."""

from __future__ import annotations

from typing import TYPE_CHECKING, FrozenSet, Iterable, Optional, Tuple

from ..exceptions import AgentOperatorError
from ..model.capabilities import RequiredCapability

if TYPE_CHECKING:
    from .capability_resolver import Wire


class ResolverException(AgentOperatorError):
    """Indicates failure to resolve a set of required capabilities.

    The exception keeps the partial outcome: the wires that *did* resolve and
    every requirement that did not. Callers can log it or turn it into a status
    while still routing to whatever was matched.
    """

    def __init__(
        self,
        resolved_wires: Iterable["Wire"] = (),
        unresolved_required_capabilities: Iterable[RequiredCapability] = (),
        *,
        message: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        wires = tuple(resolved_wires)
        unresolved = frozenset(unresolved_required_capabilities)
        if message is None and cause is not None and not unresolved:
            message = f"Capability resolution failed: {cause}"
        elif message is None:
            message = "Required capabilities not resolved: " + ", ".join(
                str(c) for c in sorted(unresolved, key=lambda c: c.id)
            )
        super().__init__(
            message,
            cause=cause,
            payload={"unresolved": sorted(c.id for c in unresolved)},
        )
        self._resolved_wires = wires
        self._unresolved = unresolved

    @property
    def resolved_wires(self) -> Tuple["Wire", ...]:
        return self._resolved_wires

    @property
    def unresolved_required_capabilities(self) -> FrozenSet[RequiredCapability]:
        return self._unresolved
