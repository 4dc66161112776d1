"""
agentoperator.resolver

Matching of Channel requirements against Agent-provided capabilities.
"""

from .capability_resolver import CapabilityResolver, ResolutionResult, Wire
from .exceptions import ResolverException

__all__ = [
    "CapabilityResolver",
    "ResolutionResult",
    "ResolverException",
    "Wire",
]
