"""
agentoperator - keeps Channel capability requirements resolved against discovered Agents.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
