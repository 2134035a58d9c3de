"""Source database implementations."""

from .oracle import OracleDiscovery

__all__ = ["OracleDiscovery"]
