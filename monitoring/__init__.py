"""Monitoring module.

Provides Prometheus metrics for the player engine and the relay services.
"""

from .metrics import RelayMetrics, SyncMetrics

__all__ = [
    "SyncMetrics",
    "RelayMetrics",
]

__version__ = "1.0.0"
