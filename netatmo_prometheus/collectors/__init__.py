"""
Netatmo Metrics collector package.

Exports:
- NETATMO_METRICS
- NetatmoMetrics
"""

from .metrics import (
     NetatmoMetrics,
     NETATMO_METRICS
 )


__all__ = [
    "NETATMO_METRICS",
    "NetatmoMetrics",
]
