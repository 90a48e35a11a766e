"""Monitoring: counters/history storage and the terminal dashboard."""

from jobspine.monitoring.dashboard import Dashboard, format_duration, render, sparkline
from jobspine.monitoring.store import (
    MemoryMonitoringStore,
    MonitoringStore,
    RedisMonitoringStore,
)

__all__ = [
    "Dashboard",
    "MemoryMonitoringStore",
    "MonitoringStore",
    "RedisMonitoringStore",
    "format_duration",
    "render",
    "sparkline",
]
