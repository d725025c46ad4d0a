from .leak_monitor_job import (
    ConversionLeakMonitor,
    LeakMonitorMetrics,
    conversion_leak_monitor,
    start_conversion_leak_monitor,
)

__all__ = [
    "ConversionLeakMonitor",
    "LeakMonitorMetrics",
    "conversion_leak_monitor",
    "start_conversion_leak_monitor",
]
