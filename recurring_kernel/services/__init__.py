"""Services for the recurring kernel."""

from recurring_kernel.services.payment_monitor import (
    AlertConfig,
    MonitorCategory,
    MonitorEvent,
    MonitorMetrics,
    MonitorSeverity,
    PaymentMonitor,
)

__all__ = [
    "AlertConfig",
    "MonitorCategory",
    "MonitorEvent",
    "MonitorMetrics",
    "MonitorSeverity",
    "PaymentMonitor",
]
