from .alerting import CostAlertMonitor
from .sink import LoggingAlertSink, SystemAlertSink, WebhookAlertSink, build_alert_sink

__all__ = [
    "CostAlertMonitor",
    "LoggingAlertSink",
    "SystemAlertSink",
    "WebhookAlertSink",
    "build_alert_sink",
]
