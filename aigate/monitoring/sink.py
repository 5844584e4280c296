"""
System alert sinks: where fired alerts are forwarded after de-duplication.
"""

from __future__ import annotations

import time
import uuid
from typing import Optional, Protocol

import httpx

from aigate.logging_config import logger
from aigate.models import AlertHandle, AlertSeverity
from aigate.settings import settings


class SystemAlertSink(Protocol):
    async def raise_alert(
        self, alert_type: str, message: str, severity: AlertSeverity
    ) -> AlertHandle: ...


def _new_handle(alert_type: str, message: str, severity: AlertSeverity) -> AlertHandle:
    return AlertHandle(
        alert_id=uuid.uuid4().hex,
        alert_type=alert_type,
        severity=severity,
        message=message,
        created_at=time.time(),
    )


class LoggingAlertSink:
    """Writes alerts to the application log."""

    async def raise_alert(
        self, alert_type: str, message: str, severity: AlertSeverity
    ) -> AlertHandle:
        handle = _new_handle(alert_type, message, severity)
        if severity in (AlertSeverity.HIGH, AlertSeverity.CRITICAL):
            logger.error("SYSTEM ALERT %s (%s): %s", alert_type, severity.value, message)
        else:
            logger.warning("SYSTEM ALERT %s (%s): %s", alert_type, severity.value, message)
        return handle


class WebhookAlertSink:
    """
    POSTs each alert as JSON to a webhook. HTTP errors propagate to the
    caller, which logs them.
    """

    def __init__(self, url: str, *, client: Optional[httpx.AsyncClient] = None) -> None:
        self.url = url
        self._client = client

    async def raise_alert(
        self, alert_type: str, message: str, severity: AlertSeverity
    ) -> AlertHandle:
        handle = _new_handle(alert_type, message, severity)
        payload = handle.model_dump(mode="json")
        if self._client is not None:
            resp = await self._client.post(self.url, json=payload)
        else:
            async with httpx.AsyncClient(timeout=settings.upstream_timeout) as client:
                resp = await client.post(self.url, json=payload)
        resp.raise_for_status()
        return handle


def build_alert_sink() -> SystemAlertSink:
    if settings.alert_webhook_url:
        return WebhookAlertSink(settings.alert_webhook_url)
    return LoggingAlertSink()


__all__ = ["LoggingAlertSink", "SystemAlertSink", "WebhookAlertSink", "build_alert_sink"]
