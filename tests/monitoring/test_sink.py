import json
import logging

import httpx
import pytest

from aigate.models import AlertSeverity
from aigate.monitoring.sink import LoggingAlertSink, WebhookAlertSink, build_alert_sink
from aigate.settings import settings


@pytest.mark.asyncio
async def test_webhook_sink_posts_alert_json():
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(json.loads(request.content))
        return httpx.Response(202)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        sink = WebhookAlertSink("https://hooks.mock.local/alerts", client=client)
        handle = await sink.raise_alert("PROVIDER_DOWN", "[p] down", AlertSeverity.CRITICAL)

    assert received == [handle.model_dump(mode="json")]
    assert received[0]["severity"] == "CRITICAL"
    assert handle.alert_id


@pytest.mark.asyncio
async def test_webhook_sink_raises_on_http_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        sink = WebhookAlertSink("https://hooks.mock.local/alerts", client=client)
        with pytest.raises(httpx.HTTPStatusError):
            await sink.raise_alert("PROVIDER_DOWN", "[p] down", AlertSeverity.CRITICAL)


@pytest.mark.asyncio
async def test_logging_sink_logs_by_severity(caplog):
    sink = LoggingAlertSink()
    with caplog.at_level(logging.WARNING, logger="aigate"):
        await sink.raise_alert("SLOW_RESPONSE", "[p] slow", AlertSeverity.MEDIUM)
        await sink.raise_alert("PROVIDER_DOWN", "[p] down", AlertSeverity.CRITICAL)

    levels = [r.levelno for r in caplog.records if "SYSTEM ALERT" in r.getMessage()]
    assert levels == [logging.WARNING, logging.ERROR]


def test_build_alert_sink_uses_webhook_when_configured(monkeypatch):
    monkeypatch.setattr(settings, "alert_webhook_url", None)
    assert isinstance(build_alert_sink(), LoggingAlertSink)

    monkeypatch.setattr(settings, "alert_webhook_url", "https://hooks.mock.local/alerts")
    sink = build_alert_sink()
    assert isinstance(sink, WebhookAlertSink)
    assert sink.url == "https://hooks.mock.local/alerts"
