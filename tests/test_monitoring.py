"""Unit tests for Prometheus metrics and the Sentry scrubber.

Tests cover:
- track_external_call success and error counting
- MetricsMiddleware labels requests by route pattern
- /metrics exposition response
- init_sentry before_send header scrubbing
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from src.crm.core.monitoring import (
    MetricsMiddleware,
    external_api_requests_total,
    get_metrics_response,
    http_requests_total,
    init_sentry,
    track_external_call,
)


# ── track_external_call ──────────────────────────────────────────────────────


class TestTrackExternalCall:
    """Tests for the external API call context manager."""

    async def test_success_increments_counter(self):
        counter = external_api_requests_total.labels(
            service="netparcel", operation="unit_test_ok", status="success"
        )
        before = counter._value.get()

        async with track_external_call("netparcel", "unit_test_ok"):
            pass

        assert counter._value.get() == before + 1

    async def test_error_counted_and_reraised(self):
        counter = external_api_requests_total.labels(
            service="stripe", operation="unit_test_fail", status="error"
        )
        before = counter._value.get()

        with pytest.raises(RuntimeError):
            async with track_external_call("stripe", "unit_test_fail"):
                raise RuntimeError("card_declined")

        assert counter._value.get() == before + 1


# ── Middleware and endpoint ──────────────────────────────────────────────────


async def test_metrics_middleware_uses_route_pattern():
    app = FastAPI()
    app.add_middleware(MetricsMiddleware)

    @app.get("/items/{item_id}")
    async def get_item(item_id: str):
        return {"id": item_id}

    counter = http_requests_total.labels(method="GET", endpoint="/items/{item_id}", status_code="200")
    before = counter._value.get()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        await ac.get("/items/abc")
        await ac.get("/items/def")

    assert counter._value.get() == before + 2


def test_metrics_response_exposes_counters():
    response = get_metrics_response()
    assert response.media_type.startswith("text/plain")
    assert b"external_api_requests_total" in response.body
    assert b"webhook_events_total" in response.body


# ── Sentry ───────────────────────────────────────────────────────────────────


def test_init_sentry_scrubs_credentials():
    with patch("sentry_sdk.init") as mock_init:
        init_sentry(dsn="https://key@sentry.test/1", environment="production")

    kwargs = mock_init.call_args.kwargs
    assert kwargs["traces_sample_rate"] == 0.1
    assert kwargs["send_default_pii"] is False

    event = {
        "request": {
            "headers": {
                "Authorization": "Bearer secret",
                "Stripe-Signature": "t=1,v1=abc",
                "Accept": "application/json",
            }
        }
    }
    scrubbed = kwargs["before_send"](event, {})
    assert scrubbed["request"]["headers"]["Authorization"] == "[Filtered]"
    assert scrubbed["request"]["headers"]["Stripe-Signature"] == "[Filtered]"
    assert scrubbed["request"]["headers"]["Accept"] == "application/json"
    assert scrubbed["tags"]["app"] == "purrify-crm"


def test_init_sentry_samples_everything_outside_production():
    with patch("sentry_sdk.init") as mock_init:
        init_sentry(dsn="https://key@sentry.test/1", environment="staging")
    assert mock_init.call_args.kwargs["traces_sample_rate"] == 1.0
