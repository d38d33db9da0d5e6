"""Prometheus metrics, Sentry integration, and external API call tracking.

Provides:
- MetricsMiddleware: ASGI middleware for HTTP request metrics
- init_sentry(): Initialize Sentry with a before_send scrubber
- track_external_call(): Context manager for NetParcel/Resend/Stripe call metrics
- get_metrics_response(): Response for the /metrics route
"""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from prometheus_client import (
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ── HTTP Metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# ── External API Metrics ─────────────────────────────────────────────────────

external_api_requests_total = Counter(
    "external_api_requests_total",
    "Total calls to third-party APIs",
    ["service", "operation", "status"],
)

external_api_duration_seconds = Histogram(
    "external_api_duration_seconds",
    "Third-party API call duration in seconds",
    ["service", "operation"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# ── Domain Metrics ───────────────────────────────────────────────────────────

rate_limit_rejections_total = Counter(
    "rate_limit_rejections_total",
    "Requests rejected by the in-process rate limiter",
    ["key"],
)

webhook_events_total = Counter(
    "webhook_events_total",
    "Webhook events received",
    ["provider", "event_type", "outcome"],
)


# ── Metrics Middleware ───────────────────────────────────────────────────────


class MetricsMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that records Prometheus metrics for every HTTP request.

    Uses the matched route path pattern as the endpoint label when available
    so ids in URLs don't explode label cardinality. Skips the /metrics
    endpoint itself.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        route = request.scope.get("route")
        endpoint = getattr(route, "path", None) or request.url.path

        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=str(response.status_code),
        ).inc()

        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)

        return response


# ── External Call Helper ─────────────────────────────────────────────────────


@asynccontextmanager
async def track_external_call(
    service: str,
    operation: str,
) -> AsyncGenerator[dict[str, Any], None]:
    """Context manager that tracks a third-party API call.

    Usage:
        async with track_external_call("netparcel", "create_shipment"):
            response = await client.post(...)

    Records duration and a success/error request count.
    """
    tracker: dict[str, Any] = {}
    start_time = time.perf_counter()
    status = "success"

    try:
        yield tracker
    except Exception:
        status = "error"
        raise
    finally:
        duration = time.perf_counter() - start_time

        external_api_requests_total.labels(
            service=service,
            operation=operation,
            status=status,
        ).inc()

        external_api_duration_seconds.labels(
            service=service,
            operation=operation,
        ).observe(duration)


# ── Sentry Integration ───────────────────────────────────────────────────────

_SCRUBBED_HEADERS = {"authorization", "cookie", "stripe-signature", "svix-signature"}


def init_sentry(dsn: str, environment: str) -> None:
    """Initialize Sentry SDK.

    Args:
        dsn: Sentry DSN string.
        environment: Deployment environment (development, staging, production).
    """
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.starlette import StarletteIntegration

    traces_sample_rate = 0.1 if environment == "production" else 1.0

    def before_send(event: dict, hint: dict) -> dict:
        """Drop credentials from request headers before events leave the process."""
        headers = event.get("request", {}).get("headers")
        if isinstance(headers, dict):
            for name in list(headers):
                if name.lower() in _SCRUBBED_HEADERS:
                    headers[name] = "[Filtered]"
        event.setdefault("tags", {})["app"] = "purrify-crm"
        return event

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=traces_sample_rate,
        send_default_pii=False,
        integrations=[
            StarletteIntegration(),
            FastApiIntegration(),
        ],
        before_send=before_send,
    )


# ── Metrics Endpoint ─────────────────────────────────────────────────────────


def get_metrics_response() -> Response:
    """Generate Prometheus exposition format response."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
