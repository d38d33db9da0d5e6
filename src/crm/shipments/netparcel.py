"""Async HTTP client for the NetParcel shipping API.

Provides NetParcelClient for label creation, tracking, rate quotes and
cancellation. Every call is a single attempt; failures surface as
NetParcelError carrying the provider's message so routes can relay it.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from src.crm.core.monitoring import track_external_call

logger = structlog.get_logger(__name__)

DEFAULT_ORIGIN_POSTAL_CODE = "M5H2N2"


class NetParcelError(Exception):
    """Raised when NetParcel rejects a request or cannot be reached."""


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.reason_phrase or f"HTTP {response.status_code}"


def verify_webhook_signature(payload: str | bytes, signature: str, secret: str) -> bool:
    """Check a hex HMAC-SHA256 signature over the raw webhook body."""
    if isinstance(payload, str):
        payload = payload.encode()
    digest = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(digest, signature)


class NetParcelClient:
    """Async client for NetParcel REST API.

    Args:
        api_key: NetParcel API key (sent as a Bearer token).
        account_id: NetParcel account id (sent as X-Account-ID).
        base_url: API root, e.g. https://api.netparcel.com/v1.
        origin_postal_code: Default ship-from postal code for rate quotes.
    """

    TIMEOUT_MUTATE = 30.0
    TIMEOUT_READ = 10.0

    def __init__(
        self,
        api_key: str,
        account_id: str,
        base_url: str = "https://api.netparcel.com/v1",
        origin_postal_code: str = DEFAULT_ORIGIN_POSTAL_CODE,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._origin_postal_code = origin_postal_code
        self._headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
            "X-Account-ID": account_id,
        }

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(headers=self._headers, timeout=timeout)

    @staticmethod
    def _check(response: httpx.Response, operation: str) -> Any:
        if response.status_code >= 400:
            message = _error_message(response)
            logger.error(
                "netparcel.request_failed",
                operation=operation,
                status_code=response.status_code,
                error=message,
            )
            raise NetParcelError(f"NetParcel API Error: {message}")
        if not response.content:
            return {}
        return response.json()

    async def create_shipment(
        self,
        *,
        customer_id: str,
        weight: float,
        length: float,
        width: float,
        height: float,
        service_level: str,
        package_count: int = 1,
        invoice_id: str | None = None,
    ) -> dict:
        """Create a shipment and purchase its label.

        POST /shipments

        Returns:
            Provider response with tracking_number, label_url, cost,
            estimated_delivery_date and carrier.
        """
        payload = {
            "weight": weight,
            "dimensions": {"length": length, "width": width, "height": height},
            "service_level": service_level,
            "package_count": package_count or 1,
            "customer_reference": customer_id,
            "invoice_reference": invoice_id,
        }
        async with track_external_call("netparcel", "create_shipment"):
            try:
                async with self._client(self.TIMEOUT_MUTATE) as client:
                    response = await client.post(f"{self._base_url}/shipments", json=payload)
            except httpx.HTTPError as exc:
                raise NetParcelError(f"NetParcel API Error: {exc}") from exc
            data = self._check(response, "create_shipment")
        logger.info(
            "netparcel.shipment_created",
            customer_id=customer_id,
            tracking_number=data.get("tracking_number"),
        )
        return data

    async def get_tracking(self, tracking_number: str) -> dict:
        """GET /tracking/{tracking_number} -- status, events, delivered_date."""
        url = f"{self._base_url}/tracking/{quote(tracking_number, safe='')}"
        async with track_external_call("netparcel", "get_tracking"):
            try:
                async with self._client(self.TIMEOUT_READ) as client:
                    response = await client.get(url)
            except httpx.HTTPError as exc:
                raise NetParcelError(f"NetParcel API Error: {exc}") from exc
            return self._check(response, "get_tracking")

    async def get_rates(
        self,
        *,
        weight: float,
        length: float,
        width: float,
        height: float,
        destination_postal_code: str,
        origin_postal_code: str | None = None,
    ) -> dict:
        """POST /rates -- returns ``{"rates": [{service, cost, days}, ...]}``."""
        payload = {
            "weight": weight,
            "dimensions": {"length": length, "width": width, "height": height},
            "destination_postal_code": destination_postal_code,
            "origin_postal_code": origin_postal_code or self._origin_postal_code,
        }
        async with track_external_call("netparcel", "get_rates"):
            try:
                async with self._client(self.TIMEOUT_READ) as client:
                    response = await client.post(f"{self._base_url}/rates", json=payload)
            except httpx.HTTPError as exc:
                raise NetParcelError(f"NetParcel API Error: {exc}") from exc
            return self._check(response, "get_rates")

    async def cancel_shipment(self, tracking_number: str) -> None:
        """DELETE /shipments/{tracking_number}."""
        url = f"{self._base_url}/shipments/{quote(tracking_number, safe='')}"
        async with track_external_call("netparcel", "cancel_shipment"):
            try:
                async with self._client(self.TIMEOUT_MUTATE) as client:
                    response = await client.delete(url)
            except httpx.HTTPError as exc:
                raise NetParcelError(f"NetParcel API Error: {exc}") from exc
            self._check(response, "cancel_shipment")
        logger.info("netparcel.shipment_cancelled", tracking_number=tracking_number)
