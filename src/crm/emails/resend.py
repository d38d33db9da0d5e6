"""Async HTTP client for the Resend transactional email API.

Provides ResendClient with single-message, batch, and status lookups.
Failures raise EmailDeliveryError with the provider message so callers can
log it or surface it in a 500 response.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.crm.core.monitoring import track_external_call

logger = structlog.get_logger(__name__)

RESEND_API_URL = "https://api.resend.com"


class EmailDeliveryError(Exception):
    """Raised when Resend rejects or fails to accept an email."""


def _as_list(value: str | list[str] | None) -> list[str] | None:
    if value is None:
        return None
    return value if isinstance(value, list) else [value]


class ResendClient:
    """Async client for Resend REST API.

    Args:
        api_key: Resend API key.
        default_from: Sender used when a message doesn't set ``from``.
        base_url: API root (overridable for tests).
    """

    TIMEOUT = 15.0

    def __init__(
        self,
        api_key: str,
        default_from: str = "Purrify CRM <noreply@purrify.ca>",
        base_url: str = RESEND_API_URL,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self.default_from = default_from
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(headers=self._headers, timeout=self.TIMEOUT)

    def _message(
        self,
        to: str | list[str],
        subject: str,
        html: str,
        *,
        text: str | None = None,
        from_address: str | None = None,
        cc: str | list[str] | None = None,
        bcc: str | list[str] | None = None,
        reply_to: str | list[str] | None = None,
        tags: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "from": from_address or self.default_from,
            "to": _as_list(to),
            "subject": subject,
            "html": html,
        }
        optional = {
            "text": text,
            "cc": _as_list(cc),
            "bcc": _as_list(bcc),
            "reply_to": _as_list(reply_to),
        }
        payload.update({k: v for k, v in optional.items() if v})
        if tags:
            payload["tags"] = [{"name": k, "value": v} for k, v in tags.items()]
        return payload

    @staticmethod
    def _check(response: httpx.Response, operation: str) -> Any:
        if response.status_code >= 400:
            try:
                message = response.json().get("message") or response.reason_phrase
            except ValueError:
                message = response.reason_phrase
            logger.error(
                "resend.request_failed",
                operation=operation,
                status_code=response.status_code,
                error=message,
            )
            raise EmailDeliveryError(f"Resend API error: {message}")
        return response.json()

    async def send_email(
        self,
        to: str | list[str],
        subject: str,
        html: str,
        **kwargs: Any,
    ) -> str:
        """Send one email.

        Keyword arguments: text, from_address, cc, bcc, reply_to, tags
        (a ``{name: value}`` dict).

        Returns:
            The Resend message id.
        """
        payload = self._message(to, subject, html, **kwargs)
        async with track_external_call("resend", "send_email"):
            try:
                async with self._client() as client:
                    response = await client.post(f"{self._base_url}/emails", json=payload)
            except httpx.HTTPError as exc:
                raise EmailDeliveryError(f"Resend API error: {exc}") from exc
            data = self._check(response, "send_email")

        message_id = data.get("id") if isinstance(data, dict) else None
        if not message_id:
            raise EmailDeliveryError("No message ID returned from Resend")
        logger.info("resend.email_sent", message_id=message_id, subject=subject)
        return message_id

    async def send_batch(self, messages: list[dict[str, Any]]) -> list[str]:
        """Send up to 100 emails in one call.

        Each message is a dict of ``send_email`` arguments (to, subject, html,
        plus optional keywords).
        """
        payload = [self._message(**m) for m in messages]
        async with track_external_call("resend", "send_batch"):
            try:
                async with self._client() as client:
                    response = await client.post(f"{self._base_url}/emails/batch", json=payload)
            except httpx.HTTPError as exc:
                raise EmailDeliveryError(f"Resend batch API error: {exc}") from exc
            data = self._check(response, "send_batch")

        items = data.get("data", []) if isinstance(data, dict) else data
        if not items:
            raise EmailDeliveryError("No data returned from Resend batch send")
        return [item["id"] for item in items]

    async def get_email(self, email_id: str) -> dict:
        async with track_external_call("resend", "get_email"):
            try:
                async with self._client() as client:
                    response = await client.get(f"{self._base_url}/emails/{email_id}")
            except httpx.HTTPError as exc:
                raise EmailDeliveryError(f"Resend API error: {exc}") from exc
            return self._check(response, "get_email")
