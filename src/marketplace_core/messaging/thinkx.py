"""ThinkX Cloud SMS — async HTTP adapter implementing ``MessageSender``.

The API takes the account key in the JSON body of every call and
answers ``{"response": "OK", "data": {...}}`` on success.
"""

from __future__ import annotations

import logging

import httpx

from marketplace_core.errors import DeliveryError
from marketplace_core.messaging.sender import DeliveryReceipt

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://sms.thinkxcloud.com/api"


class ThinkXSmsSender:
    """Async wrapper around the ThinkX Cloud send/status/balance endpoints."""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._api_key = api_key.strip()
        self._base_url = base_url.rstrip("/")
        self._client = client
        self._timeout = timeout

        if not self.configured:
            logger.warning("ThinkX Cloud credentials not configured. SMS delivery unavailable.")

    @property
    def configured(self) -> bool:
        return bool(self._api_key) and not self._api_key.startswith("your_")

    # ── Sending ──────────────────────────────────────────

    async def send(self, identity: str, text: str) -> DeliveryReceipt:
        """Send *text* to *identity* (E.164).

        Raises ``DeliveryError`` on any failure, including an unconfigured
        sender and rejected credentials.
        """
        if not self.configured:
            raise DeliveryError("ThinkX Cloud not configured")

        data = await self._post("/send-message", {"number": identity, "message": text})
        reference = (data.get("data") or {}).get("message_reference")
        if data.get("response") != "OK" or not reference:
            message = data.get("message") or "SMS delivery failed"
            logger.error("SMS delivery to %s failed: %s", identity, message)
            raise DeliveryError(message)

        logger.info("SMS sent to %s, messageRef: %s", identity, reference)
        return DeliveryReceipt(channel="sms", reference=reference)

    # ── Account / status ─────────────────────────────────

    async def message_status(self, reference: str) -> str:
        """Return the provider's delivery status for *reference*."""
        data = await self._post("/check-message-status", {"message_reference": reference})
        status = (data.get("data") or {}).get("status")
        if data.get("response") != "OK" or not status:
            raise DeliveryError(data.get("message") or "Failed to get status")
        return status

    async def credit_balance(self) -> str:
        """Return the remaining message credit balance."""
        data = await self._post("/message-credit-balance", {})
        balance = (data.get("data") or {}).get("message_credit_balance")
        if data.get("response") != "OK" or not balance:
            raise DeliveryError(data.get("message") or "Failed to get balance")
        return balance

    # ── Private helpers ──────────────────────────────────

    async def _post(self, path: str, payload: dict) -> dict:
        url = f"{self._base_url}{path}"
        body = {"api_key": self._api_key, **payload}
        try:
            if self._client is not None:
                resp = await self._client.post(url, json=body)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.post(url, json=body)
        except httpx.HTTPError as exc:
            logger.exception("ThinkX request error: %s", exc)
            raise DeliveryError("SMS provider unreachable") from exc

        if resp.status_code in (401, 403):
            logger.error("ThinkX rejected credentials: %s %s", resp.status_code, resp.text)
            raise DeliveryError("SMS provider rejected credentials")
        if resp.status_code >= 400:
            logger.error("ThinkX request failed: %s %s", resp.status_code, resp.text)
            raise DeliveryError(f"SMS provider returned HTTP {resp.status_code}")

        try:
            return resp.json()
        except ValueError as exc:
            raise DeliveryError("SMS provider returned malformed response") from exc
