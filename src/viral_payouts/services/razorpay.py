"""Razorpay API client."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from cachetools import TTLCache

from ..config import RazorpayConfig, settings

logger = logging.getLogger(__name__)


class RazorpayAPIError(RuntimeError):
    pass


_default_client: RazorpayClient | None = None


def to_paise(rupees: int) -> int:
    return int(round(rupees * 100))


def to_rupees(paise: int) -> int:
    return int(paise) // 100


class RazorpayClient:
    """Wrapper around the Razorpay orders and payouts API."""

    def __init__(
        self,
        config: RazorpayConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or settings.razorpay
        self._client = httpx.AsyncClient(
            base_url=self._config.base_url,
            auth=(self._config.key_id, self._config.key_secret.get_secret_value()),
            headers={"Accept": "application/json"},
            timeout=self._config.timeout,
            transport=transport,
        )
        self._orders_cache: TTLCache[str, dict[str, Any]] = TTLCache(maxsize=256, ttl=60)

    @property
    def key_id(self) -> str:
        return self._config.key_id

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("Razorpay request %s %s failed: %s", method, path, exc)
            raise RazorpayAPIError(str(exc)) from exc
        if response.status_code >= 400:
            logger.error("Razorpay API error %s %s: %s", method, path, response.text)
            raise RazorpayAPIError(response.text)
        return response.json()

    async def create_order(
        self,
        *,
        amount: int,
        receipt: str,
        notes: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Create an order for ``amount`` rupees."""

        payload = {
            "amount": to_paise(amount),
            "currency": self._config.currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        order = await self._request("POST", "/orders", json=payload)
        if order.get("id"):
            self._orders_cache[order["id"]] = order
        return order

    async def fetch_order(self, order_id: str) -> dict[str, Any]:
        if order_id in self._orders_cache:
            return self._orders_cache[order_id]
        order = await self._request("GET", f"/orders/{order_id}")
        self._orders_cache[order_id] = order
        return order

    async def create_payout(
        self,
        *,
        fund_account_id: str,
        amount: int,
        reference_id: str,
        purpose: str = "payout",
        narration: str | None = None,
    ) -> dict[str, Any]:
        """Send ``amount`` rupees to a fund account, queued if the balance is low."""

        payload = {
            "account_number": self._config.account_number,
            "fund_account_id": fund_account_id,
            "amount": to_paise(amount),
            "currency": self._config.currency,
            "mode": self._config.payout_mode,
            "purpose": purpose,
            "queue_if_low_balance": True,
            "reference_id": reference_id,
            "narration": (narration or "Viral Payouts Creator Payout")[:30],
        }
        return await self._request("POST", "/payouts", json=payload)


def get_razorpay_client() -> RazorpayClient:
    global _default_client
    if _default_client is None:
        _default_client = RazorpayClient()
    return _default_client


__all__ = [
    "RazorpayAPIError",
    "RazorpayClient",
    "get_razorpay_client",
    "to_paise",
    "to_rupees",
]
