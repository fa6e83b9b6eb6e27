"""P2P listing service adapter.

The listing service owns offers and trades.  This module provides:
- ``ListingApiClient``       – async aiohttp client for the ``/p2p`` endpoints
- ``ListingApiError``        – raised on non-2xx responses
- ``resolve_listing_client`` – build a client from the program config

Accepting an offer here only opens the trade on the service side; escrow and
settlement happen there.
"""
from __future__ import annotations

import json
from typing import Any
from urllib.parse import quote

import aiohttp

from offerdesk.config.models import ListingApiConfig, ProgramConfig


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class ListingApiClient:
    """Async client for the listing service REST API.

    Usage (async context manager)::

        async with ListingApiClient("https://api.example.com/api", token) as client:
            page = await client.get_offers({"type": "sell", "fiatCurrency": "USD"})
            await client.accept_offer(offer_id, 250.0, "bank_transfer")
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: aiohttp.ClientSession | None = None

    # ------------------------------------------------------------------
    # Context-manager helpers
    # ------------------------------------------------------------------

    async def __aenter__(self) -> "ListingApiClient":
        if self._session is None:
            self._session = self._make_session()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    def _make_session(self) -> aiohttp.ClientSession:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return aiohttp.ClientSession(headers=headers, timeout=self._timeout)

    # ------------------------------------------------------------------
    # Core request
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
    ) -> Any:
        """Send one request and return the parsed JSON body.

        Raises:
            ListingApiError: on a non-2xx HTTP status.
        """
        if self._session is None:
            # Allow one-shot usage without context manager
            self._session = self._make_session()

        url = f"{self._base_url}{path}"
        async with self._session.request(method, url, params=params or None, json=body) as resp:
            text = await resp.text()
            if resp.status < 200 or resp.status >= 300:
                raise ListingApiError(resp.status, text, path)
            if not text:
                return {}
            try:
                return json.loads(text)
            except json.JSONDecodeError:
                return text

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def get_offers(self, params: dict[str, str] | None = None) -> list[dict[str, Any]]:
        """Return raw offer records; parse them with ``offers_from_payload``."""
        result = await self.request("GET", "/p2p/offers", params=params)
        if isinstance(result, dict):
            offers = result.get("offers", [])
        else:
            offers = result
        return offers if isinstance(offers, list) else []

    async def create_offer(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Publish a validated offer (see ``validate_offer_draft``)."""
        result = await self.request("POST", "/p2p/offers", body=payload)
        return result if isinstance(result, dict) else {"result": result}

    async def accept_offer(self, offer_id: str, amount: float, payment_method: str | None) -> dict[str, Any]:
        result = await self.request(
            "POST",
            f"/p2p/offers/{quote(offer_id, safe='')}/accept",
            body={"amount": amount, "paymentMethod": payment_method},
        )
        return result if isinstance(result, dict) else {"result": result}

    async def get_supported_cryptos(self) -> list[dict[str, Any]]:
        result = await self.request("GET", "/p2p/supported-cryptos")
        return result if isinstance(result, list) else []

    async def get_payment_methods(self) -> list[dict[str, Any]]:
        result = await self.request("GET", "/p2p/payment-methods")
        return result if isinstance(result, list) else []

    async def close(self) -> None:
        """Explicitly close the underlying session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None


# ---------------------------------------------------------------------------
# Error type
# ---------------------------------------------------------------------------

class ListingApiError(Exception):
    """Raised when the listing service returns a non-2xx status."""

    def __init__(self, status: int, body: str, endpoint: str = "") -> None:
        self.status = status
        self.body = body
        self.endpoint = endpoint
        super().__init__(f"Listing API {endpoint!r} failed with HTTP {status}: {body}")

    def message(self) -> str:
        """Service-provided error message when the body carries one."""
        try:
            parsed = json.loads(self.body)
        except (json.JSONDecodeError, TypeError):
            return self.body
        if isinstance(parsed, dict):
            return str(parsed.get("message") or parsed.get("error") or self.body)
        return self.body

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.message(),
            "status": self.status,
            "endpoint": self.endpoint,
        }


# ---------------------------------------------------------------------------
# Factory helpers
# ---------------------------------------------------------------------------

def resolve_listing_client(config: ProgramConfig | ListingApiConfig) -> ListingApiClient:
    api = config.listing_api if isinstance(config, ProgramConfig) else config
    return ListingApiClient(
        base_url=api.base_url,
        token=api.token,
        timeout_seconds=api.timeout_seconds,
    )
