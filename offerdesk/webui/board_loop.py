"""offerdesk WebUI – background offer board refresh.

Keeps the latest listing page in memory so acceptance sessions can be opened
by offer id, and carries the acceptance handler: validated intents are sent
to the listing service as fire-and-forget tasks whose outcome lands in the
event log.

Expiry labels are not cached here; every API response recomputes them from
the stored ``expires_at`` and the current time.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from offerdesk.adapters.listing_api import ListingApiClient
from offerdesk.core.acceptance import AcceptanceIntent
from offerdesk.core.card import OfferFilters, crypto_icon_lookup, payment_method_lookup
from offerdesk.core.offer import Offer, offers_from_payload

logger = logging.getLogger("offerdesk.webui.board_loop")

_MAX_LOG_EVENTS = 200


class BoardLoop:
    """Asyncio background task that refreshes the offer board."""

    def __init__(
        self,
        client: ListingApiClient,
        refresh_interval_seconds: int = 30,
        filters: OfferFilters | None = None,
    ) -> None:
        self._client = client
        self._interval = refresh_interval_seconds
        self.filters = filters or OfferFilters()

        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[None]] = set()
        self._offers: dict[str, Offer] = {}
        self._icon: Callable[[str], str] = crypto_icon_lookup([])
        self._icons_loaded = False
        self._method_name: Callable[[str], str] = payment_method_lookup([])
        self._payment_methods: list[dict[str, Any]] = []
        self._methods_loaded = False
        self._last_refresh_at: str | None = None
        self._refresh_count = 0
        self._error_count = 0
        self._accepted_count = 0
        self._log_events: list[dict[str, Any]] = []

    # ------------------------------------------------------------------
    # Public control API
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the background loop (no-op if already running)."""
        if self._task and not self._task.done():
            return
        self._running = True
        self._task = asyncio.create_task(self._loop(), name="offerdesk-board-loop")
        logger.info("board_loop started interval=%ss", self._interval)

    def stop(self) -> None:
        """Stop the background loop."""
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
        logger.info("board_loop stopped")

    def status(self) -> dict[str, Any]:
        """Return current loop state for the API."""
        return {
            "running": bool(self._task and not self._task.done() and self._running),
            "offer_count": len(self._offers),
            "filters": self.filters.to_query_params(),
            "last_refresh_at": self._last_refresh_at,
            "refresh_count": self._refresh_count,
            "error_count": self._error_count,
            "accepted_count": self._accepted_count,
            "pending_acceptances": len(self._pending),
            "recent_events": list(self._log_events[-20:]),
        }

    def offers(self) -> list[Offer]:
        return list(self._offers.values())

    def offer(self, offer_id: str) -> Offer | None:
        return self._offers.get(offer_id)

    def icon_for(self, symbol: str) -> str:
        return self._icon(symbol)

    def method_name_for(self, method: str) -> str:
        return self._method_name(method)

    def payment_methods(self) -> list[dict[str, Any]]:
        return list(self._payment_methods)

    async def trigger_once(self) -> dict[str, Any]:
        """Refresh immediately and return the result."""
        self._emit("trigger", "Manual refresh triggered")
        return await self.refresh()

    async def refresh(self, filters: OfferFilters | None = None) -> dict[str, Any]:
        """Fetch the board under *filters* (default: the current ones).

        ``self.filters`` only changes once a fetch under the new filters
        succeeded, so the stored offers always match the stored filters.
        """
        filters = filters or self.filters
        try:
            await self._load_reference_data()
            raw = await self._client.get_offers(filters.to_query_params())
            offers = offers_from_payload(raw)
            self.filters = filters
            self._offers = {o.offer_id: o for o in offers}
            self._refresh_count += 1
            self._last_refresh_at = datetime.now(UTC).isoformat()
            self._emit(
                "refresh_done",
                f"Refresh {self._refresh_count}: {len(offers)} offers",
                {"offers": len(offers), "skipped": len(raw) - len(offers)},
            )
            return {"status": "ok", "offers": len(offers), "at": self._last_refresh_at}
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._error_count += 1
            logger.exception("board_loop refresh error")
            self._emit("refresh_error", f"Refresh error: {exc}", {"error": str(exc)})
            return {"status": "error", "error": str(exc)}

    # ------------------------------------------------------------------
    # Acceptance handler
    # ------------------------------------------------------------------

    def dispatch_acceptance(self, intent: AcceptanceIntent) -> None:
        """Send *intent* to the listing service without waiting for it."""
        task = asyncio.create_task(self._send_acceptance(intent), name=f"accept-{intent.offer_id}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        self._emit("acceptance_dispatched", f"Accepting offer {intent.offer_id}", intent.to_dict())

    async def _send_acceptance(self, intent: AcceptanceIntent) -> None:
        try:
            await self._client.accept_offer(intent.offer_id, intent.amount, intent.method)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._error_count += 1
            logger.exception("acceptance request failed offer_id=%s", intent.offer_id)
            self._emit(
                "acceptance_failed",
                f"Failed to accept offer {intent.offer_id}: {exc}",
                {"offerId": intent.offer_id, "error": str(exc)},
            )
            return
        self._accepted_count += 1
        self._emit(
            "acceptance_done",
            "Offer accepted! Check your trades for next steps.",
            {"offerId": intent.offer_id},
        )
        await self.refresh()

    async def drain(self) -> None:
        """Wait for in-flight acceptance requests."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load_reference_data(self) -> None:
        # Both lists are cosmetic; cards fall back to the symbol and the
        # built-in method names, and loading is retried on the next refresh.
        if not self._icons_loaded:
            try:
                supported = await self._client.get_supported_cryptos()
            except Exception as exc:
                logger.warning("supported_cryptos unavailable: %s", exc)
            else:
                self._icon = crypto_icon_lookup(supported)
                self._icons_loaded = True
        if not self._methods_loaded:
            try:
                methods = await self._client.get_payment_methods()
            except Exception as exc:
                logger.warning("payment_methods unavailable: %s", exc)
            else:
                self._payment_methods = [m for m in methods if isinstance(m, dict)]
                self._method_name = payment_method_lookup(self._payment_methods)
                self._methods_loaded = True

    def _emit(self, event_type: str, message: str, extra: dict[str, Any] | None = None) -> None:
        entry: dict[str, Any] = {
            "at": datetime.now(UTC).isoformat(),
            "type": event_type,
            "message": message,
        }
        if extra:
            entry.update(extra)
        self._log_events.append(entry)
        if len(self._log_events) > _MAX_LOG_EVENTS:
            self._log_events = self._log_events[-_MAX_LOG_EVENTS:]

    async def _loop(self) -> None:
        while self._running:
            await self.refresh()
            try:
                await asyncio.sleep(self._interval)
            except asyncio.CancelledError:
                break
