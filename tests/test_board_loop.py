from __future__ import annotations

import asyncio
from typing import Any

from offerdesk.adapters.listing_api import ListingApiError
from offerdesk.core.acceptance import AcceptanceIntent
from offerdesk.core.card import OfferFilters
from offerdesk.webui.board_loop import BoardLoop


def _record(offer_id: str, side: str = "sell") -> dict[str, Any]:
    return {
        "_id": offer_id,
        "type": side,
        "cryptocurrency": "BTC",
        "fiatCurrency": "USD",
        "amount": 0.5,
        "price": 60000,
        "minLimit": 50,
        "maxLimit": 500,
        "paymentMethods": ["bank_transfer"],
        "userId": {"_id": "user-1", "fullName": "Ada"},
        "createdAt": "2026-01-01T00:00:00Z",
        "expiresAt": "2026-01-02T00:00:00Z",
    }


class _FakeListingClient:
    def __init__(
        self,
        pages: list[list[dict[str, Any]]],
        accept_error: Exception | None = None,
        cryptos_error: Exception | None = None,
        methods_error: Exception | None = None,
    ) -> None:
        self._pages = iter(pages)
        self._accept_error = accept_error
        self._cryptos_error = cryptos_error
        self._methods_error = methods_error
        self.offer_params: list[dict[str, str] | None] = []
        self.accepted: list[tuple[str, float, str | None]] = []

    async def get_offers(self, params: dict[str, str] | None = None) -> list[dict[str, Any]]:
        self.offer_params.append(params)
        try:
            return next(self._pages)
        except StopIteration:
            return []

    async def get_supported_cryptos(self) -> list[dict[str, Any]]:
        if self._cryptos_error is not None:
            raise self._cryptos_error
        return [{"symbol": "BTC", "icon": "₿"}]

    async def get_payment_methods(self) -> list[dict[str, Any]]:
        if self._methods_error is not None:
            raise self._methods_error
        return [{"id": "bank_transfer", "name": "Bank wire"}]

    async def accept_offer(self, offer_id: str, amount: float, payment_method: str | None) -> dict[str, Any]:
        if self._accept_error is not None:
            raise self._accept_error
        self.accepted.append((offer_id, amount, payment_method))
        return {"ok": True}


# ---------------------------------------------------------------------------
# refresh
# ---------------------------------------------------------------------------


def test_refresh_stores_offers_and_skips_broken_records() -> None:
    async def _run() -> None:
        client = _FakeListingClient([[_record("a"), {"_id": ""}, _record("b", side="buy")]])
        board = BoardLoop(client, filters=OfferFilters(side="sell"))  # type: ignore[arg-type]
        result = await board.refresh()
        assert result["status"] == "ok"
        assert result["offers"] == 2
        assert [o.offer_id for o in board.offers()] == ["a", "b"]
        assert board.offer("b") is not None
        assert board.offer("missing") is None
        assert board.icon_for("BTC") == "₿"
        assert client.offer_params == [{"type": "sell", "fiatCurrency": "USD"}]
        status = board.status()
        assert status["refresh_count"] == 1
        assert status["offer_count"] == 2
        assert status["recent_events"][-1]["skipped"] == 1

    asyncio.run(_run())


def test_refresh_error_is_recorded() -> None:
    class _Failing(_FakeListingClient):
        async def get_offers(self, params: dict[str, str] | None = None) -> list[dict[str, Any]]:
            raise ListingApiError(503, "maintenance", "/p2p/offers")

    async def _run() -> None:
        board = BoardLoop(_Failing([]))  # type: ignore[arg-type]
        result = await board.refresh()
        assert result["status"] == "error"
        assert "503" in result["error"]
        assert board.status()["error_count"] == 1
        assert board.status()["recent_events"][-1]["type"] == "refresh_error"

    asyncio.run(_run())


def test_missing_icons_fall_back_to_symbol() -> None:
    async def _run() -> None:
        client = _FakeListingClient([[_record("a")]], cryptos_error=ListingApiError(500, "x"))
        board = BoardLoop(client)  # type: ignore[arg-type]
        await board.refresh()
        assert board.icon_for("BTC") == "BTC"

    asyncio.run(_run())


def test_failed_refresh_keeps_previous_filters() -> None:
    class _Flaky(_FakeListingClient):
        fail = False

        async def get_offers(self, params: dict[str, str] | None = None) -> list[dict[str, Any]]:
            if self.fail:
                raise ListingApiError(503, "maintenance", "/p2p/offers")
            return await super().get_offers(params)

    async def _run() -> None:
        client = _Flaky([[_record("a")], [_record("b", side="buy")]])
        board = BoardLoop(client)  # type: ignore[arg-type]
        await board.refresh()

        client.fail = True
        result = await board.refresh(OfferFilters(side="buy"))
        assert result["status"] == "error"
        assert board.filters == OfferFilters()
        assert [o.offer_id for o in board.offers()] == ["a"]

        client.fail = False
        await board.refresh(OfferFilters(side="buy"))
        assert board.filters == OfferFilters(side="buy")
        assert [o.offer_id for o in board.offers()] == ["b"]

    asyncio.run(_run())


def test_payment_method_names_loaded_from_service() -> None:
    async def _run() -> None:
        board = BoardLoop(_FakeListingClient([[_record("a")]]))  # type: ignore[arg-type]
        await board.refresh()
        assert board.method_name_for("bank_transfer") == "Bank wire"
        assert board.method_name_for("paypal") == "PayPal"
        assert board.payment_methods() == [{"id": "bank_transfer", "name": "Bank wire"}]

    asyncio.run(_run())


def test_payment_method_names_fall_back_when_unavailable() -> None:
    async def _run() -> None:
        client = _FakeListingClient([[_record("a")]], methods_error=ListingApiError(500, "x"))
        board = BoardLoop(client)  # type: ignore[arg-type]
        result = await board.refresh()
        assert result["status"] == "ok"
        assert board.method_name_for("bank_transfer") == "Bank Transfer"
        assert board.payment_methods() == []

    asyncio.run(_run())


# ---------------------------------------------------------------------------
# Acceptance dispatch
# ---------------------------------------------------------------------------


def test_dispatch_acceptance_sends_without_blocking() -> None:
    async def _run() -> None:
        client = _FakeListingClient([[_record("a")], [_record("b")]])
        board = BoardLoop(client)  # type: ignore[arg-type]
        await board.refresh()

        board.dispatch_acceptance(AcceptanceIntent(offer_id="a", amount=100.0, method="bank_transfer"))
        # nothing has been sent yet: the handler only schedules the request
        assert client.accepted == []
        assert board.status()["pending_acceptances"] == 1

        await board.drain()
        assert client.accepted == [("a", 100.0, "bank_transfer")]
        status = board.status()
        assert status["accepted_count"] == 1
        assert status["pending_acceptances"] == 0
        # the board is refreshed after a successful acceptance
        assert [o.offer_id for o in board.offers()] == ["b"]
        types = [e["type"] for e in status["recent_events"]]
        assert "acceptance_dispatched" in types
        assert "acceptance_done" in types

    asyncio.run(_run())


def test_dispatch_acceptance_failure_is_logged_as_event() -> None:
    async def _run() -> None:
        client = _FakeListingClient([], accept_error=ListingApiError(400, '{"message": "Offer closed"}', "/x"))
        board = BoardLoop(client)  # type: ignore[arg-type]
        board.dispatch_acceptance(AcceptanceIntent(offer_id="a", amount=100.0, method=None))
        await board.drain()
        status = board.status()
        assert status["accepted_count"] == 0
        assert status["error_count"] == 1
        assert status["recent_events"][-1]["type"] == "acceptance_failed"
        assert status["recent_events"][-1]["offerId"] == "a"

    asyncio.run(_run())


# ---------------------------------------------------------------------------
# start / stop
# ---------------------------------------------------------------------------


def test_start_and_stop_background_loop() -> None:
    async def _run() -> None:
        client = _FakeListingClient([[_record("a")]])
        board = BoardLoop(client, refresh_interval_seconds=3600)  # type: ignore[arg-type]
        board.start()
        board.start()  # no-op while running
        await asyncio.sleep(0.05)
        assert board.status()["running"]
        assert board.status()["refresh_count"] == 1
        board.stop()
        await asyncio.sleep(0)
        assert not board.status()["running"]

    asyncio.run(_run())
