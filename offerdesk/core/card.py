"""Offer board presentation: card view models, filters and board totals."""
from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from offerdesk.core.conversion import format_fiat
from offerdesk.core.expiry import time_remaining_label
from offerdesk.core.offer import Offer

_PAYMENT_METHOD_NAMES: dict[str, str] = {
    "bank_transfer": "Bank Transfer",
    "paypal": "PayPal",
    "cash_app": "Cash App",
    "venmo": "Venmo",
    "zelle": "Zelle",
    "revolut": "Revolut",
    "wise": "Wise",
    "mpesa": "M-Pesa",
    "crypto_wallet": "Crypto Wallet",
}

_VISIBLE_METHODS = 3


def payment_method_name(method: str) -> str:
    return _PAYMENT_METHOD_NAMES.get(method, method)


def payment_method_lookup(methods: Iterable[dict[str, Any]]) -> Callable[[str], str]:
    """Build a ``method id -> display name`` function from the service's list.

    Ids the service does not name fall back to ``payment_method_name``.
    """
    names: dict[str, str] = {}
    for entry in methods:
        if not isinstance(entry, dict):
            continue
        method_id = str(entry.get("id", "")).strip()
        name = str(entry.get("name", "") or "").strip()
        if method_id and name:
            names[method_id] = name

    def _name(method: str) -> str:
        return names.get(method) or payment_method_name(method)

    return _name


def action_label(side: str) -> str:
    return "Sell to Buyer" if side == "buy" else "Buy from Seller"


def crypto_icon_lookup(supported: Iterable[dict[str, Any]]) -> Callable[[str], str]:
    """Build a ``symbol -> icon`` function from the supported-crypto list.

    Symbols without an icon fall back to the symbol itself.
    """
    icons: dict[str, str] = {}
    for entry in supported:
        if not isinstance(entry, dict):
            continue
        symbol = str(entry.get("symbol", "")).strip().upper()
        icon = str(entry.get("icon", "") or "").strip()
        if symbol and icon:
            icons[symbol] = icon

    def _icon(symbol: str) -> str:
        return icons.get(symbol.upper(), symbol)

    return _icon


def render_offer_card(
    offer: Offer,
    now: datetime,
    get_crypto_icon: Callable[[str], str],
    method_name: Callable[[str], str] = payment_method_name,
) -> dict[str, Any]:
    """Return the display model for one offer card at time *now*."""
    methods = [method_name(m) for m in offer.payment_methods[:_VISIBLE_METHODS]]
    hidden = len(offer.payment_methods) - _VISIBLE_METHODS
    rating = offer.counterparty.reputation
    return {
        "offer_id": offer.offer_id,
        "side": offer.side,
        "badge": offer.side.upper(),
        "icon": get_crypto_icon(offer.crypto_symbol),
        "pair": f"{offer.crypto_symbol}/{offer.fiat_currency}",
        "expiry_label": time_remaining_label(now, offer.expires_at),
        "price": format_fiat(offer.price),
        "price_unit": f"per {offer.crypto_symbol}",
        "available": f"{format_fiat(offer.quantity)} {offer.crypto_symbol}",
        "limits": f"{format_fiat(offer.min_limit)} - {format_fiat(offer.max_limit)} {offer.fiat_currency}",
        "payment_methods": methods,
        "more_methods": f"+{hidden} more" if hidden > 0 else None,
        "counterparty": offer.counterparty.display_name,
        "counterparty_short_id": offer.counterparty.user_id[-8:],
        # A zero rating is treated like no rating.
        "rating": f"{rating:.1f}" if rating else None,
        "action": action_label(offer.side),
    }


# ---------------------------------------------------------------------------
# Board filters and totals
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class OfferFilters:
    side: str = "all"
    cryptocurrency: str = ""
    fiat_currency: str = "USD"
    payment_method: str = ""
    min_amount: str = ""
    max_amount: str = ""

    @classmethod
    def from_query(cls, query: dict[str, str], default_fiat: str = "USD") -> "OfferFilters":
        side = str(query.get("type", "all")).strip().lower()
        return cls(
            side=side if side in ("buy", "sell") else "all",
            cryptocurrency=str(query.get("cryptocurrency", "")).strip().upper(),
            fiat_currency=str(query.get("fiatCurrency", default_fiat)).strip().upper(),
            payment_method=str(query.get("paymentMethod", "")).strip(),
            min_amount=str(query.get("minAmount", "")).strip(),
            max_amount=str(query.get("maxAmount", "")).strip(),
        )

    def to_query_params(self) -> dict[str, str]:
        """Query parameters for the listing service; empty filters are dropped."""
        params = {
            "type": "" if self.side == "all" else self.side,
            "cryptocurrency": self.cryptocurrency,
            "fiatCurrency": self.fiat_currency,
            "paymentMethod": self.payment_method,
            "minAmount": self.min_amount,
            "maxAmount": self.max_amount,
        }
        return {k: v for k, v in params.items() if v}

    def is_active(self) -> bool:
        return bool(
            self.side != "all"
            or self.cryptocurrency
            or self.payment_method
            or self.min_amount
            or self.max_amount
        )


def board_stats(offers: Iterable[Offer]) -> dict[str, Any]:
    buy = sell = 0
    volume = 0.0
    traders: set[str] = set()
    for offer in offers:
        if offer.side == "buy":
            buy += 1
        else:
            sell += 1
        volume += offer.quantity * offer.price
        traders.add(offer.counterparty.user_id)
    return {
        "buy_offers": buy,
        "sell_offers": sell,
        "total_volume": volume,
        "total_volume_display": format_fiat(volume),
        "active_traders": len(traders),
    }
