"""Offer records as delivered by the listing service.

The listing service returns loosely typed JSON.  ``offer_from_payload`` maps a
record to a frozen ``Offer`` once, at the edge; everything downstream trusts
the typed structure.  Business invariants (limits, price, payment methods) are
reported but never enforced here, since a malformed offer must still render.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger("offerdesk.core.offer")

OFFER_SIDES = ("buy", "sell")


class OfferPayloadError(ValueError):
    """Raised when a listing record cannot be mapped to an ``Offer``."""

    def __init__(self, reason: str, offer_id: str | None = None) -> None:
        self.reason = reason
        self.offer_id = offer_id
        suffix = f" (offer {offer_id})" if offer_id else ""
        super().__init__(f"{reason}{suffix}")


@dataclass(frozen=True, slots=True)
class Counterparty:
    user_id: str
    display_name: str
    reputation: float | None = None


@dataclass(frozen=True, slots=True)
class Offer:
    offer_id: str
    # "buy": the creator wants crypto, so accepting means selling to them.
    # "sell": the creator sells crypto, so accepting means buying from them.
    side: str
    crypto_symbol: str
    fiat_currency: str
    quantity: float
    price: float
    min_limit: float
    max_limit: float
    payment_methods: tuple[str, ...]
    counterparty: Counterparty
    created_at: datetime
    expires_at: datetime


# ---------------------------------------------------------------------------
# Field coercion
# ---------------------------------------------------------------------------

def _number(payload: dict[str, Any], key: str, offer_id: str) -> float:
    raw = payload.get(key)
    if isinstance(raw, bool) or raw is None:
        raise OfferPayloadError(f"invalid_{key}", offer_id)
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise OfferPayloadError(f"invalid_{key}", offer_id) from None
    if not math.isfinite(value):
        raise OfferPayloadError(f"invalid_{key}", offer_id)
    return value


def _timestamp(payload: dict[str, Any], key: str, offer_id: str) -> datetime:
    raw = payload.get(key)
    if isinstance(raw, datetime):
        value = raw
    else:
        text = str(raw or "").strip()
        if not text:
            raise OfferPayloadError(f"missing_{key}", offer_id)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            raise OfferPayloadError(f"invalid_{key}", offer_id) from None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


def _payment_methods(raw: Any) -> tuple[str, ...]:
    if not isinstance(raw, (list, tuple)):
        return ()
    seen: dict[str, None] = {}
    for item in raw:
        method = str(item).strip()
        if method:
            seen.setdefault(method, None)
    return tuple(seen)


def _counterparty(raw: Any) -> Counterparty:
    # Older listings send the bare user id instead of the populated user.
    if not isinstance(raw, dict):
        user_id = str(raw or "").strip()
        return Counterparty(user_id=user_id, display_name=user_id)
    reputation: float | None = None
    rating = raw.get("rating")
    if rating is not None and not isinstance(rating, bool):
        try:
            reputation = float(rating)
        except (TypeError, ValueError):
            reputation = None
        if reputation is not None and reputation < 0:
            reputation = None
    return Counterparty(
        user_id=str(raw.get("_id", "")).strip(),
        display_name=str(raw.get("fullName", "")).strip(),
        reputation=reputation,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def offer_from_payload(payload: dict[str, Any]) -> Offer:
    """Map one listing-service record to an ``Offer``.

    Raises ``OfferPayloadError`` for records that cannot be represented at
    all.  Invariant violations are logged and the offer is returned as is.
    """
    if not isinstance(payload, dict):
        raise OfferPayloadError("invalid_offer_record")
    offer_id = str(payload.get("_id") or payload.get("id") or "").strip()
    if not offer_id:
        raise OfferPayloadError("missing_offer_id")
    side = str(payload.get("type", "")).strip().lower()
    if side not in OFFER_SIDES:
        raise OfferPayloadError("invalid_offer_side", offer_id)
    crypto = str(payload.get("cryptocurrency", "")).strip().upper()
    if not crypto:
        raise OfferPayloadError("missing_cryptocurrency", offer_id)
    fiat = str(payload.get("fiatCurrency", "")).strip().upper()
    if not fiat:
        raise OfferPayloadError("missing_fiatCurrency", offer_id)

    offer = Offer(
        offer_id=offer_id,
        side=side,
        crypto_symbol=crypto,
        fiat_currency=fiat,
        quantity=_number(payload, "amount", offer_id),
        price=_number(payload, "price", offer_id),
        min_limit=_number(payload, "minLimit", offer_id),
        max_limit=_number(payload, "maxLimit", offer_id),
        payment_methods=_payment_methods(payload.get("paymentMethods")),
        counterparty=_counterparty(payload.get("userId")),
        created_at=_timestamp(payload, "createdAt", offer_id),
        expires_at=_timestamp(payload, "expiresAt", offer_id),
    )
    violations = offer_invariant_violations(offer)
    if violations:
        logger.warning(
            "offer_invariants_violated offer_id=%s violations=%s",
            offer_id,
            ",".join(violations),
        )
    return offer


def offers_from_payload(items: Any) -> list[Offer]:
    """Parse a listing page, skipping records that fail structural parsing."""
    if not isinstance(items, list):
        return []
    offers: list[Offer] = []
    for item in items:
        try:
            offers.append(offer_from_payload(item))
        except OfferPayloadError as exc:
            logger.warning("offer_record_skipped reason=%s offer_id=%s", exc.reason, exc.offer_id)
    return offers


def offer_invariant_violations(offer: Offer) -> list[str]:
    violations: list[str] = []
    if offer.min_limit <= 0:
        violations.append("min_limit_not_positive")
    if offer.max_limit < offer.min_limit:
        violations.append("min_limit_above_max_limit")
    if offer.price <= 0:
        violations.append("price_not_positive")
    if not offer.payment_methods:
        violations.append("no_payment_methods")
    return violations
