"""Validation for offers created from the local board.

The create form sends text fields; ``offer_draft_from_form`` keeps them as
typed, and ``validate_offer_draft`` is the single point that parses them and
either returns the listing-service payload or raises ``OfferDraftError``.
Limit, price and payment-method rules are the same ones applied to listed
offers (``offer_invariant_violations``).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from offerdesk.core.conversion import parse_fiat_amount
from offerdesk.core.offer import OFFER_SIDES, Counterparty, Offer, offer_invariant_violations

logger = logging.getLogger("offerdesk.core.new_offer")

EXPIRY_HOURS_CHOICES = (1, 6, 12, 24, 48, 72)
DEFAULT_EXPIRY_HOURS = 24

_VIOLATION_MESSAGES = {
    "min_limit_not_positive": "Minimum limit must be greater than zero",
    "min_limit_above_max_limit": "Maximum limit must be greater than minimum limit",
    "price_not_positive": "Price must be greater than zero",
    "no_payment_methods": "Please select at least one payment method",
}


class OfferDraftError(ValueError):
    """A new offer was rejected before being sent to the listing service."""

    def __init__(self, reason: str, message: str) -> None:
        self.reason = reason
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.reason, "message": str(self)}


@dataclass(slots=True)
class OfferDraft:
    side: str = "sell"
    crypto_symbol: str = "BTC"
    fiat_currency: str = "USD"
    quantity_text: str = ""
    price_text: str = ""
    min_limit_text: str = ""
    max_limit_text: str = ""
    payment_methods: tuple[str, ...] = ()
    terms: str = ""
    expires_in_hours: str = str(DEFAULT_EXPIRY_HOURS)


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def offer_draft_from_form(form: dict[str, Any]) -> OfferDraft:
    """Build a draft from the create form's camelCase fields, without validating."""
    raw_methods = form.get("paymentMethods")
    methods: tuple[str, ...] = ()
    if isinstance(raw_methods, (list, tuple)):
        methods = tuple(dict.fromkeys(m for m in (_text(x) for x in raw_methods) if m))
    return OfferDraft(
        side=_text(form.get("type")).lower() or "sell",
        crypto_symbol=_text(form.get("cryptocurrency")).upper() or "BTC",
        fiat_currency=_text(form.get("fiatCurrency")).upper() or "USD",
        quantity_text=_text(form.get("amount")),
        price_text=_text(form.get("price")),
        min_limit_text=_text(form.get("minLimit")),
        max_limit_text=_text(form.get("maxLimit")),
        payment_methods=methods,
        terms=_text(form.get("terms")),
        expires_in_hours=_text(form.get("expiresInHours")) or str(DEFAULT_EXPIRY_HOURS),
    )


def validate_offer_draft(draft: OfferDraft, now: datetime | None = None) -> dict[str, Any]:
    """Return the ``POST /p2p/offers`` body for *draft*.

    Raises ``OfferDraftError`` on the first rule that fails, in the order the
    create form reports them: required fields, side, quantity, then the
    listed-offer invariants, then the expiry choice.
    """
    quantity = parse_fiat_amount(draft.quantity_text)
    price = parse_fiat_amount(draft.price_text)
    min_limit = parse_fiat_amount(draft.min_limit_text)
    max_limit = parse_fiat_amount(draft.max_limit_text)
    if quantity is None or price is None or min_limit is None or max_limit is None:
        raise OfferDraftError("missing_required_fields", "Please fill in all required fields")
    if draft.side not in OFFER_SIDES:
        raise OfferDraftError("invalid_offer_side", f"Offer type must be one of {', '.join(OFFER_SIDES)}")
    if quantity <= 0:
        raise OfferDraftError("quantity_not_positive", "Amount must be greater than zero")

    try:
        hours = int(draft.expires_in_hours)
    except ValueError:
        hours = 0

    now = now or datetime.now(UTC)
    candidate = Offer(
        offer_id="",
        side=draft.side,
        crypto_symbol=draft.crypto_symbol,
        fiat_currency=draft.fiat_currency,
        quantity=quantity,
        price=price,
        min_limit=min_limit,
        max_limit=max_limit,
        payment_methods=draft.payment_methods,
        counterparty=Counterparty(user_id="", display_name=""),
        created_at=now,
        expires_at=now + timedelta(hours=hours),
    )
    violations = offer_invariant_violations(candidate)
    if violations:
        reason = violations[0]
        raise OfferDraftError(reason, _VIOLATION_MESSAGES[reason])
    if hours not in EXPIRY_HOURS_CHOICES:
        choices = ", ".join(str(h) for h in EXPIRY_HOURS_CHOICES)
        raise OfferDraftError("invalid_expiry", f"Offer must expire in one of {choices} hours")

    logger.info(
        "offer_draft_validated side=%s pair=%s/%s quantity=%s",
        draft.side,
        draft.crypto_symbol,
        draft.fiat_currency,
        quantity,
    )
    return {
        "type": draft.side,
        "cryptocurrency": draft.crypto_symbol,
        "fiatCurrency": draft.fiat_currency,
        "amount": quantity,
        "price": price,
        "minLimit": min_limit,
        "maxLimit": max_limit,
        "paymentMethods": list(draft.payment_methods),
        "terms": draft.terms,
        "expiresInHours": hours,
    }
