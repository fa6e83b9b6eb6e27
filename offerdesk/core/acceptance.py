"""Offer acceptance flow for a single offer card.

Editing and committing are separate phases.  ``update_amount`` and
``update_method`` store whatever the user typed so that a half-entered amount
never produces an error while typing; ``submit`` is the only validating
operation.  A failed submit leaves the draft open and emits nothing.

The acceptance handler is injected.  The controller calls it with the
validated ``AcceptanceIntent`` and does not await or track the outcome; the
actual trade request belongs to the listing service.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from offerdesk.core.conversion import ConversionPreview, build_preview, parse_fiat_amount, plain_number
from offerdesk.core.expiry import time_remaining_label
from offerdesk.core.offer import Offer

logger = logging.getLogger("offerdesk.core.acceptance")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class AcceptanceError(Exception):
    """Base class for acceptance failures that keep the view open."""

    def to_dict(self) -> dict[str, Any]:
        return {"error": type(self).__name__, "message": str(self)}


class OutOfRangeError(AcceptanceError):
    """The candidate amount is unparsable or outside ``[min_limit, max_limit]``."""

    def __init__(self, amount_text: str, min_limit: float, max_limit: float, currency: str) -> None:
        self.amount_text = amount_text
        self.min_limit = min_limit
        self.max_limit = max_limit
        self.currency = currency
        super().__init__(
            f"Amount must be between {plain_number(min_limit)} and "
            f"{plain_number(max_limit)} {currency}"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "min_limit": self.min_limit,
            "max_limit": self.max_limit,
            "currency": self.currency,
        }


class MethodNotAcceptedError(AcceptanceError):
    def __init__(self, method: str | None, accepted: tuple[str, ...]) -> None:
        self.method = method
        self.accepted = accepted
        super().__init__(f"Payment method {method!r} is not accepted for this offer")


class AcceptanceNotOpenError(RuntimeError):
    """Raised when editing or submitting while the acceptance view is closed."""


# ---------------------------------------------------------------------------
# Draft and intent
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class AcceptanceDraft:
    offer: Offer
    amount_text: str
    method: str | None


@dataclass(frozen=True, slots=True)
class AcceptanceIntent:
    offer_id: str
    amount: float
    method: str | None

    def to_dict(self) -> dict[str, Any]:
        return {"offerId": self.offer_id, "amount": self.amount, "method": self.method}


AcceptHandler = Callable[[AcceptanceIntent], object]


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

class OfferAcceptanceController:
    """Owns the acceptance view state for one offer card."""

    def __init__(self, on_accept: AcceptHandler) -> None:
        self._on_accept = on_accept
        self._draft: AcceptanceDraft | None = None

    @property
    def is_open(self) -> bool:
        return self._draft is not None

    @property
    def draft(self) -> AcceptanceDraft | None:
        return self._draft

    def open(self, offer: Offer) -> AcceptanceDraft:
        self._draft = AcceptanceDraft(
            offer=offer,
            amount_text=plain_number(offer.min_limit),
            method=offer.payment_methods[0] if offer.payment_methods else None,
        )
        logger.debug("acceptance opened offer_id=%s", offer.offer_id)
        return self._draft

    def update_amount(self, text: str) -> None:
        self._require_draft().amount_text = text

    def update_method(self, method: str) -> None:
        self._require_draft().method = method

    def submit(self) -> AcceptanceIntent:
        draft = self._require_draft()
        offer = draft.offer
        amount = parse_fiat_amount(draft.amount_text)
        if amount is None or amount < offer.min_limit or amount > offer.max_limit:
            logger.info(
                "acceptance rejected offer_id=%s amount=%r range=[%s, %s]",
                offer.offer_id,
                draft.amount_text,
                offer.min_limit,
                offer.max_limit,
            )
            raise OutOfRangeError(draft.amount_text, offer.min_limit, offer.max_limit, offer.fiat_currency)
        # An offer without methods is malformed upstream; nothing to check against.
        if offer.payment_methods and draft.method not in offer.payment_methods:
            raise MethodNotAcceptedError(draft.method, offer.payment_methods)

        intent = AcceptanceIntent(offer_id=offer.offer_id, amount=amount, method=draft.method)
        self._on_accept(intent)
        self._draft = None
        logger.info(
            "acceptance submitted offer_id=%s amount=%s method=%s",
            intent.offer_id,
            intent.amount,
            intent.method,
        )
        return intent

    def cancel(self) -> None:
        if self._draft is not None:
            logger.debug("acceptance cancelled offer_id=%s", self._draft.offer.offer_id)
        self._draft = None

    def preview(self) -> ConversionPreview:
        draft = self._require_draft()
        return build_preview(draft.offer, draft.amount_text)

    def expiry_label(self, now: datetime) -> str:
        draft = self._require_draft()
        return time_remaining_label(now, draft.offer.expires_at)

    def _require_draft(self) -> AcceptanceDraft:
        if self._draft is None:
            raise AcceptanceNotOpenError("acceptance view is not open")
        return self._draft
