"""Live preview of what an acceptance amounts to.

Preview only: the settlement amount is whatever the listing service computes
when the trade is opened.  Unparsable input degrades to zero, never raises;
range validation happens on submit in ``offerdesk.core.acceptance``.
"""
from __future__ import annotations

import math
from dataclasses import dataclass

from offerdesk.core.offer import Offer

CRYPTO_DECIMALS = 8


@dataclass(frozen=True, slots=True)
class ConversionPreview:
    phrase: str
    crypto_amount: str
    crypto_symbol: str
    fiat_amount: str

    def to_dict(self) -> dict[str, str]:
        return {
            "phrase": self.phrase,
            "crypto_amount": self.crypto_amount,
            "crypto_symbol": self.crypto_symbol,
            "fiat_amount": self.fiat_amount,
        }


def parse_fiat_amount(text: str | float | int | None) -> float | None:
    """Parse a user-entered fiat amount; ``None`` when it is not a finite number."""
    if text is None or isinstance(text, bool):
        return None
    if isinstance(text, (int, float)):
        value = float(text)
    else:
        raw = str(text).strip()
        # float() accepts digit separators; an input field never should.
        if not raw or "_" in raw:
            return None
        try:
            value = float(raw)
        except ValueError:
            return None
    if not math.isfinite(value):
        return None
    return value


def crypto_equivalent(fiat_amount: str | float | None, unit_price: float) -> float:
    amount = parse_fiat_amount(fiat_amount) or 0.0
    if unit_price <= 0:
        return 0.0
    return amount / unit_price


def format_crypto_amount(value: float) -> str:
    return f"{value:.{CRYPTO_DECIMALS}f}"


def plain_number(value: float) -> str:
    """Shortest text for *value*: ``50.0`` -> ``"50"``, ``49.99`` -> ``"49.99"``."""
    value = float(value)
    if math.isfinite(value) and value.is_integer():
        return str(int(value))
    return repr(value)


def format_fiat(value: float) -> str:
    """Group thousands and keep up to 3 fraction digits (``1234.5`` -> ``1,234.5``)."""
    text = f"{value:,.3f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def fiat_restated(fiat_amount: str | float | None) -> str:
    return format_fiat(parse_fiat_amount(fiat_amount) or 0.0)


def preview_phrase(side: str) -> str:
    return "You'll receive" if side == "buy" else "You'll pay"


def build_preview(offer: Offer, amount_text: str | float | None) -> ConversionPreview:
    return ConversionPreview(
        phrase=preview_phrase(offer.side),
        crypto_amount=format_crypto_amount(crypto_equivalent(amount_text, offer.price)),
        crypto_symbol=offer.crypto_symbol,
        fiat_amount=fiat_restated(amount_text),
    )
