from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta, timezone
from typing import Any

import pytest

from offerdesk.core.offer import (
    OfferPayloadError,
    offer_from_payload,
    offer_invariant_violations,
    offers_from_payload,
)


def _record(**overrides: Any) -> dict[str, Any]:
    record: dict[str, Any] = {
        "_id": "65f0c0ffee",
        "type": "sell",
        "cryptocurrency": "btc",
        "fiatCurrency": "usd",
        "amount": 0.75,
        "price": "64231.00",
        "minLimit": 50,
        "maxLimit": 500,
        "paymentMethods": ["bank_transfer", "paypal", "bank_transfer"],
        "userId": {"_id": "user-123456789", "fullName": "Ada Lovelace", "email": "ada@example.com", "rating": 4.75},
        "createdAt": "2026-01-01T10:00:00.000Z",
        "expiresAt": "2026-01-02T10:00:00.000Z",
    }
    record.update(overrides)
    return record


# ---------------------------------------------------------------------------
# offer_from_payload
# ---------------------------------------------------------------------------


def test_offer_from_payload_maps_listing_record() -> None:
    offer = offer_from_payload(_record())
    assert offer.offer_id == "65f0c0ffee"
    assert offer.side == "sell"
    assert offer.crypto_symbol == "BTC"
    assert offer.fiat_currency == "USD"
    assert offer.quantity == 0.75
    assert offer.price == 64231.0
    assert (offer.min_limit, offer.max_limit) == (50.0, 500.0)
    assert offer.payment_methods == ("bank_transfer", "paypal")
    assert offer.counterparty.display_name == "Ada Lovelace"
    assert offer.counterparty.reputation == 4.75
    assert offer.expires_at == datetime(2026, 1, 2, 10, 0, tzinfo=UTC)


def test_offer_from_payload_treats_naive_timestamps_as_utc() -> None:
    offer = offer_from_payload(_record(expiresAt="2026-01-02T10:00:00"))
    assert offer.expires_at.tzinfo is not None
    assert offer.expires_at == datetime(2026, 1, 2, 10, 0, tzinfo=UTC)


def test_offer_from_payload_keeps_explicit_offset() -> None:
    offer = offer_from_payload(_record(expiresAt="2026-01-02T12:00:00+02:00"))
    assert offer.expires_at == datetime(2026, 1, 2, 12, 0, tzinfo=timezone(timedelta(hours=2)))
    assert offer.expires_at == datetime(2026, 1, 2, 10, 0, tzinfo=UTC)


def test_offer_from_payload_accepts_bare_user_id() -> None:
    offer = offer_from_payload(_record(userId="user-42"))
    assert offer.counterparty.user_id == "user-42"
    assert offer.counterparty.reputation is None


@pytest.mark.parametrize("rating", [None, "n/a", -1])
def test_offer_from_payload_drops_unusable_rating(rating: Any) -> None:
    record = _record()
    record["userId"]["rating"] = rating
    assert offer_from_payload(record).counterparty.reputation is None


@pytest.mark.parametrize(
    ("overrides", "reason"),
    [
        ({"_id": ""}, "missing_offer_id"),
        ({"type": "swap"}, "invalid_offer_side"),
        ({"cryptocurrency": ""}, "missing_cryptocurrency"),
        ({"price": "lots"}, "invalid_price"),
        ({"minLimit": None}, "invalid_minLimit"),
        ({"maxLimit": "NaN"}, "invalid_maxLimit"),
        ({"amount": True}, "invalid_amount"),
        ({"expiresAt": "tomorrow"}, "invalid_expiresAt"),
        ({"createdAt": ""}, "missing_createdAt"),
    ],
)
def test_offer_from_payload_rejects_structurally_broken_records(overrides: dict[str, Any], reason: str) -> None:
    with pytest.raises(OfferPayloadError) as excinfo:
        offer_from_payload(_record(**overrides))
    assert excinfo.value.reason == reason


def test_offer_from_payload_rejects_non_dict() -> None:
    with pytest.raises(OfferPayloadError, match="invalid_offer_record"):
        offer_from_payload(["not", "a", "record"])  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Invariants are reported, not enforced
# ---------------------------------------------------------------------------


def test_invariant_violations_for_valid_offer_is_empty() -> None:
    assert offer_invariant_violations(offer_from_payload(_record())) == []


def test_malformed_offer_is_returned_with_warning(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="offerdesk.core.offer"):
        offer = offer_from_payload(_record(minLimit=600, price=0, paymentMethods=[]))
    assert offer_invariant_violations(offer) == [
        "min_limit_above_max_limit",
        "price_not_positive",
        "no_payment_methods",
    ]
    assert "offer_invariants_violated" in caplog.text


def test_non_positive_min_limit_is_reported() -> None:
    offer = offer_from_payload(_record(minLimit=0))
    assert "min_limit_not_positive" in offer_invariant_violations(offer)


# ---------------------------------------------------------------------------
# offers_from_payload
# ---------------------------------------------------------------------------


def test_offers_from_payload_skips_broken_records() -> None:
    offers = offers_from_payload([_record(), _record(_id=""), _record(_id="second", type="buy")])
    assert [o.offer_id for o in offers] == ["65f0c0ffee", "second"]


def test_offers_from_payload_ignores_non_list() -> None:
    assert offers_from_payload({"offers": []}) == []
