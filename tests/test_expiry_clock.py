from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from offerdesk.core.expiry import EXPIRED_LABEL, time_remaining_label

_EXPIRY = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _label_at(remaining: timedelta) -> str:
    return time_remaining_label(_EXPIRY - remaining, _EXPIRY)


# ---------------------------------------------------------------------------
# Expired
# ---------------------------------------------------------------------------


def test_exactly_at_expiry_is_expired() -> None:
    assert time_remaining_label(_EXPIRY, _EXPIRY) == "Expired"


def test_one_millisecond_past_expiry_is_expired() -> None:
    assert time_remaining_label(_EXPIRY + timedelta(milliseconds=1), _EXPIRY) == EXPIRED_LABEL


@pytest.mark.parametrize("late", [timedelta(seconds=1), timedelta(hours=5), timedelta(days=40)])
def test_any_expiry_in_the_past_is_expired(late: timedelta) -> None:
    assert time_remaining_label(_EXPIRY + late, _EXPIRY) == "Expired"


# ---------------------------------------------------------------------------
# Truncation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("remaining", "expected"),
    [
        (timedelta(seconds=59), "0m left"),  # truncated, not rounded
        (timedelta(seconds=90), "1m left"),
        (timedelta(minutes=59, seconds=59), "59m left"),
        (timedelta(hours=1), "1h 0m left"),
        (timedelta(hours=2, minutes=5, seconds=59), "2h 5m left"),
        (timedelta(hours=30, minutes=15), "30h 15m left"),  # no day unit
        (timedelta(days=3), "72h 0m left"),
    ],
)
def test_label_truncates_to_hours_and_minutes(remaining: timedelta, expected: str) -> None:
    assert _label_at(remaining) == expected


def test_label_is_idempotent_for_fixed_inputs() -> None:
    now = _EXPIRY - timedelta(minutes=42, seconds=7)
    assert time_remaining_label(now, _EXPIRY) == time_remaining_label(now, _EXPIRY)


def test_label_never_grows_as_now_advances() -> None:
    def _minutes(label: str) -> int:
        if label == "Expired":
            return -1
        parts = label.removesuffix(" left").split()
        total = 0
        for part in parts:
            total += int(part[:-1]) * (60 if part.endswith("h") else 1)
        return total

    start = _EXPIRY - timedelta(hours=3)
    previous = _minutes(time_remaining_label(start, _EXPIRY))
    for step in range(0, 3 * 60 * 60 + 120, 37):
        current = _minutes(time_remaining_label(start + timedelta(seconds=step), _EXPIRY))
        assert current <= previous
        previous = current
    assert previous == -1
