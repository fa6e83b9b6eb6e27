from __future__ import annotations

from datetime import datetime, timedelta

EXPIRED_LABEL = "Expired"

_HOUR = timedelta(hours=1)
_MINUTE = timedelta(minutes=1)


def time_remaining_label(now: datetime, expiry: datetime) -> str:
    """Return the countdown label for an offer expiring at *expiry*.

    Pure function of its arguments; callers re-invoke it on every render or
    poll.  Hours and minutes are truncated, never rounded, and there is no day
    unit: 30 hours reads ``"30h 0m left"``.
    """
    remaining = expiry - now
    if remaining <= timedelta(0):
        return EXPIRED_LABEL
    hours = remaining // _HOUR
    minutes = (remaining % _HOUR) // _MINUTE
    if hours > 0:
        return f"{hours}h {minutes}m left"
    return f"{minutes}m left"
