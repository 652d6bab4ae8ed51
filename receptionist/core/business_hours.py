"""Business-hours gate.

Pure function, evaluated on every message; nothing is cached between calls.
"""

from __future__ import annotations

import logging
from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from receptionist.models import BusinessHours

logger = logging.getLogger(__name__)


def _minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def _to_local(now: datetime, timezone: str) -> datetime:
    try:
        tz = ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown business timezone %r, using UTC", timezone)
        tz = ZoneInfo("UTC")
    if now.tzinfo is None:
        return now.replace(tzinfo=tz)
    return now.astimezone(tz)


def is_within_business_hours(policy: BusinessHours, now: datetime) -> bool:
    """Return ``True`` if *now* falls inside the configured opening hours.

    Only the first entry for today's weekday is consulted, even if the
    configuration lists the same day twice.  Both bounds are inclusive.
    A naive *now* is interpreted in the policy's timezone.
    """
    if not policy.enabled:
        return True

    local = _to_local(now, policy.timezone)
    day_of_week = local.weekday()  # Monday = 0
    current = local.hour * 60 + local.minute

    for entry in policy.hours:
        if entry.day == day_of_week:
            return _minutes(entry.start) <= current <= _minutes(entry.end)

    return False
