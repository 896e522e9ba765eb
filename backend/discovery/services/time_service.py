from __future__ import annotations

import logging
from datetime import datetime, time, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..config import settings

logger = logging.getLogger(__name__)

DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def _parse_hhmm(value: str) -> time:
    hour, minute = value.strip().split(":")
    return time(int(hour), int(minute))


def _local_zone(timezone_name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(timezone_name or settings.default_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(settings.default_timezone)


def is_open_now(working_hours: dict | None, timezone_name: str | None = None, now_utc: datetime | None = None) -> bool:
    """Open/closed status from ``{"open": "HH:MM", "close": "HH:MM", "days": [...]}``.

    Listings without usable hours are reported open.
    """
    if not working_hours:
        return True
    open_raw = working_hours.get("open")
    close_raw = working_hours.get("close")
    if not isinstance(open_raw, str) or not isinstance(close_raw, str):
        return True

    now = now_utc or datetime.now(timezone.utc)
    local_now = now.astimezone(_local_zone(timezone_name))

    days = [str(day).strip().lower() for day in working_hours.get("days") or []]
    if days and DAY_NAMES[local_now.weekday()] not in days:
        return False

    if open_raw.strip().lower() == "closed":
        return False
    if open_raw == "00:00" and close_raw == "00:00":
        return True

    try:
        start = _parse_hhmm(open_raw)
        end = _parse_hhmm(close_raw)
    except ValueError:
        logger.debug("Unparseable working hours open=%r close=%r", open_raw, close_raw)
        return True

    current_t = local_now.time().replace(second=0, microsecond=0)
    if start <= end:
        return start <= current_t <= end
    return current_t >= start or current_t <= end
