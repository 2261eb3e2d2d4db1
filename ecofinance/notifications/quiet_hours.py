"""Quiet hours policy"""

from datetime import datetime, time
from typing import Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

from .models import QuietHours

logger = logging.getLogger(__name__)


def parse_time_of_day(value: str) -> time:
    """Parse an "HH:MM" string"""
    hour, minute = value.split(":")
    return time(int(hour), int(minute))


def quiet_window(quiet_hours: QuietHours) -> Tuple[time, time]:
    return parse_time_of_day(quiet_hours.start_time), parse_time_of_day(quiet_hours.end_time)


def _localize(now: datetime, tz_name: str) -> datetime:
    # Naive instants are already wall-clock time for the profile
    if now.tzinfo is None:
        return now
    try:
        return now.astimezone(ZoneInfo(tz_name))
    except ZoneInfoNotFoundError:
        logger.warning(f"Unknown quiet hours timezone {tz_name!r}, using instant as-is")
        return now


def is_in_quiet_hours(quiet_hours: QuietHours, now: datetime) -> bool:
    """
    Check whether *now* falls inside the configured quiet window.

    Both ends of the window are inclusive. A window whose start is later
    than its end (e.g. 22:00-08:00) crosses midnight. With
    ``exclude_weekends`` set, Saturdays and Sundays are never quiet.
    """
    if not quiet_hours.enabled:
        return False

    now = _localize(now, quiet_hours.timezone)

    if quiet_hours.exclude_weekends and now.weekday() >= 5:
        return False

    start, end = quiet_window(quiet_hours)
    current = now.time()

    if start > end:
        return current >= start or current <= end

    return start <= current <= end
