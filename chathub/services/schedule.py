"""
Operating-hours check for assistant bindings.
"""

from datetime import datetime
from typing import Optional
import logging

from ..models.settings import ScheduleSettings

logger = logging.getLogger(__name__)

WEEKDAY_NAMES = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]


def _parse_minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def is_available_by_schedule(schedule: Optional[ScheduleSettings], now: Optional[datetime] = None) -> bool:
    """Return True if an assistant with this schedule may answer at ``now``.

    Windows whose end is earlier than their start span midnight. An unreadable
    time window leaves the assistant available.
    """
    if schedule is None or not schedule.enabled or schedule.work_mode == "24/7":
        return True

    now = now or datetime.now()

    if schedule.weekdays:
        allowed = {day.strip().lower()[:3] for day in schedule.weekdays}
        if WEEKDAY_NAMES[now.weekday()] not in allowed:
            return False

    try:
        start = _parse_minutes(schedule.start_time or "00:00")
        end = _parse_minutes(schedule.end_time or "23:59")
    except ValueError:
        logger.warning(f"Unreadable schedule window {schedule.start_time}-{schedule.end_time}, treating as available")
        return True

    current = now.hour * 60 + now.minute
    if start <= end:
        return start <= current <= end
    # overnight window, e.g. 22:00-06:00
    return current >= start or current <= end
