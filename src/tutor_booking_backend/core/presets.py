'''
Resolves the blackout shortcuts a tutor can pick ("today", "this week", ...)
into concrete [start, end) instants.
'''
from datetime import date, datetime, time, timedelta, timezone

from ..common.exceptions import ValidationError
from ..database.db_enums import UnavailabilityPresetEnum
from .intervals import Interval


def _midnight(a_date: date) -> datetime:
    return datetime.combine(a_date, time.min, tzinfo=timezone.utc)


def resolve_preset(preset: str, now: datetime, first_day_of_week: int) -> Interval:
    """
    today      -> now until the next midnight
    tomorrow   -> the whole of the next day
    this_week  -> now until the start of the next week
    this_month -> now until the first instant of the next month
    """
    today = now.date()
    if preset == UnavailabilityPresetEnum.TODAY.value:
        return now, _midnight(today + timedelta(days=1))

    if preset == UnavailabilityPresetEnum.TOMORROW.value:
        start = _midnight(today + timedelta(days=1))
        return start, start + timedelta(days=1)

    if preset == UnavailabilityPresetEnum.THIS_WEEK.value:
        days_into_week = (today.weekday() - first_day_of_week) % 7
        next_week_start = today + timedelta(days=7 - days_into_week)
        return now, _midnight(next_week_start)

    if preset == UnavailabilityPresetEnum.THIS_MONTH.value:
        if today.month == 12:
            first_of_next = date(today.year + 1, 1, 1)
        else:
            first_of_next = date(today.year, today.month + 1, 1)
        return now, _midnight(first_of_next)

    raise ValidationError(f"Invalid preset value '{preset}'.")


def resolve_date_range(start_date: date, end_date: date) -> Interval:
    """Whole-day range: 00:00 of start_date up to 00:00 after end_date."""
    if start_date > end_date:
        raise ValidationError("start_date must not be after end_date.")
    return _midnight(start_date), _midnight(end_date + timedelta(days=1))
