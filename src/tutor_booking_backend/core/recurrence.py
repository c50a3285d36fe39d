'''
Expansion of a recurring (date range x weekday set x time) schedule into
concrete occurrence instants.
'''
from datetime import date, datetime, time, timedelta, timezone

from ..common.exceptions import ValidationError, EmptyScheduleError


def validate_weekdays(weekdays) -> list[int]:
    unique = sorted(set(weekdays))
    if not unique:
        raise ValidationError("At least one weekday is required.")
    for day in unique:
        if not 0 <= day <= 6:
            raise ValidationError(f"Weekdays must be between 0 (Monday) and 6 (Sunday), got {day}.")
    return unique


def occurrence_instant(on_date: date, time_of_day: time) -> datetime:
    if time_of_day.tzinfo is None:
        return datetime.combine(on_date, time_of_day, tzinfo=timezone.utc)
    return datetime.combine(on_date, time_of_day).astimezone(timezone.utc)


def expand_occurrences(
    start_date: date,
    end_date: date,
    weekdays,
    time_of_day: time,
    max_days: int | None = None
) -> list[datetime]:
    """
    Walks every calendar day in [start_date, end_date] (inclusive) and keeps
    the days whose weekday is in weekdays, returning one UTC instant per kept
    day at time_of_day. A naive time_of_day is UTC; one carrying an offset is
    read on each kept date and converted, so the UTC instant may fall on the
    neighbouring calendar day. Raises EmptyScheduleError if nothing is kept.
    """
    if start_date > end_date:
        raise ValidationError("start_date must not be after end_date.")
    span_days = (end_date - start_date).days + 1
    if max_days is not None and span_days > max_days:
        raise ValidationError(f"A recurring schedule may span at most {max_days} days, got {span_days}.")

    wanted = set(validate_weekdays(weekdays))
    occurrences = []
    current = start_date
    while current <= end_date:
        if current.weekday() in wanted:
            occurrences.append(occurrence_instant(current, time_of_day))
        current += timedelta(days=1)

    if not occurrences:
        raise EmptyScheduleError(
            f"No {sorted(wanted)} weekdays fall between {start_date.isoformat()} and {end_date.isoformat()}."
        )
    return occurrences
