'''
Pure interval arithmetic used by the slot generator.

All instants are timezone-aware UTC datetimes and every interval is
half-open: [start, end).
'''
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable

from ..common.exceptions import ValidationError

Interval = tuple[datetime, datetime]

MINUTES_PER_DAY = 24 * 60


def day_bounds(a_date: date) -> Interval:
    """Returns the UTC instants [00:00 of a_date, 00:00 of the next day)."""
    start = datetime.combine(a_date, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def minute_of_day_to_instant(a_date: date, minute: int) -> datetime:
    return datetime.combine(a_date, time.min, tzinfo=timezone.utc) + timedelta(minutes=minute)


def overlaps(a: Interval, b: Interval) -> bool:
    return a[0] < b[1] and b[0] < a[1]


def merge_intervals(intervals: Iterable[Interval]) -> list[Interval]:
    """
    Merges overlapping or touching intervals into a sorted, disjoint list.
    Empty intervals are dropped.
    """
    ordered = sorted((start, end) for start, end in intervals if start < end)
    merged: list[Interval] = []
    for start, end in ordered:
        if merged and start <= merged[-1][1]:
            if end > merged[-1][1]:
                merged[-1] = (merged[-1][0], end)
        else:
            merged.append((start, end))
    return merged


def subtract_intervals(window: Interval, blocked: Iterable[Interval]) -> list[Interval]:
    """Removes every blocked interval from window, returning the free pieces in order."""
    free: list[Interval] = []
    cursor, window_end = window
    for block_start, block_end in merge_intervals(blocked):
        if block_end <= cursor or block_start >= window_end:
            continue
        if block_start > cursor:
            free.append((cursor, block_start))
        cursor = max(cursor, block_end)
        if cursor >= window_end:
            break
    if cursor < window_end:
        free.append((cursor, window_end))
    return free


def quantize(segment: Interval, anchor: datetime, step: timedelta) -> list[datetime]:
    """
    Cuts a free segment into whole steps aligned to the grid that starts at
    anchor. A start is kept only if the full step fits inside the segment.
    """
    seg_start, seg_end = segment
    if seg_start < anchor:
        seg_start = anchor
    offset = seg_start - anchor
    steps_in = -(-offset // step)  # ceiling division on timedeltas
    current = anchor + steps_in * step
    starts = []
    while current + step <= seg_end:
        starts.append(current)
        current += step
    return starts


def contiguous_starts(starts: list[datetime], step: timedelta, count: int) -> list[datetime]:
    """
    Keeps the starts s for which s, s+step, ..., s+(count-1)*step are all
    present in starts. This is how multi-interval bookings reuse the
    single-interval slot list.
    """
    if count < 1:
        raise ValidationError("slot_count must be at least 1.")
    available = set(starts)
    return [
        start for start in starts
        if all(start + i * step in available for i in range(1, count))
    ]


def validate_day_intervals(intervals: Iterable[tuple[int, int, int]]) -> list[tuple[int, int, int]]:
    """
    Validates (day_of_week, start_minute, end_minute) triples for a weekly
    template and returns them sorted. Raises ValidationError on a bad day,
    a start not before its end, or two intervals overlapping on one day.
    """
    ordered = sorted(intervals)
    for day_of_week, start_minute, end_minute in ordered:
        if not 0 <= day_of_week <= 6:
            raise ValidationError(f"day_of_week must be between 0 and 6, got {day_of_week}.")
        if not (0 <= start_minute < MINUTES_PER_DAY and 0 < end_minute <= MINUTES_PER_DAY):
            raise ValidationError(f"Minutes must fall within a single day, got {start_minute}-{end_minute}.")
        if start_minute >= end_minute:
            raise ValidationError(f"Interval start must be before its end (day {day_of_week}: {start_minute} >= {end_minute}).")

    for previous, current in zip(ordered, ordered[1:]):
        if previous[0] == current[0] and current[1] < previous[2]:
            raise ValidationError(
                f"Intervals overlap on day {current[0]}: "
                f"{previous[1]}-{previous[2]} and {current[1]}-{current[2]}."
            )
    return ordered
