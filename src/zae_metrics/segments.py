"""Query segmentation over hourly and daily rollups.

A query range ``[from_date, to_date]`` (inclusive hours) is split so that
every calendar day it fully covers is read once from its daily rollup, and
only the partial days at either end are read hour by hour::

    2024-06-15T05 .. 2024-06-20T18

    [hourly 06-15T05..06-15T23] [daily 06-16..06-19] [hourly 06-20T00..06-20T18]

Summing the segments at their own granularity gives the same total as
scanning every hour in the range.
"""

from datetime import date, datetime, timedelta

from .models import Granularity, QuerySegment, format_date_hour, parse_date_hour

FIRST_HOUR = 0
LAST_HOUR = 23


def _day_start(day: date) -> str:
    return format_date_hour(datetime(day.year, day.month, day.day, FIRST_HOUR))


def _day_end(day: date) -> str:
    return format_date_hour(datetime(day.year, day.month, day.day, LAST_HOUR))


def is_full_day_range(from_date: str, to_date: str) -> bool:
    """True if the range starts at hour 00 and ends at hour 23."""
    return (
        parse_date_hour(from_date).hour == FIRST_HOUR
        and parse_date_hour(to_date).hour == LAST_HOUR
    )


def plan_segments(from_date: str, to_date: str) -> list[QuerySegment]:
    """
    Split an hour range into the fewest hourly/daily reads.

    Args:
        from_date: First hour, ``YYYY-MM-DDThh``
        to_date: Last hour (inclusive), ``YYYY-MM-DDThh``; not before ``from_date``

    Returns:
        Ordered, non-overlapping segments covering exactly the range:
        an optional leading hourly segment, an optional daily segment and
        an optional trailing hourly segment.
    """
    start = parse_date_hour(from_date)
    end = parse_date_hour(to_date)
    if end < start:
        raise ValueError(f"to_date {to_date} is before from_date {from_date}")

    if is_full_day_range(from_date, to_date):
        return [QuerySegment(Granularity.DAILY, from_date, to_date)]

    start_aligned = start.hour == FIRST_HOUR
    end_aligned = end.hour == LAST_HOUR

    start_day = start.date()
    end_day = end.date()

    if start_day == end_day:
        return [QuerySegment(Granularity.HOURLY, from_date, to_date)]

    segments: list[QuerySegment] = []
    full_start = start_day
    full_end = end_day

    if not start_aligned:
        segments.append(QuerySegment(Granularity.HOURLY, from_date, _day_end(start_day)))
        full_start = start_day + timedelta(days=1)

    if not end_aligned:
        full_end = end_day - timedelta(days=1)

    if full_start <= full_end:
        segments.append(
            QuerySegment(Granularity.DAILY, _day_start(full_start), _day_end(full_end))
        )

    if not end_aligned:
        segments.append(QuerySegment(Granularity.HOURLY, _day_start(end_day), to_date))

    return segments
