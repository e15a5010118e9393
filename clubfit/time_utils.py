import datetime as dt


def now() -> dt.datetime:
    """
    Current wall-clock time as a naive local datetime.
    Every timestamp the service stores goes through here.
    """
    return dt.datetime.now()


def start_of_day(moment: dt.datetime) -> dt.datetime:
    """
    Truncate to local midnight.
    Example: 2025-03-04 17:45 -> 2025-03-04 00:00
    """
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def days_between(earlier: dt.datetime, later: dt.datetime) -> int:
    """
    Whole calendar days from earlier to later, comparing midnights.
    Negative when later is actually before earlier.
    """
    delta = start_of_day(later) - start_of_day(earlier)
    return delta.days


def week_bounds(moment: dt.datetime) -> tuple[dt.datetime, dt.datetime]:
    """
    Monday-start week containing moment.
    Sunday counts as day 7 of the week that started the Monday before.
    Returns (Monday 00:00:00, Sunday 23:59:59.999999).
    """
    # weekday(): Monday = 0, Sunday = 6
    start = start_of_day(moment) - dt.timedelta(days=moment.weekday())
    end = start + dt.timedelta(days=6, hours=23, minutes=59, seconds=59, microseconds=999999)
    return start, end


def elapsed_seconds(start: dt.datetime, end: dt.datetime) -> int:
    """Whole seconds from start to end, floored, never negative."""
    return max(0, int((end - start).total_seconds()))
