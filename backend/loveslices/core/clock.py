import datetime as dt


def utc_now() -> dt.datetime:
    """Current UTC datetime with timezone information."""
    return dt.datetime.now(dt.timezone.utc)


def as_utc(value: dt.datetime) -> dt.datetime:
    # Naive values coming back from the store are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def iso(value: dt.datetime | None) -> str | None:
    """ISO-8601 with a trailing Z, or None."""
    if value is None:
        return None
    return as_utc(value).replace(tzinfo=None).isoformat() + "Z"


def elapsed_seconds(start: dt.datetime, end: dt.datetime) -> int:
    return round((as_utc(end) - as_utc(start)).total_seconds())
