from datetime import datetime, timezone


def as_naive_utc(value: datetime) -> datetime:
    # Mongo hands back naive UTC datetimes; parsed API input may be aware
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
