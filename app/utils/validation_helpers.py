from datetime import datetime


def to_local_naive(value: datetime) -> datetime:
    """
    Reservations are stored as naive local wall-clock times. Offset-aware
    input is converted to local time and stripped of its tzinfo.
    """
    if value is not None and value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value
