import time
from datetime import datetime, timezone


def now_ms() -> int:
    """Current time as epoch milliseconds (the unit stored on every record)."""
    return int(time.time() * 1000)


def ms_to_datetime(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def format_ms(value: int) -> str:
    return ms_to_datetime(value).strftime("%Y-%m-%d %H:%M UTC")
