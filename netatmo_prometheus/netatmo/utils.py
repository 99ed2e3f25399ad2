import hashlib
import time

from datetime import datetime, timezone


def now_ts() -> int:
    """
    Returns current timestamp
    """
    return int(time.time())


def now_utc() -> datetime:
    """
    Returns current timezone aware UTC datetime
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Normalise datetime to UTC, naive values are treated as UTC
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def md5(value: str) -> str:
    """
    Short fingerprint used to reference tokens in logs
    """
    return hashlib.md5(value.encode('utf-8')).hexdigest()[:8]
