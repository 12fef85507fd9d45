"""Naive-UTC time helpers; every persisted timestamp is naive UTC."""
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_timestamp(value: datetime) -> float:
    """POSIX seconds for a naive-UTC datetime."""
    return value.replace(tzinfo=timezone.utc).timestamp()


def from_timestamp(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
