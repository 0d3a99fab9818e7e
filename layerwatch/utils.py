from __future__ import annotations

from datetime import datetime
from typing import Optional


TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def record_error(errors: list[str] | None, context: str, exc: Exception) -> None:
    if errors is None:
        return
    errors.append(f"{context}: {type(exc).__name__}: {exc}")


def safe_float(value: object | None) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def safe_int(value: object | None) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def format_record_ts(ts: datetime) -> str:
    """Millisecond precision, local time: ``2024-05-01 13:37:00.123``."""
    return f"{ts.strftime(TIMESTAMP_FORMAT)}.{ts.microsecond // 1000:03d}"


def format_duration(seconds: Optional[float]) -> str:
    if seconds is None:
        return "-"
    if seconds < 1:
        return f"{seconds * 1000:.1f} ms"
    if seconds < 60:
        return f"{seconds:.2f} s"
    minutes, sec = divmod(seconds, 60)
    if minutes < 60:
        return f"{int(minutes)}m {sec:.1f}s"
    hours, minutes = divmod(minutes, 60)
    return f"{int(hours)}h {int(minutes)}m {sec:.1f}s"


def format_rate(count: int, seconds: Optional[float]) -> str:
    if not seconds or seconds <= 0:
        return "-"
    rate = count / seconds
    if rate >= 1_000_000:
        return f"{rate / 1_000_000:.2f} Mpkt/s"
    if rate >= 1_000:
        return f"{rate / 1_000:.2f} Kpkt/s"
    return f"{rate:.1f} pkt/s"


def share(part: int, whole: int) -> str:
    if whole <= 0:
        return "-"
    return f"{part / whole:.1%}"
