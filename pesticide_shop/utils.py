"""Small helpers shared by the views and the domain layer."""

from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple


def to_int(value, default: int = 0) -> int:
    if value is None or value == "":
        return default
    if isinstance(value, str):
        value = value.replace(" ", "").replace(",", "")
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def parse_date(value, default: Optional[date] = None) -> Optional[date]:
    """Parse ``YYYY-MM-DD`` (or a datetime) into a date."""
    if value is None or value == "":
        return default
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return datetime.strptime(text[:10], "%Y-%m-%d").date()
    except ValueError:
        return default


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    """Return the first and last instant of ``day``."""
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1) - timedelta(microseconds=1)


def digits_only(value: Optional[str]) -> str:
    if not value:
        return ""
    return "".join(ch for ch in str(value) if ch.isdigit())


def short_preview(text: Optional[str], limit: int = 140) -> str:
    """Shorten ``text`` to ``limit`` characters adding an ellipsis."""
    if not text:
        return ""
    clean = " ".join(str(text).split())
    if len(clean) <= limit:
        return clean
    return clean[: max(limit - 3, 0)] + "..."
