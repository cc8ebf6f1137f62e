"""Date manipulation utilities"""

from datetime import date, datetime, timezone
from typing import Iterable, Optional

# Formats seen on card statements, tried in order
STATEMENT_DATE_FORMATS = (
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d/%m/%y",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d, %Y",
    "%d-%b-%Y",
    "%d %b %y",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from backends that drop tzinfo"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_statement_date(value: Optional[str]) -> Optional[date]:
    """Parse a statement date string, returning None when no known format fits"""
    if not value:
        return None
    text = value.strip()
    for fmt in STATEMENT_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def month_key(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def month_span(dates: Iterable[date]) -> int:
    """Calendar months covered from earliest to latest date (inclusive), never below 1"""
    ordinals = [d.year * 12 + d.month for d in dates]
    if not ordinals:
        return 1
    return max(max(ordinals) - min(ordinals) + 1, 1)
