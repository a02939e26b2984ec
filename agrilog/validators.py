from datetime import datetime, timezone
from typing import Optional

DATE_FORMATS = [
    "%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y", "%Y/%m/%d",
    "%d.%m.%Y", "%Y.%m.%d", "%d %b %Y", "%d %B %Y",
    "%m/%d/%Y",
]

def parse_date(date_str: Optional[str]) -> Optional[datetime]:
    """
    Parses a filter date in any of the common formats above (or ISO 8601).
    Returns None for empty input, raises ValueError when nothing matches.
    """
    if not date_str or not date_str.strip():
        return None
    date_str = date_str.strip()
    for fmt in DATE_FORMATS:
        try:
            return as_utc(datetime.strptime(date_str, fmt))
        except ValueError:
            continue
    try:
        parsed = datetime.fromisoformat(date_str)
    except ValueError:
        raise ValueError(f"Unrecognised date: {date_str}")
    return as_utc(parsed)

def contains(haystack: Optional[str], needle: str) -> bool:
    """Case-insensitive substring match, False for empty haystack."""
    if not haystack:
        return False
    return needle.lower() in haystack.lower()

def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Aware UTC datetime, the form stored in the database. Naive values are
    taken to be UTC already.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
