"""
Lenient date parsing shared by the mapper, the quality filter and config validation.
"""

from datetime import datetime, timezone
from typing import Any

from dateutil import parser as date_parser

# Missing month, day and time fields are filled from these, never from today.
# Parsing against two defaults that differ only in year exposes inputs with no year.
_DEFAULT = datetime(1970, 1, 1)
_YEAR_CHECK_DEFAULT = datetime(1971, 1, 1)


def parse_datetime(value: Any) -> datetime | None:
    """
    Parse an arbitrary scalar into a naive UTC datetime.

    Timezone-aware inputs are converted to UTC; naive inputs are taken as UTC.
    Text must name a year: "June 5", "12" or "Monday" yield None so results
    never depend on the current date. Missing month, day and time default to
    January 1st, midnight. Anything that does not parse yields None instead
    of raising.

    Args:
        value: Value to parse (stringified first)

    Returns:
        Parsed datetime or None
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            parsed = date_parser.parse(text, default=_DEFAULT)
            if parsed.year != date_parser.parse(text, default=_YEAR_CHECK_DEFAULT).year:
                return None
        except (ValueError, OverflowError, TypeError):
            return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


# Moment-style tokens, longest first so "YYYY" wins over "YY"
_FORMAT_TOKENS = [
    ("YYYY", "%Y"),
    ("YY", "%y"),
    ("MM", "%m"),
    ("DD", "%d"),
    ("HH", "%H"),
    ("mm", "%M"),
    ("ss", "%S"),
]


def format_datetime(value: datetime, pattern: str = "YYYY-MM-DD") -> str:
    """
    Render a datetime with a moment-style pattern (YYYY, YY, MM, DD, HH, mm, ss).

    Characters that are not tokens are copied verbatim.
    """
    out: list[str] = []
    i = 0
    while i < len(pattern):
        for token, directive in _FORMAT_TOKENS:
            if pattern.startswith(token, i):
                out.append(value.strftime(directive))
                i += len(token)
                break
        else:
            out.append(pattern[i])
            i += 1
    return "".join(out)
