"""
Calendar helpers

Fixed weekday/month tables and HH:MM utilities. Nothing here goes through
locale-dependent formatting, so parsing and rendering are identical on
every host.
"""

import re
from datetime import date
from typing import Optional

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

MONTHS = (
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
)

# Full names, three-letter abbreviations and "sept"
MONTH_LOOKUP = {name: index + 1 for index, name in enumerate(MONTHS)}
MONTH_LOOKUP.update({name[:3]: index + 1 for index, name in enumerate(MONTHS)})
MONTH_LOOKUP["sept"] = 9

HHMM_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


def weekday_name(target_date: date) -> str:
    """Lowercase English weekday name for a date (Monday-first table)."""
    return WEEKDAYS[target_date.weekday()]


def normalize_hhmm(value: str) -> str:
    """Return ``value`` as zero-padded ``HH:MM`` or raise ``ValueError``."""
    match = HHMM_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    return format_hhmm(hour, minute)


def format_hhmm(hour: int, minute: int) -> str:
    return f"{hour:02d}:{minute:02d}"


def to_minutes(hhmm: str) -> int:
    hour, minute = hhmm.split(":")
    return int(hour) * 60 + int(minute)


def from_minutes(total: int) -> str:
    return format_hhmm(total // 60, total % 60)


def display_time(hhmm: str) -> str:
    """Render ``14:30`` as ``2:30 PM``."""
    hour, minute = divmod(to_minutes(hhmm), 60)
    suffix = "AM" if hour < 12 else "PM"
    hour12 = hour % 12 or 12
    return f"{hour12}:{minute:02d} {suffix}"


def display_date(target_date: date) -> str:
    """Render a date as ``Monday, October 26, 2026``."""
    return (
        f"{weekday_name(target_date).capitalize()}, "
        f"{MONTHS[target_date.month - 1].capitalize()} {target_date.day}, {target_date.year}"
    )


def month_number(name: str) -> Optional[int]:
    return MONTH_LOOKUP.get(name.lower().rstrip("."))
