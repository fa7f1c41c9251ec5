"""
Message parsing for the booking dialogue

Scripted text matching only: keywords, patient details, dates and times.
Every function here is pure and returns ``None`` (or an empty result) for
text it cannot understand; the state machine decides how to re-prompt.
"""

import re
from datetime import date
from typing import Iterable, List, Optional, Sequence, Tuple

from app.core.calendar import format_hhmm, month_number
from app.domain.booking.session import PatientDraft
from app.domain.patients.models import Gender

BOOKING_TRIGGERS = ("book", "booking", "appointment", "appointments", "schedule")
DIRECTORY_TRIGGERS = ("doctor", "doctors", "available")
GREETINGS = ("hello", "hi", "hey")
AFFIRMATIVE = ("yes", "confirm")
NEGATIVE = ("no", "cancel")

EMAIL_PATTERN = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
PHONE_PATTERN = re.compile(r"\+?\(?\d(?:[\d().-]|\s(?=\(?\d{3}))*\d")
AGE_PATTERN = re.compile(
    r"\b(\d{1,3})\s*(?:years?(?:\s+old)?|yrs?|y\.?o\.?)(?![A-Za-z])",
    re.IGNORECASE,
)
FEMALE_PATTERN = re.compile(r"\bfemale\b", re.IGNORECASE)
MALE_PATTERN = re.compile(r"\bmale\b", re.IGNORECASE)
REASON_PATTERN = re.compile(r"\b(?:for|about)\s+(.+?)[\s.!?]*$", re.IGNORECASE)

ISO_DATE_PATTERN = re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b")
US_DATE_PATTERN = re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{4})\b")
NAMED_DATE_PATTERN = re.compile(
    r"\b([A-Za-z]{3,9})\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})\b"
)
CLOCK_TIME_PATTERN = re.compile(
    r"\b(\d{1,2}):(\d{2})(?!\d)\s*(?:([ap])\.?\s?m\b\.?)?", re.IGNORECASE
)
HOUR_TIME_PATTERN = re.compile(r"(?<![:\d])\b(\d{1,2})\s*([ap])\.?\s?m\b\.?", re.IGNORECASE)
INDEX_PATTERN = re.compile(r"\b(\d{1,2})\b")

MIN_PHONE_DIGITS = 7

# Words that surround a name in free text but are never part of it
NAME_STOPWORDS = {
    "and", "my", "name", "is", "i", "am", "im", "i'm", "email", "phone",
    "age", "gender", "aged", "old", "years", "this", "here",
}


def contains_word(message: str, words: Iterable[str]) -> bool:
    """Case-insensitive, word-bounded keyword test"""
    return any(
        re.search(rf"\b{re.escape(word)}\b", message, re.IGNORECASE)
        for word in words
    )


def is_booking_trigger(message: str) -> bool:
    return contains_word(message, BOOKING_TRIGGERS)


def is_directory_request(message: str) -> bool:
    return contains_word(message, DIRECTORY_TRIGGERS)


def is_greeting(message: str) -> bool:
    return contains_word(message, GREETINGS)


def is_affirmative(message: str) -> bool:
    return contains_word(message, AFFIRMATIVE)


def is_negative(message: str) -> bool:
    return contains_word(message, NEGATIVE)


def extract_reason(message: str) -> Optional[str]:
    """Trailing ``for ...``/``about ...`` phrase of a booking request"""
    match = REASON_PATTERN.search(message)
    if not match:
        return None
    reason = match.group(1).strip(" ,")
    return reason or None


def match_doctors(message: str, doctors: Sequence) -> List:
    """Doctors named in the message; full-name matches win over last-name ones"""
    full_name_matches = [
        doctor for doctor in doctors
        if contains_word(message, (f"{doctor.first_name} {doctor.last_name}",))
    ]
    if full_name_matches:
        return full_name_matches
    lowered = message.lower()
    return [doctor for doctor in doctors if doctor.last_name and doctor.last_name.lower() in lowered]


def extract_index(message: str) -> Optional[int]:
    """First standalone number in the message, as a 1-based list position"""
    match = INDEX_PATTERN.search(message)
    return int(match.group(1)) if match else None


def parse_patient_info(message: str) -> PatientDraft:
    """Pull email, phone, age, gender and name out of a free-text message.

    Age goes first so ``29 years`` is never read as part of a phone number;
    whatever remains after removing the recognised fields is the name, with
    the first token as first name and the rest as last name.
    """
    remaining = message

    age = 0
    age_match = AGE_PATTERN.search(remaining)
    if age_match:
        age = int(age_match.group(1))
        remaining = remaining[:age_match.start()] + " " + remaining[age_match.end():]

    email = None
    email_match = EMAIL_PATTERN.search(remaining)
    if email_match:
        email = email_match.group(0)
        remaining = remaining[:email_match.start()] + " " + remaining[email_match.end():]

    phone = None
    for phone_match in PHONE_PATTERN.finditer(remaining):
        candidate = phone_match.group(0).strip()
        if sum(ch.isdigit() for ch in candidate) >= MIN_PHONE_DIGITS:
            phone = candidate
            remaining = remaining[:phone_match.start()] + " " + remaining[phone_match.end():]
            break

    # "female" contains "male", so it is tested first
    if FEMALE_PATTERN.search(remaining):
        gender = Gender.FEMALE
    elif MALE_PATTERN.search(remaining):
        gender = Gender.MALE
    else:
        gender = Gender.OTHER
    remaining = MALE_PATTERN.sub(" ", FEMALE_PATTERN.sub(" ", remaining))

    tokens = [
        token.strip(".,;:!?()\"")
        for token in remaining.split()
    ]
    name_parts = [
        token for token in tokens
        if token and re.fullmatch(r"[^\W\d_][\w'.-]*", token) and token.lower() not in NAME_STOPWORDS
    ]

    return PatientDraft(
        first_name=name_parts[0] if name_parts else "",
        last_name=" ".join(name_parts[1:]),
        email=email,
        phone=phone,
        age=age,
        gender=gender,
    )


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date(message: str) -> Optional[date]:
    """``YYYY-MM-DD``, ``Month DD, YYYY`` or ``MM/DD/YYYY``"""
    match = ISO_DATE_PATTERN.search(message)
    if match:
        return _safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    match = US_DATE_PATTERN.search(message)
    if match:
        return _safe_date(int(match.group(3)), int(match.group(1)), int(match.group(2)))

    for match in NAMED_DATE_PATTERN.finditer(message):
        month = month_number(match.group(1))
        if month:
            return _safe_date(int(match.group(3)), month, int(match.group(2)))

    return None


def _to_24h(hour: int, minute: int, meridiem: Optional[str]) -> Optional[str]:
    if meridiem:
        meridiem = meridiem.lower()
        if 1 <= hour <= 12:
            if meridiem == "p" and hour != 12:
                hour += 12
            elif meridiem == "a" and hour == 12:
                hour = 0
    if hour > 23 or minute > 59:
        return None
    return format_hhmm(hour, minute)


def parse_time(message: str) -> Optional[str]:
    """``H:MM`` with optional AM/PM (also ``2pm``), returned as ``HH:MM``"""
    match = CLOCK_TIME_PATTERN.search(message)
    if match:
        return _to_24h(int(match.group(1)), int(match.group(2)), match.group(3))

    match = HOUR_TIME_PATTERN.search(message)
    if match:
        return _to_24h(int(match.group(1)), 0, match.group(2))

    return None


def parse_date_time(message: str) -> Tuple[Optional[date], Optional[str]]:
    return parse_date(message), parse_time(message)
