import pytest
from datetime import date

from app.core.calendar import display_date, display_time, normalize_hhmm, weekday_name
from app.domain.booking import parsing
from app.domain.patients.models import Gender


@pytest.mark.unit
@pytest.mark.booking
class TestPatientInfoParsing:
    """Free-text patient details."""

    def test_name_email_phone_and_age(self) -> None:
        draft = parsing.parse_patient_info("Jane Doe jane@x.com 555-0100, 29 years")

        assert draft.first_name == "Jane"
        assert draft.last_name == "Doe"
        assert draft.email == "jane@x.com"
        assert draft.phone == "555-0100"
        assert draft.age == 29
        assert draft.gender == Gender.OTHER

    def test_female_is_not_read_as_male(self) -> None:
        draft = parsing.parse_patient_info("Maria Lopez maria@example.com female 34 yrs")

        assert draft.gender == Gender.FEMALE
        assert draft.age == 34
        assert draft.last_name == "Lopez"

    def test_male_keyword(self) -> None:
        draft = parsing.parse_patient_info("Tom Baker tom@example.com, male, 61 y.o.")

        assert draft.gender == Gender.MALE
        assert draft.age == 61
        assert draft.full_name == "Tom Baker"

    def test_multi_word_last_name_and_long_phone(self) -> None:
        draft = parsing.parse_patient_info("Ana de la Cruz ana@example.com +1 (555) 123-4567")

        assert draft.first_name == "Ana"
        assert draft.last_name == "de la Cruz"
        assert draft.phone == "+1 (555) 123-4567"

    def test_trailing_number_is_not_part_of_phone(self) -> None:
        draft = parsing.parse_patient_info("John Smith john@x.com 555-123-4567 42")

        assert draft.phone == "555-123-4567"
        assert draft.last_name == "Smith"

    def test_short_numbers_are_not_phones(self) -> None:
        draft = parsing.parse_patient_info("Li Wei li@example.com 12345")

        assert draft.phone is None

    def test_missing_email_is_incomplete(self) -> None:
        draft = parsing.parse_patient_info("Jane Doe 555-0100")

        assert draft.first_name == "Jane"
        assert draft.email is None
        assert not draft.is_complete()

    def test_missing_name_is_incomplete(self) -> None:
        draft = parsing.parse_patient_info("jane@x.com")

        assert draft.first_name == ""
        assert not draft.is_complete()


@pytest.mark.unit
@pytest.mark.booking
class TestDateTimeParsing:
    """Dates and clock times in the supported formats."""

    @pytest.mark.parametrize("text,expected", [
        ("2026-10-26 at 9:00", date(2026, 10, 26)),
        ("October 26, 2026 at 2:30 PM", date(2026, 10, 26)),
        ("oct 26 2026 10:15", date(2026, 10, 26)),
        ("10/26/2026 9:15 AM", date(2026, 10, 26)),
    ])
    def test_supported_date_formats(self, text: str, expected: date) -> None:
        assert parsing.parse_date(text) == expected

    def test_invalid_calendar_date(self) -> None:
        assert parsing.parse_date("2026-02-30 10:00") is None
        assert parsing.parse_date("Smarch 3, 2026 10:00") is None

    @pytest.mark.parametrize("text,expected", [
        ("9:00", "09:00"),
        ("2:30 PM", "14:30"),
        ("2:30pm", "14:30"),
        ("12:15 a.m.", "00:15"),
        ("12:00 PM", "12:00"),
        ("14:45", "14:45"),
        ("at 3pm", "15:00"),
        ("2026-10-26 9:15am", "09:15"),
        ("10/26/2026 1:10am", "01:10"),
        ("Monday at 2:30pm", "14:30"),
        ("3 PM sharp", "15:00"),
    ])
    def test_clock_times(self, text: str, expected: str) -> None:
        assert parsing.parse_time(text) == expected

    def test_no_time(self) -> None:
        assert parsing.parse_time("2026-10-26") is None
        assert parsing.parse_time("25:00") is None


@pytest.mark.unit
@pytest.mark.booking
class TestKeywords:

    def test_booking_trigger_keeps_reason(self) -> None:
        message = "I'd like to book an appointment for a knee checkup."

        assert parsing.is_booking_trigger(message)
        assert parsing.extract_reason(message) == "a knee checkup"

    def test_keywords_are_word_bounded(self) -> None:
        assert not parsing.is_greeting("this is Chris")
        assert not parsing.is_negative("I know")
        assert parsing.is_affirmative("Yes, please")
        assert parsing.is_negative("No thanks")

    def test_doctor_matching_prefers_full_name(self) -> None:
        class Doc:
            def __init__(self, first_name, last_name):
                self.first_name = first_name
                self.last_name = last_name

        anna, sarah = Doc("Anna", "Lee"), Doc("Sarah", "Lee")

        assert parsing.match_doctors("Dr. Sarah Lee please", [anna, sarah]) == [sarah]
        assert parsing.match_doctors("dr. lee", [anna, sarah]) == [anna, sarah]
        assert parsing.match_doctors("someone else", [anna, sarah]) == []


@pytest.mark.unit
class TestCalendar:

    def test_weekday_table_is_monday_first(self) -> None:
        assert weekday_name(date(2026, 10, 26)) == "monday"
        assert weekday_name(date(2026, 11, 1)) == "sunday"

    def test_display_helpers(self) -> None:
        assert display_time("14:30") == "2:30 PM"
        assert display_time("00:15") == "12:15 AM"
        assert display_date(date(2026, 10, 26)) == "Monday, October 26, 2026"

    def test_normalize_hhmm(self) -> None:
        assert normalize_hhmm("9:00") == "09:00"
        with pytest.raises(ValueError):
            normalize_hhmm("9am")
        with pytest.raises(ValueError):
            normalize_hhmm("24:00")
