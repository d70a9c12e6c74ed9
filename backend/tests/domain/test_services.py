from datetime import datetime

import pytest
from tablehold.domain.errors import InvalidInputError, SlotUnavailableError
from tablehold.domain.services import (
    SlotSnapshot,
    display_status,
    expand_slot_times,
    format_time_12h,
    next_24_hours_window,
    normalize_time,
    parse_date,
    parse_reservation_status,
    parse_slot_status,
    slot_status_after,
    validate_booking,
)
from tablehold.models import ReservationStatus, SlotDisplayStatus, SlotStatus


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("19:30", "19:30"),
        ("9:05", "09:05"),
        ("7:30 PM", "19:30"),
        ("7:30pm", "19:30"),
        ("12:00 AM", "00:00"),
        ("12:45 PM", "12:45"),
        ("11:59 am", "11:59"),
    ],
)
def test_normalize_time_accepts_24h_and_12h(raw: str, expected: str) -> None:
    assert normalize_time(raw) == expected


@pytest.mark.parametrize("raw", ["", "25:00", "7:75", "13:00 PM", "0:30 AM", "noon", "7.30"])
def test_normalize_time_rejects_garbage(raw: str) -> None:
    with pytest.raises(InvalidInputError):
        normalize_time(raw)


def test_time_round_trips_for_display() -> None:
    assert normalize_time("7:30 PM") == "19:30"
    assert format_time_12h(normalize_time("7:30 PM")) == "7:30 PM"


def test_format_time_12h_midnight_and_noon() -> None:
    assert format_time_12h("00:15") == "12:15 AM"
    assert format_time_12h("12:00") == "12:00 PM"
    assert format_time_12h("09:05") == "9:05 AM"


def test_parse_date_validates_calendar_dates() -> None:
    assert parse_date("2025-08-20") == "2025-08-20"
    with pytest.raises(InvalidInputError):
        parse_date("2025-02-30")
    with pytest.raises(InvalidInputError):
        parse_date("20/08/2025")


def test_expand_slot_times_stops_before_end() -> None:
    assert expand_slot_times("18:00", "20:00", 30, max_slots=500) == ["18:00", "18:30", "19:00", "19:30"]


def test_expand_slot_times_rejects_non_positive_interval() -> None:
    with pytest.raises(InvalidInputError):
        expand_slot_times("18:00", "20:00", 0, max_slots=500)


def test_expand_slot_times_caps_slot_count() -> None:
    with pytest.raises(InvalidInputError):
        expand_slot_times("00:00", "23:59", 1, max_slots=500)


def test_expand_slot_times_empty_when_end_not_after_start() -> None:
    assert expand_slot_times("20:00", "18:00", 30, max_slots=500) == []


def test_status_parsing_is_case_insensitive() -> None:
    assert parse_reservation_status("confirmed") is ReservationStatus.CONFIRMED
    assert parse_reservation_status(" No_Show ") is ReservationStatus.NO_SHOW
    assert parse_slot_status("full") is SlotStatus.FULL
    with pytest.raises(InvalidInputError):
        parse_reservation_status("done")
    with pytest.raises(InvalidInputError):
        parse_slot_status("cutoff")


def test_slot_status_after_generic_update() -> None:
    assert slot_status_after(ReservationStatus.CONFIRMED) is SlotStatus.FULL
    assert slot_status_after(ReservationStatus.CANCELLED) is SlotStatus.AVAILABLE
    for status in (ReservationStatus.SEATED, ReservationStatus.COMPLETED, ReservationStatus.NO_SHOW):
        assert slot_status_after(status) is None


def test_display_status_hides_requested_as_full() -> None:
    assert display_status(SlotStatus.AVAILABLE) is SlotDisplayStatus.AVAILABLE
    assert display_status(SlotStatus.REQUESTED) is SlotDisplayStatus.FULL
    assert display_status(SlotStatus.FULL) is SlotDisplayStatus.FULL


def test_next_24_hours_window_rolls_into_tomorrow() -> None:
    assert next_24_hours_window(datetime(2025, 8, 31, 22, 30)) == ("2025-08-31", "2025-09-01", "22:00")


def test_validate_booking_rejects_taken_slot() -> None:
    snap = SlotSnapshot(status=SlotStatus.REQUESTED, party_size=2, active_reservations=1)
    with pytest.raises(SlotUnavailableError):
        validate_booking(snap, party_size=2)


def test_validate_booking_rejects_available_slot_with_active_claim() -> None:
    snap = SlotSnapshot(status=SlotStatus.AVAILABLE, party_size=2, active_reservations=1)
    with pytest.raises(SlotUnavailableError):
        validate_booking(snap, party_size=2)


def test_validate_booking_rejects_party_larger_than_slot() -> None:
    snap = SlotSnapshot(status=SlotStatus.AVAILABLE, party_size=2, active_reservations=0)
    with pytest.raises(InvalidInputError):
        validate_booking(snap, party_size=4)


def test_validate_booking_accepts_open_slot() -> None:
    snap = SlotSnapshot(status=SlotStatus.AVAILABLE, party_size=4, active_reservations=0)
    validate_booking(snap, party_size=4)
