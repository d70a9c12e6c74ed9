import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from ..models import ReservationStatus, SlotDisplayStatus, SlotStatus
from .errors import InvalidInputError, SlotUnavailableError

_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([AaPp][Mm])?\s*$")


@dataclass(frozen=True)
class SlotSnapshot:
    status: SlotStatus
    party_size: int
    active_reservations: int


def validate_booking(snapshot: SlotSnapshot, *, party_size: int) -> None:
    """
    Pure validation run before a slot is claimed by a new reservation.
    Raises domain errors; the claim itself is still a conditional update in the store.
    """
    if party_size <= 0:
        raise InvalidInputError("party_size must be positive")
    if party_size > snapshot.party_size:
        raise InvalidInputError("party_size exceeds slot capacity")
    if snapshot.status != SlotStatus.AVAILABLE or snapshot.active_reservations > 0:
        raise SlotUnavailableError("slot is not available")


def normalize_time(value: str) -> str:
    """Accept `HH:MM` (24-hour) or `h:mm AM/PM` and return `HH:MM`."""
    match = _TIME_RE.match(value or "")
    if match is None:
        raise InvalidInputError(f"invalid time: {value!r}")
    hours, minutes, period = int(match.group(1)), int(match.group(2)), match.group(3)
    if minutes > 59:
        raise InvalidInputError(f"invalid time: {value!r}")
    if period is None:
        if hours > 23:
            raise InvalidInputError(f"invalid time: {value!r}")
    else:
        if not 1 <= hours <= 12:
            raise InvalidInputError(f"invalid time: {value!r}")
        if period.upper() == "PM" and hours != 12:
            hours += 12
        elif period.upper() == "AM" and hours == 12:
            hours = 0
    return f"{hours:02d}:{minutes:02d}"


def format_time_12h(value: str) -> str:
    hours_str, minutes = value.split(":")
    hours = int(hours_str)
    period = "PM" if hours >= 12 else "AM"
    display = 12 if hours % 12 == 0 else hours % 12
    return f"{display}:{minutes} {period}"


def parse_date(value: str) -> str:
    try:
        return date.fromisoformat((value or "").strip()).isoformat()
    except ValueError as exc:
        raise InvalidInputError(f"invalid date: {value!r}") from exc


def _to_minutes(value: str) -> int:
    hours, minutes = normalize_time(value).split(":")
    return int(hours) * 60 + int(minutes)


def expand_slot_times(start: str, end: str, interval: int, *, max_slots: int) -> list[str]:
    """Every `start + k * interval` strictly before `end`, as HH:MM."""
    if interval <= 0:
        raise InvalidInputError("interval must be a positive number of minutes")
    begin, finish = _to_minutes(start), _to_minutes(end)
    minutes = list(range(begin, finish, interval))
    if len(minutes) > max_slots:
        raise InvalidInputError(f"would create {len(minutes)} slots; at most {max_slots} allowed")
    return [f"{m // 60:02d}:{m % 60:02d}" for m in minutes]


def parse_reservation_status(value: str) -> ReservationStatus:
    try:
        return ReservationStatus((value or "").strip().upper())
    except ValueError as exc:
        raise InvalidInputError(f"invalid reservation status: {value!r}") from exc


def parse_slot_status(value: str) -> SlotStatus:
    try:
        return SlotStatus((value or "").strip().upper())
    except ValueError as exc:
        raise InvalidInputError(f"invalid slot status: {value!r}") from exc


def slot_status_after(status: ReservationStatus) -> SlotStatus | None:
    """Slot status that travels with a staff status update; None leaves the slot alone."""
    match status:
        case ReservationStatus.CONFIRMED:
            return SlotStatus.FULL
        case ReservationStatus.CANCELLED:
            return SlotStatus.AVAILABLE
        case (
            ReservationStatus.PENDING
            | ReservationStatus.HELD
            | ReservationStatus.SEATED
            | ReservationStatus.COMPLETED
            | ReservationStatus.NO_SHOW
        ):
            return None


def display_status(status: SlotStatus) -> SlotDisplayStatus:
    if status == SlotStatus.AVAILABLE:
        return SlotDisplayStatus.AVAILABLE
    return SlotDisplayStatus.FULL


def next_24_hours_window(now: datetime) -> tuple[str, str, str]:
    """(today, tomorrow, HH:00 of the current hour) for a wall-clock `now`."""
    today = now.date()
    return today.isoformat(), (today + timedelta(days=1)).isoformat(), f"{now.hour:02d}:00"
