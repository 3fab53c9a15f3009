"""Pairing score between two one-way legs flown in opposite directions.

Score bands reward short trips while still allowing long ones; a shared reservation
code adds a bonus that breaks near-ties between candidates.
"""
import math
from datetime import datetime, timedelta

from .models import FlightLeg

# (min days, max days, score), inclusive bounds
SCORE_BANDS: tuple[tuple[int, int, int], ...] = (
    (1, 5, 100),
    (6, 15, 50),
    (16, 45, 20),
)
RESERVATION_BONUS = 30

_DAY = timedelta(days=1)


def days_between(a: datetime, b: datetime) -> int:
    """Absolute gap in whole days, rounded half up."""
    return math.floor(abs(b - a) / _DAY + 0.5)


def _code(value: str | None) -> str:
    return (value or "").strip().upper()


def is_reversed_pair(a: FlightLeg, b: FlightLeg) -> bool:
    a_from, a_to = _code(a.departure_airport), _code(a.arrival_airport)
    if not a_from or not a_to:
        return False
    return a_from == _code(b.arrival_airport) and a_to == _code(b.departure_airport)


def same_reservation(a: FlightLeg, b: FlightLeg) -> bool:
    code = _code(a.reservation_code)
    return bool(code) and code == _code(b.reservation_code)


def score(a: FlightLeg, b: FlightLeg) -> int | None:
    """Compatibility of two legs as one round trip, None when they cannot pair."""
    if a.departure_at is None or b.departure_at is None or not is_reversed_pair(a, b):
        return None
    gap = days_between(a.departure_at, b.departure_at)
    for min_days, max_days, base in SCORE_BANDS:
        if min_days <= gap <= max_days:
            return base + (RESERVATION_BONUS if same_reservation(a, b) else 0)
    return None
