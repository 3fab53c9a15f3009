"""Duplicate submission detection.

Two legs are the same flight when their flight numbers match (case and whitespace
insensitive) and they depart on the same calendar day. Airports are not part of the
key.
"""
import logging
import re
from datetime import date
from typing import Iterable

from .models import FlightLeg, OneWayTrip, Trip

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")

FlightKey = tuple[str, date]


def normalize_flight_number(flight_number: str | None) -> str | None:
    if not flight_number:
        return None
    return _WHITESPACE.sub("", flight_number).upper() or None


def flight_key(leg: FlightLeg) -> FlightKey | None:
    number = normalize_flight_number(leg.flight_number)
    if number is None or leg.departure_at is None:
        return None
    return number, leg.departure_at.date()


def find_duplicate(candidate: FlightLeg, trips: Iterable[Trip]) -> Trip | None:
    """Return the stored trip already holding the candidate flight, checking both slots."""
    key = flight_key(candidate)
    if key is None:
        return None
    for trip in trips:
        if any(flight_key(leg) == key for leg in trip.legs):
            return trip
    return None


def is_duplicate(candidate: FlightLeg, trips: Iterable[Trip]) -> bool:
    return find_duplicate(candidate, trips) is not None


def find_duplicate_trips(trips: Iterable[Trip]) -> list[OneWayTrip]:
    """One-way trips repeating a flight already held by an older trip.

    Round trips are never reported: removing one would drop its other leg.
    """
    seen: set[FlightKey] = set()
    duplicates: list[OneWayTrip] = []
    for trip in sorted(trips, key=lambda t: (t.created_at, t.id)):
        keys = {key for key in map(flight_key, trip.legs) if key is not None}
        if isinstance(trip, OneWayTrip) and keys and keys <= seen:
            logger.debug("Trip %s repeats flight %s", trip.id, next(iter(keys)))
            duplicates.append(trip)
            continue
        seen |= keys
    return duplicates
