"""Conversion between stored / extracted records and domain models.

Accepts both the snake_case layout written by this package and the camelCase layout
(departureFlight / returnFlight, flightNumber, bookingReference, ...) produced by the
extraction service and older records. Unparseable values decode to None instead of
raising, which turns the affected leg inert rather than aborting a whole batch.
"""
import logging
from dataclasses import asdict
from datetime import date, datetime, time
from typing import Any, Mapping

import dacite

from .errors import InvalidTripRecord
from .models import FlightLeg, OneWayTrip, RoundTrip, Slot, Trip

logger = logging.getLogger(__name__)

_TIMESTAMP_FORMATS = [
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%d.%m.%Y %H:%M",
    "%d/%m/%Y %H:%M",
    "%Y-%m-%d",
    "%d.%m.%Y",
    "%d/%m/%Y",
]

_LEG_FIELDS: dict[str, tuple[str, ...]] = {
    "flight_number": ("flight_number", "flightNumber"),
    "airline": ("airline",),
    "departure_airport": ("departure_airport", "departureAirportCode", "departureAirport"),
    "departure_city": ("departure_city", "departureCity"),
    "arrival_airport": ("arrival_airport", "arrivalAirportCode", "arrivalAirport"),
    "arrival_city": ("arrival_city", "arrivalCity"),
    "departure_at": ("departure_at", "departureDateTime"),
    "arrival_at": ("arrival_at", "arrivalDateTime"),
    "cost": ("cost",),
    "payment_method": ("payment_method", "paymentMethod"),
    "reservation_code": ("reservation_code", "bookingReference"),
}


def _first(record: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return None


# ---------------- value parsing -----------------
def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-like timestamp into a naive datetime (wall clock as written)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime.combine(value, time())
    if not isinstance(value, str):
        logger.debug("Ignoring non-string timestamp %r", value)
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).replace(tzinfo=None)
    except ValueError:
        pass
    for timestamp_format in _TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, timestamp_format)
        except ValueError:
            continue
    logger.warning("Unparseable timestamp %r, treating as missing", value)
    return None


def parse_date(value: Any) -> date | None:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    parsed = parse_timestamp(value)
    return parsed.date() if parsed else None


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _clean_code(value: Any) -> str | None:
    text = _clean_text(value)
    return text.upper() if text else None


def _parse_cost(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Unparseable cost %r, treating as missing", value)
        return None


# ---------------- legs -----------------
def leg_from_dict(record: Mapping[str, Any]) -> FlightLeg:
    raw = {name: _first(record, *keys) for name, keys in _LEG_FIELDS.items()}
    data_to_parse = dict(
        flight_number=_clean_text(raw["flight_number"]),
        airline=_clean_text(raw["airline"]),
        departure_airport=_clean_code(raw["departure_airport"]),
        departure_city=_clean_text(raw["departure_city"]),
        arrival_airport=_clean_code(raw["arrival_airport"]),
        arrival_city=_clean_text(raw["arrival_city"]),
        departure_at=parse_timestamp(raw["departure_at"]),
        arrival_at=parse_timestamp(raw["arrival_at"]),
        cost=_parse_cost(raw["cost"]),
        payment_method=_clean_text(raw["payment_method"]),
        reservation_code=_clean_text(raw["reservation_code"]),
    )
    return dacite.from_dict(data_class=FlightLeg, data=data_to_parse)


def leg_to_dict(leg: FlightLeg) -> dict[str, Any]:
    data = asdict(leg)
    for key in ("departure_at", "arrival_at"):
        if data[key] is not None:
            data[key] = data[key].isoformat()
    return data


# ---------------- trips -----------------
def trip_from_dict(record: Mapping[str, Any]) -> Trip:
    trip_id = _clean_text(record.get("id"))
    if not trip_id:
        raise InvalidTripRecord(f"Trip record without id: {dict(record)!r}")
    created_at = parse_timestamp(_first(record, "created_at", "createdAt"))
    if created_at is None:
        raise InvalidTripRecord(f"Trip {trip_id!r} has no creation timestamp")
    purchase_date = parse_date(_first(record, "purchase_date", "purchaseDate"))

    outbound_raw = _first(record, "outbound", "departureFlight")
    inbound_raw = _first(record, "inbound", "returnFlight")
    outbound = leg_from_dict(outbound_raw) if outbound_raw else None
    inbound = leg_from_dict(inbound_raw) if inbound_raw else None

    if outbound and inbound:
        return RoundTrip(id=trip_id, created_at=created_at, purchase_date=purchase_date,
                         outbound=outbound, inbound=inbound)
    if outbound or inbound:
        slot = Slot.OUTBOUND if outbound else Slot.INBOUND
        return OneWayTrip(id=trip_id, created_at=created_at, purchase_date=purchase_date,
                          slot=slot, leg=outbound or inbound)
    raise InvalidTripRecord(f"Trip {trip_id!r} holds no flight legs")


def trip_to_dict(trip: Trip) -> dict[str, Any]:
    legs = {slot.value: leg_to_dict(leg) for slot, leg in trip.slots()}
    return {
        "id": trip.id,
        "created_at": trip.created_at.isoformat(),
        "purchase_date": trip.purchase_date.isoformat() if trip.purchase_date else None,
        "outbound": legs.get(Slot.OUTBOUND.value),
        "inbound": legs.get(Slot.INBOUND.value),
    }
