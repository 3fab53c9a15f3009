"""Pure merge / split of trip records.

Both functions only build new values; deciding which store operations follow is the
job of the consolidation passes.
"""
from datetime import date, datetime
from typing import Callable

from ..errors import PairingRejected, SplitRejected
from ..models import FlightLeg, OneWayTrip, RoundTrip, Slot, Trip
from ..normalizer import LegNormalizer


def survivor_order(a: Trip, b: Trip) -> tuple[Trip, Trip]:
    """(survivor, loser): the older record keeps its id, ties go to the smaller id."""
    survivor, loser = sorted((a, b), key=lambda t: (t.created_at, t.id))
    return survivor, loser


def merged_purchase_date(a: Trip, b: Trip, outbound: FlightLeg, now: datetime) -> date:
    known = [d for d in (a.purchase_date, b.purchase_date) if d is not None]
    if known:
        return min(known)
    if outbound.departure_at is not None:
        return outbound.departure_at.date()
    return now.date()


def merge_trips(a: Trip, b: Trip, normalizer: LegNormalizer, now: datetime) -> tuple[RoundTrip, OneWayTrip]:
    """Combine two complementary one-way trips, returning (merged round trip, removed trip)."""
    if not isinstance(a, OneWayTrip) or not isinstance(b, OneWayTrip):
        raise PairingRejected("Only one-way trips can be paired")
    if a.id == b.id:
        raise PairingRejected(f"Trip {a.id!r} cannot be paired with itself")
    slot_a, slot_b = normalizer.slot_of(a), normalizer.slot_of(b)
    if slot_a == slot_b:
        raise PairingRejected(f"Trips {a.id!r} and {b.id!r} are both {slot_a.value} legs")

    outbound, inbound = (a.leg, b.leg) if slot_a == Slot.OUTBOUND else (b.leg, a.leg)
    survivor, loser = survivor_order(a, b)
    merged = RoundTrip(
        id=survivor.id,
        created_at=survivor.created_at,
        purchase_date=merged_purchase_date(a, b, outbound, now),
        outbound=outbound,
        inbound=inbound,
    )
    return merged, loser


def split_trip(trip: Trip, new_id: Callable[[], str]) -> tuple[OneWayTrip, OneWayTrip]:
    """Undo a merge: one fresh one-way record per leg, keeping age and purchase date."""
    if not isinstance(trip, RoundTrip):
        raise SplitRejected(f"Trip {trip.id!r} holds a single leg")
    return tuple(
        OneWayTrip(id=new_id(), created_at=trip.created_at, purchase_date=trip.purchase_date, slot=slot, leg=leg)
        for slot, leg in trip.slots()
    )
