from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import TypeAlias


class Slot(str, Enum):
    """Role of a leg relative to the home airport ("ida" / "vuelta")."""
    OUTBOUND = "outbound"
    INBOUND = "inbound"

    @property
    def complement(self) -> "Slot":
        return Slot.INBOUND if self is Slot.OUTBOUND else Slot.OUTBOUND


@dataclass(frozen=True, slots=True)
class FlightLeg:
    """Single scheduled flight segment.

    departure_airport / arrival_airport hold IATA codes; *_city keep human-readable names.
    Timestamps are naive wall-clock values as written on the booking. A leg without
    departure_at is inert: it is stored and shown but never paired or deduplicated.
    """
    flight_number: str | None = None
    airline: str | None = None
    departure_airport: str | None = None
    departure_city: str | None = None
    arrival_airport: str | None = None
    arrival_city: str | None = None
    departure_at: datetime | None = None
    arrival_at: datetime | None = None
    cost: float | None = None
    payment_method: str | None = None
    reservation_code: str | None = None


@dataclass(frozen=True, slots=True)
class OneWayTrip:
    id: str
    created_at: datetime
    purchase_date: date | None
    slot: Slot
    leg: FlightLeg

    @property
    def legs(self) -> tuple[FlightLeg, ...]:
        return (self.leg,)

    def slots(self) -> tuple[tuple[Slot, FlightLeg], ...]:
        return ((self.slot, self.leg),)


@dataclass(frozen=True, slots=True)
class RoundTrip:
    id: str
    created_at: datetime
    purchase_date: date | None
    outbound: FlightLeg
    inbound: FlightLeg

    @property
    def legs(self) -> tuple[FlightLeg, ...]:
        return (self.outbound, self.inbound)

    def slots(self) -> tuple[tuple[Slot, FlightLeg], ...]:
        return ((Slot.OUTBOUND, self.outbound), (Slot.INBOUND, self.inbound))


Trip: TypeAlias = OneWayTrip | RoundTrip


# ---------------- store operations -----------------
@dataclass(frozen=True, slots=True)
class CreateTrip:
    trip: Trip


@dataclass(frozen=True, slots=True)
class UpdateTrip:
    trip: Trip


@dataclass(frozen=True, slots=True)
class DeleteTrip:
    trip_id: str


@dataclass(frozen=True, slots=True)
class MoveAttachment:
    source_trip_id: str
    source_slot: Slot
    target_trip_id: str
    target_slot: Slot


@dataclass(frozen=True, slots=True)
class DeleteAttachments:
    """Delete one slot's attachment, or both when slot is None."""
    trip_id: str
    slot: Slot | None = None


Operation: TypeAlias = CreateTrip | UpdateTrip | DeleteTrip | MoveAttachment | DeleteAttachments


@dataclass(slots=True)
class Changeset:
    """Result of an engine call: the new snapshot and the store operations that produce it."""
    trips: list[Trip]
    operations: list[Operation] = field(default_factory=list)
    merges: int = 0
    corrections: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.operations
