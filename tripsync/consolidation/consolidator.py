import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Iterable, Sequence

from ..duplicates import find_duplicate, find_duplicate_trips
from ..models import (
    Changeset,
    CreateTrip,
    DeleteAttachments,
    DeleteTrip,
    FlightLeg,
    OneWayTrip,
    Operation,
    Slot,
    Trip,
)
from .base import ConsolidationPass, TripIndex
from .merge import split_trip

logger = logging.getLogger(__name__)


class IngestOutcome(str, Enum):
    DUPLICATE = "duplicate"
    STORED = "stored"
    PAIRED = "paired"


@dataclass(slots=True)
class IngestResult:
    outcome: IngestOutcome
    changeset: Changeset
    trip: Trip | None = None
    duplicate_of: Trip | None = None


class TripConsolidator(ConsolidationPass):
    """Applies user-level actions (add leg, pair, split, delete) to a snapshot of trips."""

    def ingest(self, leg: FlightLeg, trips: Iterable[Trip], purchase_date: date | None = None,
               now: datetime | None = None) -> IngestResult:
        now = now or datetime.now()
        index = TripIndex(trips)
        operations: list[Operation] = []

        if (existing := find_duplicate(leg, index)) is not None:
            logger.info("Flight %s on %s already stored in trip %s", leg.flight_number,
                        leg.departure_at.date(), existing.id)
            return IngestResult(IngestOutcome.DUPLICATE, self._changeset(index, operations), duplicate_of=existing)

        trip = OneWayTrip(
            id=self.id_factory(),
            created_at=now,
            purchase_date=purchase_date or now.date(),
            slot=self.normalizer.direction(leg) or Slot.OUTBOUND,
            leg=leg,
        )
        partner = self.best_partner(trip, index) if self.is_matchable(trip) else None
        if partner is None:
            index.put(trip)
            operations.append(CreateTrip(trip))
            logger.info("Stored %s leg %s as one-way trip %s", trip.slot.value, leg.flight_number, trip.id)
            return IngestResult(IngestOutcome.STORED, self._changeset(index, operations), trip=trip)

        merged = self._merge(index, operations, trip, partner, now, unsaved=frozenset({trip.id}))
        return IngestResult(IngestOutcome.PAIRED, self._changeset(index, operations, merges=1), trip=merged)

    def ingest_many(self, legs: Sequence[FlightLeg], trips: Iterable[Trip], purchase_date: date | None = None,
                    now: datetime | None = None) -> list[IngestResult]:
        """Ingest legs one after another, each against the snapshot left by the previous one."""
        now = now or datetime.now()
        results = []
        snapshot = list(trips)
        for leg in legs:
            result = self.ingest(leg, snapshot, purchase_date=purchase_date, now=now)
            snapshot = result.changeset.trips
            results.append(result)
        return results

    def pair_manually(self, source_id: str, target_id: str, trips: Iterable[Trip],
                      now: datetime | None = None) -> Changeset:
        """Merge two chosen one-way trips regardless of their score."""
        index = TripIndex(trips)
        operations: list[Operation] = []
        source, target = index.require(source_id), index.require(target_id)
        self._merge(index, operations, source, target, now or datetime.now())
        return self._changeset(index, operations, merges=1)

    def split(self, trip_id: str, trips: Iterable[Trip]) -> Changeset:
        index = TripIndex(trips)
        operations: list[Operation] = []
        trip = index.require(trip_id)
        parts = split_trip(trip, self.id_factory)
        for part in parts:
            index.put(part)
            operations.append(CreateTrip(part))
        for part in parts:
            self._rekey_attachment(operations, trip.id, part.slot, part.id, part.slot)
        index.remove(trip.id)
        operations.append(DeleteTrip(trip.id))
        logger.info("Split round trip %s into %s", trip.id, ", ".join(p.id for p in parts))
        return self._changeset(index, operations)

    def delete(self, trip_id: str, trips: Iterable[Trip]) -> Changeset:
        index = TripIndex(trips)
        index.require(trip_id)
        index.remove(trip_id)
        return self._changeset(index, [DeleteTrip(trip_id), DeleteAttachments(trip_id)])

    def remove_duplicates(self, trips: Iterable[Trip]) -> Changeset:
        index = TripIndex(trips)
        operations: list[Operation] = []
        for duplicate in find_duplicate_trips(index):
            index.remove(duplicate.id)
            operations.extend([DeleteTrip(duplicate.id), DeleteAttachments(duplicate.id)])
            logger.info("Removed duplicate trip %s (flight %s)", duplicate.id, duplicate.leg.flight_number)
        return self._changeset(index, operations)
