import logging
import uuid
from datetime import datetime
from typing import Callable, Iterable, Iterator

from ..config import AttachmentPolicy
from ..errors import TripNotFound
from ..models import (
    Changeset,
    CreateTrip,
    DeleteAttachments,
    DeleteTrip,
    MoveAttachment,
    OneWayTrip,
    Operation,
    Slot,
    Trip,
    UpdateTrip,
)
from ..normalizer import LegNormalizer
from ..scoring import score
from .merge import merge_trips

logger = logging.getLogger(__name__)


def new_trip_id() -> str:
    return uuid.uuid4().hex


class TripIndex:
    """Working copy of one user's trips, keyed by id, that a pass mutates step by step."""

    def __init__(self, trips: Iterable[Trip]):
        self._trips: dict[str, Trip] = {trip.id: trip for trip in trips}

    def __contains__(self, trip_id: str) -> bool:
        return trip_id in self._trips

    def __iter__(self) -> Iterator[Trip]:
        return iter(list(self._trips.values()))

    def get(self, trip_id: str) -> Trip | None:
        return self._trips.get(trip_id)

    def require(self, trip_id: str) -> Trip:
        if (trip := self._trips.get(trip_id)) is None:
            raise TripNotFound(trip_id)
        return trip

    def put(self, trip: Trip) -> None:
        self._trips[trip.id] = trip

    def remove(self, trip_id: str) -> None:
        self._trips.pop(trip_id, None)

    def snapshot(self) -> list[Trip]:
        """Trips in store order: newest first."""
        return sorted(self._trips.values(), key=lambda t: (t.created_at, t.id), reverse=True)


class ConsolidationPass:
    """Common helpers for the consolidator and the re-normalization sweep."""

    def __init__(self, normalizer: LegNormalizer, attachment_policy: AttachmentPolicy = "migrate",
                 id_factory: Callable[[], str] = new_trip_id):
        if attachment_policy not in ("migrate", "drop"):
            raise ValueError(f"Unknown attachment policy {attachment_policy!r}")
        self.normalizer = normalizer
        self.attachment_policy = attachment_policy
        self.id_factory = id_factory

    # ---------------- matching -----------------
    def is_matchable(self, trip: Trip) -> bool:
        return isinstance(trip, OneWayTrip) and self.normalizer.is_resolvable(trip.leg)

    def best_partner(self, trip: OneWayTrip, candidates: Iterable[Trip]) -> OneWayTrip | None:
        """Highest scoring complementary one-way trip; ties go to the earliest departure, then smallest id."""
        wanted = self.normalizer.slot_of(trip).complement
        best: OneWayTrip | None = None
        best_key = None
        for candidate in candidates:
            if candidate.id == trip.id or not self.is_matchable(candidate):
                continue
            if self.normalizer.slot_of(candidate) != wanted:
                continue
            value = score(trip.leg, candidate.leg)
            if value is None:
                continue
            key = (-value, candidate.leg.departure_at, candidate.id)
            if best_key is None or key < best_key:
                best, best_key = candidate, key
        return best

    # ---------------- changes -----------------
    def _rekey_attachment(self, operations: list[Operation], source_id: str, source_slot: Slot,
                          target_id: str, target_slot: Slot) -> None:
        if (source_id, source_slot) == (target_id, target_slot):
            return
        if self.attachment_policy == "migrate":
            operations.append(MoveAttachment(source_id, source_slot, target_id, target_slot))
        else:
            logger.info("Dropping boarding pass of trip %s (%s leg)", source_id, source_slot.value)
            operations.append(DeleteAttachments(source_id, source_slot))

    def _merge(self, index: TripIndex, operations: list[Operation], a: OneWayTrip, b: OneWayTrip,
               now: datetime, unsaved: frozenset[str] = frozenset()) -> Trip:
        """Merge a and b inside the index; ids in unsaved were never written to the store."""
        merged, loser = merge_trips(a, b, self.normalizer, now)
        survivor_is_new = merged.id in unsaved
        operations.append(CreateTrip(merged) if survivor_is_new else UpdateTrip(merged))
        survivor = b if loser is a else a
        # survivor first: the loser's pass may move into the slot the survivor's pass leaves
        for source in (survivor, loser):
            if source.id not in unsaved:
                self._rekey_attachment(operations, source.id, source.slot, merged.id, self.normalizer.slot_of(source))
        if loser.id not in unsaved:
            operations.append(DeleteTrip(loser.id))
        index.remove(loser.id)
        index.put(merged)
        logger.info("Paired trips %s and %s into round trip %s", a.id, b.id, merged.id)
        return merged

    @staticmethod
    def _changeset(index: TripIndex, operations: list[Operation], merges: int = 0, corrections: int = 0) -> Changeset:
        return Changeset(trips=index.snapshot(), operations=operations, merges=merges, corrections=corrections)
