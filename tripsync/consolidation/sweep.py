import logging
from datetime import datetime
from typing import Iterable

from ..models import Changeset, OneWayTrip, Operation, Trip, UpdateTrip
from .base import ConsolidationPass, TripIndex

logger = logging.getLogger(__name__)


class RenormalizationSweep(ConsolidationPass):
    """Repair misfiled one-way trips, then pair whatever can be paired.

    Running the sweep on its own output changes nothing, so it can be triggered on every
    observed change of the trip collection.
    """

    def run(self, trips: Iterable[Trip], now: datetime | None = None) -> Changeset:
        now = now or datetime.now()
        index = TripIndex(trips)
        operations: list[Operation] = []

        corrections = self._correct_slots(index, operations)
        merges = 0
        while merged := self._pair_pass(index, operations, now):
            merges += merged

        if corrections or merges:
            logger.info("Sweep finished: %d slot corrections, %d merges", corrections, merges)
        else:
            logger.debug("Sweep finished without changes")
        return self._changeset(index, operations, merges=merges, corrections=corrections)

    def _correct_slots(self, index: TripIndex, operations: list[Operation]) -> int:
        corrections = 0
        for trip in index:
            fixed = self.normalizer.normalize(trip)
            if fixed == trip:
                continue
            index.put(fixed)
            operations.append(UpdateTrip(fixed))
            self._rekey_attachment(operations, trip.id, trip.slot, fixed.id, fixed.slot)
            logger.info("Trip %s was filed as %s, corrected to %s", trip.id, trip.slot.value, fixed.slot.value)
            corrections += 1
        return corrections

    def _pair_pass(self, index: TripIndex, operations: list[Operation], now: datetime) -> int:
        """One scan in departure order; each leg takes its best partner, if any."""
        queue = sorted(
            (trip for trip in index if self.is_matchable(trip)),
            key=lambda t: (t.leg.departure_at, t.id),
        )
        merges = 0
        for trip in queue:
            current = index.get(trip.id)
            if not isinstance(current, OneWayTrip):
                continue
            partner = self.best_partner(current, index)
            if partner is None:
                continue
            self._merge(index, operations, current, partner, now)
            merges += 1
        return merges
