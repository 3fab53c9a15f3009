import dataclasses
import logging
from typing import Iterable

from .config import Settings
from .models import FlightLeg, OneWayTrip, Slot, Trip

logger = logging.getLogger(__name__)


class LegNormalizer:
    """Decides which slot a leg belongs to relative to the home airport.

    This is the only place slot membership is derived; stored slot labels are hints
    that get corrected, never the source of truth.
    """

    def __init__(self, home_codes: Iterable[str]):
        self.home_codes = frozenset(code.strip().upper() for code in home_codes if code and code.strip())
        if not self.home_codes:
            raise ValueError("At least one home airport code is required")

    @classmethod
    def from_settings(cls, settings: Settings) -> "LegNormalizer":
        return cls(settings.home_codes())

    def is_home(self, code: str | None) -> bool:
        return bool(code) and code.strip().upper() in self.home_codes

    @staticmethod
    def has_route(leg: FlightLeg) -> bool:
        return bool(leg.departure_airport and leg.arrival_airport)

    def is_resolvable(self, leg: FlightLeg) -> bool:
        """Leg carries everything needed for classification and pairing."""
        return self.has_route(leg) and leg.departure_at is not None

    def direction(self, leg: FlightLeg) -> Slot | None:
        """inbound iff the leg lands at home, outbound otherwise; None without both airport codes."""
        if not self.has_route(leg):
            return None
        return Slot.INBOUND if self.is_home(leg.arrival_airport) else Slot.OUTBOUND

    def normalize(self, trip: Trip) -> Trip:
        if not isinstance(trip, OneWayTrip) or not self.is_resolvable(trip.leg):
            return trip
        slot = self.direction(trip.leg)
        if slot == trip.slot:
            return trip
        logger.debug("Trip %s: moving %s leg to %s slot", trip.id, trip.slot.value, slot.value)
        return dataclasses.replace(trip, slot=slot)

    def slot_of(self, trip: OneWayTrip) -> Slot:
        return self.normalize(trip).slot
