import itertools
from datetime import datetime, timedelta

import pytest

from tripsync.consolidation.consolidator import TripConsolidator
from tripsync.consolidation.sweep import RenormalizationSweep
from tripsync.models import FlightLeg, OneWayTrip, Slot
from tripsync.normalizer import LegNormalizer

DAY0 = datetime(2025, 10, 21, 10, 30)
NOW = datetime(2025, 10, 1, 9, 0)


@pytest.fixture
def normalizer():
    return LegNormalizer(["SLA", "SALTA"])


@pytest.fixture
def ids():
    counter = itertools.count(1)
    return lambda: f"new-{next(counter)}"


@pytest.fixture
def consolidator(normalizer, ids):
    return TripConsolidator(normalizer, id_factory=ids)


@pytest.fixture
def sweep(normalizer, ids):
    return RenormalizationSweep(normalizer, id_factory=ids)


@pytest.fixture
def make_leg():
    def _make_leg(origin="SLA", destination="AEP", day=0, flight=None, reservation=None, **kwargs):
        return FlightLeg(
            flight_number=flight or f"AR{1400 + (day or 0)}",
            airline="Aerolineas Argentinas",
            departure_airport=origin,
            arrival_airport=destination,
            departure_at=DAY0 + timedelta(days=day) if day is not None else None,
            arrival_at=DAY0 + timedelta(days=day, hours=2) if day is not None else None,
            reservation_code=reservation,
            **kwargs,
        )
    return _make_leg


@pytest.fixture
def make_trip():
    def _make_trip(leg, slot=Slot.OUTBOUND, trip_id="t1", created_at=NOW, purchase_date=None):
        return OneWayTrip(id=trip_id, created_at=created_at, purchase_date=purchase_date, slot=slot, leg=leg)
    return _make_trip


@pytest.fixture
def outbound_trip(make_leg, make_trip):
    def _outbound_trip(day, trip_id, **kwargs):
        return make_trip(make_leg("SLA", "AEP", day=day), Slot.OUTBOUND, trip_id, **kwargs)
    return _outbound_trip


@pytest.fixture
def inbound_trip(make_leg, make_trip):
    def _inbound_trip(day, trip_id, **kwargs):
        return make_trip(make_leg("AEP", "SLA", day=day), Slot.INBOUND, trip_id, **kwargs)
    return _inbound_trip
