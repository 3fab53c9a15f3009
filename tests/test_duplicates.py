from datetime import datetime, timedelta

from tripsync.duplicates import find_duplicate, find_duplicate_trips, is_duplicate, normalize_flight_number
from tripsync.models import FlightLeg, RoundTrip, Slot

from conftest import NOW


def _leg(flight_number, departure):
    return FlightLeg(flight_number=flight_number, departure_airport="SLA", arrival_airport="AEP",
                     departure_at=datetime.fromisoformat(departure))


def test_normalize_flight_number():
    assert normalize_flight_number(" ar 14\t50 ") == "AR1450"
    assert normalize_flight_number("   ") is None
    assert normalize_flight_number(None) is None


def test_same_number_same_day_is_duplicate(make_trip):
    existing = make_trip(_leg("AR1450", "2025-10-21T10:30:00"))
    assert is_duplicate(_leg("ar 1450", "2025-10-21T22:00:00"), [existing])


def test_next_day_is_not_duplicate(make_trip):
    existing = make_trip(_leg("AR1450", "2025-10-21T10:30:00"))
    assert not is_duplicate(_leg("AR1450", "2025-10-22T10:30:00"), [existing])


def test_checks_inbound_slot_of_round_trips(make_leg):
    trip = RoundTrip(id="r1", created_at=NOW, purchase_date=None,
                     outbound=make_leg("SLA", "AEP", day=0), inbound=make_leg("AEP", "SLA", day=4, flight="AR1455"))
    candidate = make_leg("AEP", "SLA", day=4, flight="AR 1455")
    assert find_duplicate(candidate, [trip]) is trip


def test_legs_without_number_or_date_never_collide(make_trip):
    existing = make_trip(_leg("", "2025-10-21T10:30:00"))
    assert not is_duplicate(_leg("", "2025-10-21T10:30:00"), [existing])
    undated = FlightLeg(flight_number="AR1450")
    assert not is_duplicate(undated, [make_trip(undated)])


def test_find_duplicate_trips_keeps_oldest(make_trip):
    older = make_trip(_leg("AR1450", "2025-10-21T10:30:00"), trip_id="a")
    newer = make_trip(_leg("AR1450", "2025-10-21T10:30:00"), trip_id="b", created_at=NOW + timedelta(hours=1))
    unrelated = make_trip(_leg("WJ3040", "2025-10-21T10:30:00"), trip_id="c")
    assert find_duplicate_trips([newer, unrelated, older]) == [newer]


def test_find_duplicate_trips_never_reports_round_trips(make_leg, make_trip):
    one_way = make_trip(make_leg("SLA", "AEP", day=0), trip_id="a")
    round_trip = RoundTrip(id="b", created_at=NOW + timedelta(hours=1), purchase_date=None,
                           outbound=make_leg("SLA", "AEP", day=0), inbound=make_leg("AEP", "SLA", day=4))
    assert find_duplicate_trips([one_way, round_trip]) == []


def test_find_duplicate_trips_ignores_slot(make_leg, make_trip):
    first = make_trip(make_leg("AEP", "SLA", day=4), Slot.INBOUND, trip_id="a")
    misfiled = make_trip(make_leg("AEP", "SLA", day=4), Slot.OUTBOUND, trip_id="b",
                         created_at=NOW + timedelta(minutes=5))
    assert find_duplicate_trips([first, misfiled]) == [misfiled]
