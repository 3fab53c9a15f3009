from datetime import date, timedelta

import pytest

from tripsync.consolidation.consolidator import IngestOutcome, TripConsolidator
from tripsync.consolidation.merge import merge_trips, split_trip
from tripsync.errors import PairingRejected, SplitRejected, TripNotFound
from tripsync.models import (
    CreateTrip,
    DeleteAttachments,
    DeleteTrip,
    MoveAttachment,
    OneWayTrip,
    RoundTrip,
    Slot,
    UpdateTrip,
)
from tripsync.storage import FileAttachmentStore, JsonTripStore, apply_changeset

from conftest import DAY0, NOW


# ---------------- merge / split -----------------
def test_merge_keeps_oldest_record(normalizer, outbound_trip, inbound_trip):
    out = outbound_trip(0, "b", created_at=NOW)
    back = inbound_trip(4, "a", created_at=NOW + timedelta(hours=1))
    merged, loser = merge_trips(back, out, normalizer, NOW)
    assert merged.id == "b"
    assert loser is back
    assert (merged.outbound, merged.inbound) == (out.leg, back.leg)


def test_merge_breaks_creation_ties_by_id(normalizer, outbound_trip, inbound_trip):
    merged, loser = merge_trips(outbound_trip(0, "b"), inbound_trip(4, "a"), normalizer, NOW)
    assert merged.id == "a"
    assert loser.id == "b"


def test_merge_ignores_stored_slot_labels(normalizer, make_leg, make_trip):
    out_leg, back_leg = make_leg("SLA", "AEP", day=0), make_leg("AEP", "SLA", day=4)
    merged, _ = merge_trips(make_trip(out_leg, Slot.INBOUND, "a"), make_trip(back_leg, Slot.OUTBOUND, "b"),
                            normalizer, NOW)
    assert merged.outbound == out_leg
    assert merged.inbound == back_leg


def test_merge_purchase_date_prefers_earliest_known(normalizer, outbound_trip, inbound_trip):
    out = outbound_trip(0, "a", purchase_date=date(2025, 9, 1))
    back = inbound_trip(4, "b", purchase_date=date(2025, 8, 15))
    merged, _ = merge_trips(out, back, normalizer, NOW)
    assert merged.purchase_date == date(2025, 8, 15)


def test_merge_purchase_date_falls_back_to_outbound_departure(normalizer, outbound_trip, inbound_trip):
    merged, _ = merge_trips(outbound_trip(0, "a"), inbound_trip(4, "b"), normalizer, NOW)
    assert merged.purchase_date == DAY0.date()


def test_merge_purchase_date_falls_back_to_now(normalizer, make_leg, make_trip, inbound_trip):
    undated = make_trip(make_leg("SLA", "AEP", day=None), Slot.OUTBOUND, "a")
    merged, _ = merge_trips(undated, inbound_trip(4, "b"), normalizer, NOW)
    assert merged.purchase_date == NOW.date()


def test_merge_is_reproducible(normalizer, outbound_trip, inbound_trip):
    out, back = outbound_trip(0, "a"), inbound_trip(4, "b")
    assert merge_trips(out, back, normalizer, NOW) == merge_trips(back, out, normalizer, NOW)


def test_merge_rejects_same_slot(normalizer, outbound_trip):
    with pytest.raises(PairingRejected):
        merge_trips(outbound_trip(0, "a"), outbound_trip(4, "b"), normalizer, NOW)


def test_merge_rejects_same_trip(normalizer, outbound_trip):
    trip = outbound_trip(0, "a")
    with pytest.raises(PairingRejected):
        merge_trips(trip, trip, normalizer, NOW)


def test_merge_then_split_restores_legs(normalizer, ids, outbound_trip, inbound_trip):
    out, back = outbound_trip(0, "a", purchase_date=date(2025, 9, 1)), inbound_trip(4, "b")
    merged, _ = merge_trips(out, back, normalizer, NOW)
    parts = split_trip(merged, ids)
    assert [p.leg for p in parts] == [out.leg, back.leg]
    assert [p.slot for p in parts] == [Slot.OUTBOUND, Slot.INBOUND]
    assert all(p.created_at == merged.created_at and p.purchase_date == merged.purchase_date for p in parts)
    assert {p.id for p in parts} == {"new-1", "new-2"}


def test_split_requires_two_legs(ids, outbound_trip):
    with pytest.raises(SplitRejected):
        split_trip(outbound_trip(0, "a"), ids)


# ---------------- ingestion -----------------
def test_ingest_stores_unpaired_leg(consolidator, make_leg):
    leg = make_leg("SLA", "AEP", day=0)
    result = consolidator.ingest(leg, [], now=NOW)
    assert result.outcome is IngestOutcome.STORED
    assert result.trip == OneWayTrip(id="new-1", created_at=NOW, purchase_date=NOW.date(), slot=Slot.OUTBOUND, leg=leg)
    assert result.changeset.operations == [CreateTrip(result.trip)]


def test_ingest_reports_duplicates_without_changes(consolidator, make_leg, outbound_trip):
    existing = outbound_trip(0, "a")
    result = consolidator.ingest(make_leg("SLA", "AEP", day=0, flight="ar 1400"), [existing], now=NOW)
    assert result.outcome is IngestOutcome.DUPLICATE
    assert result.duplicate_of is existing
    assert result.changeset.is_empty
    assert result.changeset.trips == [existing]


def test_ingest_pairs_into_existing_trip(consolidator, make_leg, inbound_trip):
    partner = inbound_trip(4, "old", created_at=NOW - timedelta(days=1))
    leg = make_leg("SLA", "AEP", day=0)
    result = consolidator.ingest(leg, [partner], purchase_date=date(2025, 9, 30), now=NOW)
    assert result.outcome is IngestOutcome.PAIRED
    merged = result.trip
    assert merged == RoundTrip(id="old", created_at=partner.created_at, purchase_date=date(2025, 9, 30),
                               outbound=leg, inbound=partner.leg)
    assert result.changeset.operations == [UpdateTrip(merged)]
    assert result.changeset.trips == [merged]
    assert result.changeset.merges == 1


def test_ingest_new_trip_can_survive(consolidator, make_leg, inbound_trip):
    partner = inbound_trip(4, "old", created_at=NOW + timedelta(days=1))
    result = consolidator.ingest(make_leg("SLA", "AEP", day=0), [partner], now=NOW)
    assert result.trip.id == "new-1"
    assert result.changeset.operations == [
        CreateTrip(result.trip),
        MoveAttachment("old", Slot.INBOUND, "new-1", Slot.INBOUND),
        DeleteTrip("old"),
    ]


def test_ingest_prefers_highest_score(consolidator, make_leg, inbound_trip):
    result = consolidator.ingest(make_leg("SLA", "AEP", day=0),
                                 [inbound_trip(10, "c10"), inbound_trip(3, "c3")], now=NOW)
    assert result.trip.id == "c3"
    remaining = [t for t in result.changeset.trips if isinstance(t, OneWayTrip)]
    assert [t.id for t in remaining] == ["c10"]


def test_reservation_bonus_beats_closer_candidate(consolidator, make_leg, make_trip):
    close = make_trip(make_leg("AEP", "SLA", day=3), Slot.INBOUND, "close")
    booked = make_trip(make_leg("AEP", "SLA", day=4, reservation="QXJ7LM"), Slot.INBOUND, "booked")
    result = consolidator.ingest(make_leg("SLA", "AEP", day=0, reservation="QXJ7LM"), [close, booked], now=NOW)
    assert result.trip.inbound == booked.leg


def test_score_ties_go_to_earliest_departure(consolidator, make_leg, inbound_trip):
    result = consolidator.ingest(make_leg("SLA", "AEP", day=0), [inbound_trip(4, "a"), inbound_trip(2, "b")], now=NOW)
    assert result.trip.inbound.departure_at == DAY0 + timedelta(days=2)


def test_score_and_departure_ties_go_to_smallest_id(consolidator, make_leg, inbound_trip):
    result = consolidator.ingest(make_leg("SLA", "AEP", day=0), [inbound_trip(3, "z"), inbound_trip(3, "m")], now=NOW)
    assert result.trip.id == "m"


def test_ingest_only_pairs_with_complementary_slot(consolidator, make_leg, make_trip):
    # reversed airports, but neither leg lands at home so both are outbound
    same_slot = make_trip(make_leg("AEP", "COR", day=3), Slot.OUTBOUND, "x")
    result = consolidator.ingest(make_leg("COR", "AEP", day=0), [same_slot], now=NOW)
    assert result.outcome is IngestOutcome.STORED


def test_ingest_stores_leg_outside_window(consolidator, make_leg, inbound_trip):
    result = consolidator.ingest(make_leg("SLA", "AEP", day=0), [inbound_trip(60, "far")], now=NOW)
    assert result.outcome is IngestOutcome.STORED
    assert len(result.changeset.trips) == 2


def test_ingest_undated_leg_is_stored_inert(consolidator, make_leg, inbound_trip):
    result = consolidator.ingest(make_leg("SLA", "AEP", day=None), [inbound_trip(4, "a")], now=NOW)
    assert result.outcome is IngestOutcome.STORED


def test_ingest_many_pairs_legs_of_one_booking(consolidator, make_leg):
    legs = [make_leg("AEP", "SLA", day=5, reservation="QXJ7LM"), make_leg("SLA", "AEP", day=0, reservation="QXJ7LM")]
    results = consolidator.ingest_many(legs, [], purchase_date=date(2025, 9, 2), now=NOW)
    assert [r.outcome for r in results] == [IngestOutcome.STORED, IngestOutcome.PAIRED]
    final = results[-1].changeset.trips
    assert final == [RoundTrip(id="new-1", created_at=NOW, purchase_date=date(2025, 9, 2),
                               outbound=legs[1], inbound=legs[0])]


# ---------------- manual pairing -----------------
def test_manual_pairing_bypasses_score(consolidator, outbound_trip, inbound_trip):
    changeset = consolidator.pair_manually("a", "b", [outbound_trip(0, "a"), inbound_trip(60, "b")], now=NOW)
    assert [type(t) for t in changeset.trips] == [RoundTrip]
    assert changeset.operations[-1] == DeleteTrip("b")


def test_manual_pairing_rejects_same_slot(consolidator, outbound_trip):
    with pytest.raises(PairingRejected):
        consolidator.pair_manually("a", "b", [outbound_trip(0, "a"), outbound_trip(3, "b")], now=NOW)


def test_manual_pairing_rejects_round_trips(consolidator, outbound_trip, inbound_trip):
    merged = consolidator.pair_manually("a", "b", [outbound_trip(0, "a"), inbound_trip(4, "b")], now=NOW).trips
    with pytest.raises(PairingRejected):
        consolidator.pair_manually("a", "c", merged + [inbound_trip(9, "c")], now=NOW)


def test_manual_pairing_unknown_trip(consolidator, outbound_trip):
    with pytest.raises(TripNotFound):
        consolidator.pair_manually("a", "missing", [outbound_trip(0, "a")], now=NOW)


def test_manual_pairing_moves_loser_attachment(consolidator, make_leg, make_trip):
    out = make_trip(make_leg("SLA", "AEP", day=0), Slot.OUTBOUND, "a")
    # inbound leg misfiled as outbound: its boarding pass follows it to the inbound slot
    back = make_trip(make_leg("AEP", "SLA", day=4), Slot.OUTBOUND, "b", created_at=NOW + timedelta(hours=1))
    changeset = consolidator.pair_manually("a", "b", [out, back], now=NOW)
    assert changeset.operations[1:] == [MoveAttachment("b", Slot.OUTBOUND, "a", Slot.INBOUND), DeleteTrip("b")]


def test_manual_pairing_keeps_both_passes_when_survivor_is_misfiled(consolidator, make_leg, make_trip, tmp_path):
    # older record holds the inbound leg filed as outbound; the newer one is picked first
    older = make_trip(make_leg("AEP", "SLA", day=4), Slot.OUTBOUND, "a", created_at=NOW)
    newer = make_trip(make_leg("SLA", "AEP", day=0), Slot.OUTBOUND, "b", created_at=NOW + timedelta(hours=1))
    trips = JsonTripStore(tmp_path / "trips", "traveller")
    attachments = FileAttachmentStore(tmp_path / "attachments", "traveller")
    for trip in (older, newer):
        trips.create(trip)
    attachments.put("a", Slot.OUTBOUND, b"pass of a")
    attachments.put("b", Slot.OUTBOUND, b"pass of b")

    changeset = consolidator.pair_manually("b", "a", [newer, older], now=NOW)
    apply_changeset(changeset, trips, attachments)

    assert changeset.operations[1:3] == [
        MoveAttachment("a", Slot.OUTBOUND, "a", Slot.INBOUND),
        MoveAttachment("b", Slot.OUTBOUND, "a", Slot.OUTBOUND),
    ]
    assert attachments.get("a", Slot.INBOUND) == b"pass of a"
    assert attachments.get("a", Slot.OUTBOUND) == b"pass of b"
    assert attachments.get("b", Slot.OUTBOUND) is None
    assert [t.id for t in trips.list()] == ["a"]


# ---------------- split / delete / dedupe -----------------
def test_split_migrates_attachments(consolidator, outbound_trip, inbound_trip):
    trips = consolidator.pair_manually("a", "b", [outbound_trip(0, "a"), inbound_trip(4, "b")], now=NOW).trips
    changeset = consolidator.split("a", trips)
    assert changeset.operations == [
        CreateTrip(changeset.operations[0].trip),
        CreateTrip(changeset.operations[1].trip),
        MoveAttachment("a", Slot.OUTBOUND, "new-1", Slot.OUTBOUND),
        MoveAttachment("a", Slot.INBOUND, "new-2", Slot.INBOUND),
        DeleteTrip("a"),
    ]
    assert sorted(t.id for t in changeset.trips) == ["new-1", "new-2"]


def test_split_can_drop_attachments(normalizer, ids, outbound_trip, inbound_trip):
    consolidator = TripConsolidator(normalizer, "drop", id_factory=ids)
    trips = consolidator.pair_manually("a", "b", [outbound_trip(0, "a"), inbound_trip(4, "b")], now=NOW).trips
    changeset = consolidator.split("a", trips)
    assert DeleteAttachments("a", Slot.OUTBOUND) in changeset.operations
    assert DeleteAttachments("a", Slot.INBOUND) in changeset.operations
    assert not any(isinstance(op, MoveAttachment) for op in changeset.operations)


def test_unknown_attachment_policy(normalizer):
    with pytest.raises(ValueError):
        TripConsolidator(normalizer, "keep")


def test_delete_removes_trip_and_attachments(consolidator, outbound_trip):
    changeset = consolidator.delete("a", [outbound_trip(0, "a"), outbound_trip(7, "b")])
    assert changeset.operations == [DeleteTrip("a"), DeleteAttachments("a")]
    assert [t.id for t in changeset.trips] == ["b"]


def test_remove_duplicates_drops_newer_copies(consolidator, outbound_trip):
    original = outbound_trip(0, "a")
    copy = outbound_trip(0, "b", created_at=NOW + timedelta(minutes=1))
    changeset = consolidator.remove_duplicates([copy, original])
    assert changeset.trips == [original]
    assert changeset.operations == [DeleteTrip("b"), DeleteAttachments("b")]
