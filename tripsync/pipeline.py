"""Command line entry point for managing one user's trips.

Usage patterns:

1. Add a leg typed by hand:
   tripsync add --flight AR1450 --from SLA --to AEP --departure 2025-10-21T10:30

2. Import the JSON returned by the extraction service, or a list of legs:
   tripsync import extracted.json

3. Keep the collection consistent in the background:
   tripsync watch --every 60
"""
import argparse
import dataclasses
import json
import logging
import time
from pathlib import Path
from typing import Sequence

import schedule

from tripsync.codec import leg_from_dict, parse_date
from tripsync.config import settings
from tripsync.consolidation.consolidator import IngestOutcome, IngestResult
from tripsync.errors import TripsyncError
from tripsync.extraction import ExtractionResult, parse_extraction_payload
from tripsync.logging_config import setup_logging
from tripsync.models import DeleteTrip, FlightLeg, OneWayTrip, Trip
from tripsync.service import TripService


def _describe_leg(leg: FlightLeg) -> str:
    departure = leg.departure_at.strftime("%Y-%m-%d %H:%M") if leg.departure_at else "N/A"
    return f"{leg.flight_number or '?'} {leg.departure_airport or '?'}->{leg.arrival_airport or '?'} {departure}"


def format_trip(trip: Trip) -> str:
    if isinstance(trip, OneWayTrip):
        return f"{trip.id}  one-way ({trip.slot.value})  {_describe_leg(trip.leg)}"
    return f"{trip.id}  round trip  {_describe_leg(trip.outbound)}  |  {_describe_leg(trip.inbound)}"


def _load_extraction(path: Path) -> ExtractionResult:
    with open(path, "rt", encoding="utf-8") as f:
        payload = json.load(f)
    if isinstance(payload, list):
        payload = {"flights": payload}
    return parse_extraction_payload(payload)


def _report(results: Sequence[IngestResult]) -> None:
    for result in results:
        if result.outcome is IngestOutcome.DUPLICATE:
            print(f"already stored in trip {result.duplicate_of.id}")
        else:
            print(f"{result.outcome.value}: {format_trip(result.trip)}")


def run_command(service: TripService, args: argparse.Namespace) -> None:
    if args.command == "add":
        leg = leg_from_dict({
            "flight_number": args.flight,
            "airline": args.airline,
            "departure_airport": args.origin,
            "arrival_airport": args.destination,
            "departure_at": args.departure,
            "arrival_at": args.arrival,
            "cost": args.cost,
            "payment_method": args.payment_method,
            "reservation_code": args.reservation_code,
        })
        _report([service.add_leg(leg, purchase_date=parse_date(args.purchase_date))])
    elif args.command == "import":
        _report(service.add_extraction(_load_extraction(args.file)))
    elif args.command == "sweep":
        service.request_sweep()
        changes = service.last_sweep
        if changes is not None:
            print(f"{changes.corrections} corrections, {changes.merges} merges")
    elif args.command == "pair":
        service.pair(args.source, args.target)
    elif args.command == "split":
        service.split(args.trip)
    elif args.command == "delete":
        service.delete(args.trip)
    elif args.command == "dedupe":
        changes = service.remove_duplicates()
        removed = sum(isinstance(op, DeleteTrip) for op in changes.operations)
        print(f"{removed} duplicate trips removed")
    elif args.command == "list":
        for trip in service.list_trips():
            print(format_trip(trip))


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Personal flight itinerary tracker")
    p.add_argument("--user", default="default", help="User whose trips are managed")
    p.add_argument("--data-dir", type=Path, default=settings.data_dir, help="Directory holding trips and attachments")
    p.add_argument("--log-level", default=settings.log_level)
    sub = p.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Add a single flight leg")
    add.add_argument("--flight", required=True, help="Flight number, e.g. AR1450")
    add.add_argument("--from", dest="origin", required=True, help="Departure airport IATA code")
    add.add_argument("--to", dest="destination", required=True, help="Arrival airport IATA code")
    add.add_argument("--departure", required=True, help="YYYY-MM-DDTHH:MM")
    add.add_argument("--arrival")
    add.add_argument("--airline")
    add.add_argument("--cost", type=float)
    add.add_argument("--payment-method")
    add.add_argument("--reservation-code")
    add.add_argument("--purchase-date", help="YYYY-MM-DD, defaults to today")

    imp = sub.add_parser("import", help="Import extracted flights from a JSON file")
    imp.add_argument("file", type=Path)

    sub.add_parser("sweep", help="Re-normalize and re-pair all trips once")
    pair = sub.add_parser("pair", help="Merge two one-way trips into a round trip")
    pair.add_argument("source")
    pair.add_argument("target")
    split = sub.add_parser(
        "split",
        help="Split a round trip into two one-way trips; legs still within the pairing window "
             "are paired again by the follow-up sweep",
    )
    split.add_argument("trip")
    delete = sub.add_parser("delete", help="Delete a trip and its boarding passes")
    delete.add_argument("trip")
    sub.add_parser("dedupe", help="Remove one-way trips repeating an already stored flight")
    sub.add_parser("list", help="List trips, newest first")

    watch = sub.add_parser("watch", help="Sweep periodically until interrupted")
    watch.add_argument("--every", type=int, default=settings.sweep_interval_seconds, metavar="SECONDS")
    return p


def main_cli(argv: Sequence[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level)
    service = TripService.from_settings(args.user, dataclasses.replace(settings, data_dir=args.data_dir))

    if args.command == "watch":
        def _sweep() -> None:
            try:
                service.request_sweep()
            except Exception:  # noqa: BLE001
                logging.exception("Sweep failed")

        logging.info(f"Watching trips of {args.user}, sweeping every {args.every}s")
        _sweep()
        schedule.every(args.every).seconds.do(_sweep)
        while True:
            schedule.run_pending()
            time.sleep(1)

    try:
        run_command(service, args)
    except TripsyncError as e:
        logging.error("%s", e)
        return 1
    except Exception:  # noqa: BLE001
        logging.exception("Command failed")
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main_cli())
