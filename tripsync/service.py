"""Per-user glue between the consolidation engine and the stores.

Every write goes engine -> changeset -> stores, then requests a sweep. Sweeps for one
user never overlap; a request made while one is running is folded into a single
follow-up run.
"""
import logging
from datetime import date, datetime

from tqdm import tqdm

from .config import Settings, settings as default_settings
from .consolidation.consolidator import IngestResult, TripConsolidator
from .consolidation.sweep import RenormalizationSweep
from .extraction import ExtractionResult, ExtractionService, prepare_email_text
from .models import Changeset, FlightLeg, Trip
from .normalizer import LegNormalizer
from .scheduling import SingleFlight
from .storage import AttachmentStore, FileAttachmentStore, JsonTripStore, TripStore, apply_changeset

logger = logging.getLogger(__name__)


class TripService:
    def __init__(self, user_id: str, trips: TripStore, attachments: AttachmentStore | None,
                 consolidator: TripConsolidator, sweep: RenormalizationSweep,
                 single_flight: SingleFlight | None = None, store_attempts: int = 3):
        self.user_id = user_id
        self.trips = trips
        self.attachments = attachments
        self.consolidator = consolidator
        self.sweeper = sweep
        self.single_flight = single_flight or SingleFlight()
        self.store_attempts = store_attempts
        self.last_sweep: Changeset | None = None

    @classmethod
    def from_settings(cls, user_id: str, settings: Settings = default_settings,
                      single_flight: SingleFlight | None = None) -> "TripService":
        normalizer = LegNormalizer.from_settings(settings)
        return cls(
            user_id=user_id,
            trips=JsonTripStore(settings.trips_dir(), user_id),
            attachments=FileAttachmentStore(settings.attachments_dir(), user_id),
            consolidator=TripConsolidator(normalizer, settings.attachment_policy),
            sweep=RenormalizationSweep(normalizer, settings.attachment_policy),
            single_flight=single_flight,
            store_attempts=settings.store_retries,
        )

    def list_trips(self) -> list[Trip]:
        return self.trips.list()

    def _apply(self, changeset: Changeset) -> None:
        apply_changeset(changeset, self.trips, self.attachments, attempts=self.store_attempts)

    def _commit(self, changeset: Changeset) -> Changeset:
        if not changeset.is_empty:
            self._apply(changeset)
            self.request_sweep()
        return changeset

    # ---------------- user actions -----------------
    def add_leg(self, leg: FlightLeg, purchase_date: date | None = None) -> IngestResult:
        result = self.consolidator.ingest(leg, self.trips.list(), purchase_date=purchase_date)
        self._commit(result.changeset)
        return result

    def add_extraction(self, extraction: ExtractionResult) -> list[IngestResult]:
        """Ingest all legs of one booking against one snapshot, then sweep once."""
        results = self.consolidator.ingest_many(extraction.legs, self.trips.list(),
                                                purchase_date=extraction.purchase_date, now=datetime.now())
        for result in tqdm(results, desc="Storing legs", disable=len(results) < 2, leave=False):
            if not result.changeset.is_empty:
                self._apply(result.changeset)
        self.request_sweep()
        return results

    def import_email(self, extractor: ExtractionService, raw_text: str, document: bytes | None = None) -> list[IngestResult]:
        excerpt = prepare_email_text(raw_text)
        text = excerpt.text
        if excerpt.reference_date:
            text = f"Reference date: {excerpt.reference_date.isoformat()}\n\n{text}"
        return self.add_extraction(extractor.extract(text, document))

    def pair(self, source_id: str, target_id: str) -> Changeset:
        return self._commit(self.consolidator.pair_manually(source_id, target_id, self.trips.list()))

    def split(self, trip_id: str) -> Changeset:
        return self._commit(self.consolidator.split(trip_id, self.trips.list()))

    def delete(self, trip_id: str) -> Changeset:
        return self._commit(self.consolidator.delete(trip_id, self.trips.list()))

    def remove_duplicates(self) -> Changeset:
        return self._commit(self.consolidator.remove_duplicates(self.trips.list()))

    # ---------------- sweep -----------------
    def _run_sweep(self) -> None:
        changeset = self.sweeper.run(self.trips.list())
        if not changeset.is_empty:
            self._apply(changeset)
        self.last_sweep = changeset

    def request_sweep(self) -> bool:
        """Sweep now, or fold into the sweep already running for this user."""
        return self.single_flight.trigger(self.user_id, self._run_sweep)
