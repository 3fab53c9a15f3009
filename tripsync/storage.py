"""Persistence collaborators and the replay of engine changesets against them.

Stores are scoped to one user; nothing here reaches across users. A merge is an update
plus a delete and a split is two creates plus a delete, never a transaction, so every
store call is idempotent and retried on its own until the changeset converges.
"""
import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Protocol

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential
from tenacity.wait import wait_base

from .codec import trip_from_dict, trip_to_dict
from .errors import InvalidTripRecord, StoreError
from .models import (
    Changeset,
    CreateTrip,
    DeleteAttachments,
    DeleteTrip,
    MoveAttachment,
    Operation,
    Slot,
    Trip,
    UpdateTrip,
)

logger = logging.getLogger(__name__)

_SAFE_NAME = re.compile(r"[^A-Za-z0-9_.-]")


def _safe(name: str) -> str:
    return _SAFE_NAME.sub("_", name)


class TripStore(Protocol):
    def list(self) -> list[Trip]: ...

    def create(self, trip: Trip) -> None: ...

    def update(self, trip_id: str, trip: Trip) -> None: ...

    def delete(self, trip_id: str) -> None: ...


class AttachmentStore(Protocol):
    def put(self, trip_id: str, slot: Slot, content: bytes) -> None: ...

    def get(self, trip_id: str, slot: Slot) -> bytes | None: ...

    def delete(self, trip_id: str, slot: Slot) -> None: ...

    def delete_trip(self, trip_id: str) -> None: ...


class JsonTripStore:
    """One JSON file per user holding that user's trip records.

    Records that fail to decode are kept on disk untouched and skipped by list().
    """

    def __init__(self, root: Path, user_id: str):
        self.path = Path(root) / f"{_safe(user_id)}.json"

    def _load(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        with open(self.path, "rt", encoding="utf-8") as f:
            records = json.load(f)
        if not isinstance(records, list):
            raise StoreError(f"{self.path} does not hold a list of trips")
        return records

    def _save(self, records: list[dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".json.tmp")
        with open(tmp, "wt", encoding="utf-8") as f:
            json.dump(records, f, ensure_ascii=False, indent=2)
        os.replace(tmp, self.path)

    def list(self) -> list[Trip]:
        trips = []
        for record in self._load():
            try:
                trips.append(trip_from_dict(record))
            except InvalidTripRecord as e:
                logger.warning("Skipping unreadable trip record in %s: %s", self.path, e)
        trips.sort(key=lambda t: (t.created_at, t.id), reverse=True)
        return trips

    def create(self, trip: Trip) -> None:
        self.update(trip.id, trip)

    def update(self, trip_id: str, trip: Trip) -> None:
        record = trip_to_dict(trip)
        record["id"] = trip_id
        records = [r for r in self._load() if r.get("id") != trip_id]
        records.append(record)
        self._save(records)

    def delete(self, trip_id: str) -> None:
        records = self._load()
        kept = [r for r in records if r.get("id") != trip_id]
        if len(kept) != len(records):
            self._save(kept)


class FileAttachmentStore:
    """Boarding passes as files named <trip id>-<slot>.bin under a per-user directory."""

    def __init__(self, root: Path, user_id: str):
        self.directory = Path(root) / _safe(user_id)

    def _path(self, trip_id: str, slot: Slot) -> Path:
        return self.directory / f"{_safe(trip_id)}-{Slot(slot).value}.bin"

    def put(self, trip_id: str, slot: Slot, content: bytes) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self._path(trip_id, slot).write_bytes(content)

    def get(self, trip_id: str, slot: Slot) -> bytes | None:
        path = self._path(trip_id, slot)
        return path.read_bytes() if path.exists() else None

    def delete(self, trip_id: str, slot: Slot) -> None:
        self._path(trip_id, slot).unlink(missing_ok=True)

    def delete_trip(self, trip_id: str) -> None:
        for slot in Slot:
            self.delete(trip_id, slot)


# ---------------- applying changesets -----------------
def _move_attachment(store: AttachmentStore, op: MoveAttachment) -> None:
    content = store.get(op.source_trip_id, op.source_slot)
    if content is None:
        return
    store.put(op.target_trip_id, op.target_slot, content)
    store.delete(op.source_trip_id, op.source_slot)


def _apply_trip_operation(store: TripStore, op: Operation) -> None:
    if isinstance(op, CreateTrip):
        store.create(op.trip)
    elif isinstance(op, UpdateTrip):
        store.update(op.trip.id, op.trip)
    elif isinstance(op, DeleteTrip):
        store.delete(op.trip_id)


def _apply_attachment_operation(store: AttachmentStore, op: Operation) -> None:
    if isinstance(op, MoveAttachment):
        _move_attachment(store, op)
    elif isinstance(op, DeleteAttachments):
        if op.slot is None:
            store.delete_trip(op.trip_id)
        else:
            store.delete(op.trip_id, op.slot)


def apply_changeset(changeset: Changeset, trips: TripStore, attachments: AttachmentStore | None = None,
                    attempts: int = 3, wait: wait_base | None = None) -> None:
    """Replay operations in order. Trip writes are retried and re-raised; attachment writes are best effort."""
    wait = wait or wait_exponential(multiplier=0.5, max=5)
    for op in changeset.operations:
        if isinstance(op, (MoveAttachment, DeleteAttachments)):
            if attachments is None:
                continue
            try:
                _apply_attachment_operation(attachments, op)
            except (StoreError, OSError):
                logger.warning("Attachment operation %s failed, continuing", op, exc_info=True)
            continue
        for attempt in Retrying(
            stop=stop_after_attempt(attempts),
            wait=wait,
            retry=retry_if_exception_type((StoreError, OSError)),
            reraise=True,
        ):
            with attempt:
                _apply_trip_operation(trips, op)
    logger.debug("Applied %d store operations", len(changeset.operations))
