class TripsyncError(Exception):
    """Base class for errors raised by tripsync."""


class PairingRejected(TripsyncError, ValueError):
    """Two trips cannot be merged into one round trip."""


class SplitRejected(TripsyncError, ValueError):
    """Trip does not hold two legs."""


class TripNotFound(TripsyncError, LookupError):
    def __init__(self, trip_id: str):
        super().__init__(f"Trip {trip_id!r} not found")
        self.trip_id = trip_id


class InvalidTripRecord(TripsyncError, ValueError):
    """Stored record cannot be decoded into a trip."""


class ExtractionError(TripsyncError):
    """Extraction service output is unusable."""


class StoreError(TripsyncError):
    """Transient persistence failure; safe to retry."""
