"""Boundary with the external flight extraction service.

The service itself (a language model behind an HTTP function) is not part of this
package; only its contract, the cleanup of pasted email text sent to it, and the
validation of what comes back live here. Everything it returns is untrusted candidate
data and goes through the same duplicate check and normalization as manual entries.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Mapping, Protocol

from .codec import leg_from_dict, parse_date
from .errors import ExtractionError
from .models import FlightLeg

logger = logging.getLogger(__name__)

MAX_FALLBACK_CHARS = 8000

_MONTHS = {
    "ene": 1, "feb": 2, "mar": 3, "abr": 4, "may": 5, "jun": 6,
    "jul": 7, "ago": 8, "sep": 9, "sept": 9, "oct": 10, "nov": 11, "dic": 12,
}
_REFERENCE_DATE = re.compile(
    r"\b(\d{1,2})\s+(ene|feb|mar|abr|may|jun|jul|ago|sept|sep|oct|nov|dic)\s+(\d{4})",
    re.IGNORECASE,
)

# webmail chrome that precedes the message body when a whole page is pasted
_NOISE_LINES = [
    re.compile(r"^Conversación abierta\..*?\n+", re.IGNORECASE | re.MULTILINE),
    re.compile(r"^Ir al contenido.*?\n+", re.IGNORECASE | re.MULTILINE),
    re.compile(r"^Cómo usar Gmail.*?\n+", re.IGNORECASE | re.MULTILINE),
    re.compile(r"^\d+\s+de\s+\d+[,.\s]+\d+.*?\n+", re.IGNORECASE | re.MULTILINE),
]

# where the itinerary starts in airline confirmation emails
START_MARKERS = (
    "detalle reserva",
    "itinerario de su reserva",
    "código de reserva",
    "codigo de reserva",
    "número de vuelo",
    "numero de vuelo",
    "información de tu reserva",
    "informacion de tu reserva",
)

# boilerplate that follows the itinerary
END_MARKERS = (
    "condiciones generales",
    "condiciones",
    "regulaciones",
    "check-in",
    "equipaje",
    "devoluciones",
    "seguinos",
    "descargá nuestra app",
    "descarga nuestra app",
    "aerolíneas plus",
    "aerolineas plus",
    "hotel",
    "auto",
    "asistencia al viajero",
)


@dataclass(slots=True)
class EmailExcerpt:
    text: str
    reference_date: date | None = None


@dataclass(slots=True)
class ExtractionResult:
    legs: list[FlightLeg] = field(default_factory=list)
    purchase_date: date | None = None


class ExtractionService(Protocol):
    def extract(self, text: str, document: bytes | None = None) -> ExtractionResult: ...


def _find_reference_date(text: str) -> date | None:
    match = _REFERENCE_DATE.search(text)
    if not match:
        return None
    day, month, year = match.groups()
    try:
        return date(int(year), _MONTHS[month.lower()], int(day))
    except ValueError:
        return None


def prepare_email_text(raw: str) -> EmailExcerpt:
    """Reduce a pasted confirmation email to the itinerary block.

    The reference date (e.g. "14 dic 2025") lets the extractor infer the year of
    itinerary dates written without one.
    """
    normalized = (raw or "").replace("\r\n", "\n").replace("\u00a0", " ")
    normalized = re.sub(r"[ \t]+\n", "\n", normalized).strip()
    stripped = normalized
    for pattern in _NOISE_LINES:
        stripped = pattern.sub("", stripped, count=1)
    stripped = stripped.strip()
    lower = stripped.lower()

    starts = [i for i in (lower.find(marker) for marker in START_MARKERS) if i >= 0]
    start = min(starts, default=0)
    end = len(stripped)
    for marker in END_MARKERS:
        if (i := lower.find(marker, start)) >= 0:
            end = min(end, i)

    core = stripped[start:end].strip()
    if not core:
        core = stripped[:MAX_FALLBACK_CHARS]
    return EmailExcerpt(text=core, reference_date=_find_reference_date(stripped))


def parse_extraction_payload(payload: Mapping[str, Any]) -> ExtractionResult:
    """Validate the service JSON ({"flights": [...], "purchaseDate": ...}) and build legs."""
    flights = payload.get("flights") if isinstance(payload, Mapping) else None
    if not isinstance(flights, list):
        raise ExtractionError("Extraction response has no 'flights' list")

    legs = []
    for position, flight in enumerate(flights):
        if not isinstance(flight, Mapping):
            logger.warning("Skipping extracted flight #%d: not an object", position)
            continue
        leg = leg_from_dict(flight)
        if not (leg.flight_number or leg.departure_airport or leg.arrival_airport):
            logger.warning("Skipping extracted flight #%d: no flight number or airports", position)
            continue
        legs.append(leg)
    if not legs:
        raise ExtractionError("Extraction response contains no usable flights")

    purchase_date = parse_date(payload.get("purchaseDate") or payload.get("purchase_date"))
    return ExtractionResult(legs=legs, purchase_date=purchase_date)
