"""Configuration utilities.

Central place to load environment driven settings (home airport, storage location, etc.).
Avoids scattering os.getenv calls around the codebase.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv

# Load .env once on module import
load_dotenv()

AttachmentPolicy = Literal["migrate", "drop"]


def _split_codes(raw: str) -> tuple[str, ...]:
    return tuple(code.strip().upper() for code in raw.split(",") if code.strip())


@dataclass(slots=True)
class Settings:
    home_airport: str = os.getenv("HOME_AIRPORT", "SLA")
    home_aliases: tuple[str, ...] = _split_codes(os.getenv("HOME_ALIASES", "SALTA"))
    attachment_policy: AttachmentPolicy = os.getenv("ATTACHMENT_POLICY", "migrate")  # type: ignore[assignment]
    data_dir: Path = Path(os.getenv("DATA_DIR", "data"))
    store_retries: int = int(os.getenv("STORE_RETRIES", "3"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    sweep_interval_seconds: int = int(os.getenv("SWEEP_INTERVAL_SECONDS", "60"))

    def home_codes(self) -> frozenset[str]:
        return frozenset({self.home_airport.strip().upper(), *self.home_aliases})

    def trips_dir(self) -> Path:
        return self.data_dir / "trips"

    def attachments_dir(self) -> Path:
        return self.data_dir / "attachments"


settings = Settings()
