"""
Data ingestion package for the salon recommendation service.

Responsibility:
- Read raw MongoDB JSON exports of salons, bookings and subscriptions.
- Normalize them into the canonical CSV schemas the store loads.
"""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class IngestionConfig:
    """
    Configuration for the ingestion pipeline.
    """

    raw_data_dir: Path = Path("salon_backend/data/raw")
    processed_data_dir: Path = Path("salon_backend/data/processed")
    salons_filename: str = "salons.json"
    bookings_filename: str = "bookings.json"
    subscriptions_filename: str = "subscriptions.json"

    def raw_path(self, filename: str) -> Path:
        return self.raw_data_dir / filename


DEFAULT_INGESTION_CONFIG = IngestionConfig()
