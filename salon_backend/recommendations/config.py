from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")

_DEFAULT_DATA_DIR = Path(__file__).resolve().parent.parent / "data" / "processed"


@dataclass(frozen=True)
class RecommendationConfig:
    history_limit: int = int(os.getenv("RECO_HISTORY_LIMIT", "50"))
    weekly_match_quota: int = int(os.getenv("RECO_WEEKLY_MATCH_QUOTA", "10"))
    default_limit: int = int(os.getenv("RECO_DEFAULT_LIMIT", "20"))
    location_radius_km: float = float(os.getenv("RECO_LOCATION_RADIUS_KM", "20"))
    subscription_boost: float = float(os.getenv("RECO_SUBSCRIPTION_BOOST", "50"))
    frequent_salon_boost: float = float(os.getenv("RECO_FREQUENT_SALON_BOOST", "10"))
    top_services: int = int(os.getenv("RECO_TOP_SERVICES", "10"))
    top_frequent_salons: int = int(os.getenv("RECO_TOP_FREQUENT_SALONS", "5"))
    data_dir: Path = Path(os.getenv("SALON_DATA_DIR", str(_DEFAULT_DATA_DIR)))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


DEFAULT_RECOMMENDATION_CONFIG = RecommendationConfig()
