from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List

import pandas as pd

from ..recommendations.data_store import BOOKINGS_CSV, SALONS_CSV, SUBSCRIPTIONS_CSV
from ..recommendations.models import (
    SERVICE_TYPES,
    BookingStatus,
    PlanType,
    SubscriptionStatus,
    parse_price,
)
from .config import DEFAULT_INGESTION_CONFIG, IngestionConfig

logger = logging.getLogger(__name__)

SALON_COLUMNS: List[str] = [
    "id",
    "name",
    "owner_id",
    "image_url",
    "street_address",
    "city",
    "province",
    "country",
    "latitude",
    "longitude",
    "price",
    "service_types",
    "rating",
    "total_reviews",
]

BOOKING_COLUMNS: List[str] = ["id", "user_id", "salon_id", "status", "requested_at"]

SUBSCRIPTION_COLUMNS: List[str] = ["id", "salon_id", "plan_type", "status"]

_VALID_BOOKING_STATUSES = {s.value for s in BookingStatus}
_VALID_SUBSCRIPTION_STATUSES = {s.value for s in SubscriptionStatus}
_VALID_PLAN_TYPES = {p.value for p in PlanType}


def _unwrap(value: Any) -> Any:
    """Strip MongoDB extended-JSON wrappers ({"$oid": ...}, {"$date": ...})."""
    if isinstance(value, list):
        return [_unwrap(v) for v in value]
    if not isinstance(value, dict):
        return value
    if set(value) == {"$oid"}:
        return str(value["$oid"])
    if set(value) == {"$date"}:
        inner = value["$date"]
        if isinstance(inner, dict) and "$numberLong" in inner:
            millis = int(inner["$numberLong"])
            return datetime.fromtimestamp(millis / 1000, tz=timezone.utc).isoformat()
        return inner
    return {k: _unwrap(v) for k, v in value.items()}


def _load_raw(path: Path) -> pd.DataFrame:
    if not path.is_file():
        logger.warning("Raw export %s not found", path)
        return pd.DataFrame()
    with path.open(encoding="utf-8") as fh:
        documents = json.load(fh)
    return pd.json_normalize([_unwrap(doc) for doc in documents])


def _column(df: pd.DataFrame, name: str) -> pd.Series:
    if name in df.columns:
        return df[name]
    return pd.Series([None] * len(df), index=df.index, dtype=object)


def _normalize_rating(rating: Any) -> float | None:
    value = parse_price(rating)
    if value is None:
        return None
    # Clamp to [0, 5]
    return max(0.0, min(5.0, value))


def _normalize_services(raw: Any) -> str:
    if not isinstance(raw, list):
        return ""
    kept = [s for s in raw if s in SERVICE_TYPES]
    dropped = [s for s in raw if s not in SERVICE_TYPES]
    if dropped:
        logger.warning("Dropping unknown service types %s", dropped)
    return ", ".join(kept)


def _drop_invalid(df: pd.DataFrame, column: str, allowed: set[str], label: str) -> pd.DataFrame:
    mask = df[column].isin(allowed)
    if (~mask).any():
        logger.warning("Dropping %d %s rows with invalid %s", int((~mask).sum()), label, column)
    return df.loc[mask]


def normalize_salons(raw: pd.DataFrame) -> pd.DataFrame:
    if raw.empty:
        return pd.DataFrame(columns=SALON_COLUMNS)

    canonical = pd.DataFrame(index=raw.index)
    canonical["id"] = _column(raw, "_id").astype(str)
    canonical["name"] = _column(raw, "salonName").fillna("")
    canonical["owner_id"] = _column(raw, "ownerId")
    canonical["image_url"] = _column(raw, "salonImage")
    canonical["street_address"] = _column(raw, "location.streetAddress")
    canonical["city"] = _column(raw, "location.city")
    canonical["province"] = _column(raw, "location.province")
    canonical["country"] = _column(raw, "location.country").fillna("Thailand")
    canonical["latitude"] = pd.to_numeric(_column(raw, "location.latitude"), errors="coerce")
    canonical["longitude"] = pd.to_numeric(_column(raw, "location.longitude"), errors="coerce")
    canonical["price"] = _column(raw, "priceRange").apply(parse_price)
    canonical["service_types"] = _column(raw, "typesOfMassages").apply(_normalize_services)
    canonical["rating"] = _column(raw, "rating").apply(_normalize_rating)
    canonical["total_reviews"] = (
        pd.to_numeric(_column(raw, "totalReviews"), errors="coerce").fillna(0).astype(int)
    )

    bad_coords = (canonical["latitude"].abs() > 90) | (canonical["longitude"].abs() > 180)
    if bad_coords.any():
        logger.warning("Blanking out-of-range coordinates on %d salons", int(bad_coords.sum()))
        canonical.loc[bad_coords, ["latitude", "longitude"]] = None

    missing_owner = canonical["owner_id"].isna()
    if missing_owner.any():
        logger.warning("Dropping %d salons without an owner", int(missing_owner.sum()))
        canonical = canonical.loc[~missing_owner]

    return canonical[SALON_COLUMNS]


def normalize_bookings(raw: pd.DataFrame) -> pd.DataFrame:
    if raw.empty:
        return pd.DataFrame(columns=BOOKING_COLUMNS)

    canonical = pd.DataFrame(index=raw.index)
    canonical["id"] = _column(raw, "_id").astype(str)
    canonical["user_id"] = _column(raw, "requester.firebaseUID")
    canonical["salon_id"] = _column(raw, "reciever.salonId")
    canonical["status"] = _column(raw, "status")
    canonical["requested_at"] = pd.to_datetime(
        _column(raw, "appointmentDetails.requestedDateTime"), errors="coerce", utc=True, format="ISO8601",
    )

    incomplete = canonical["user_id"].isna() | canonical["requested_at"].isna()
    if incomplete.any():
        logger.warning("Dropping %d bookings without requester or date", int(incomplete.sum()))
    canonical = canonical.loc[~incomplete].copy()

    canonical["requested_at"] = canonical["requested_at"].map(lambda ts: ts.isoformat())
    canonical = _drop_invalid(canonical, "status", _VALID_BOOKING_STATUSES, "booking")
    return canonical[BOOKING_COLUMNS]


def normalize_subscriptions(raw: pd.DataFrame) -> pd.DataFrame:
    if raw.empty:
        return pd.DataFrame(columns=SUBSCRIPTION_COLUMNS)

    canonical = pd.DataFrame(index=raw.index)
    canonical["id"] = _column(raw, "_id").astype(str)
    canonical["salon_id"] = _column(raw, "salonID")
    canonical["plan_type"] = _column(raw, "planType")
    canonical["status"] = _column(raw, "status")

    canonical = _drop_invalid(canonical, "status", _VALID_SUBSCRIPTION_STATUSES, "subscription")
    canonical = _drop_invalid(canonical, "plan_type", _VALID_PLAN_TYPES, "subscription")
    return canonical[SUBSCRIPTION_COLUMNS]


def run_ingestion(config: IngestionConfig = DEFAULT_INGESTION_CONFIG) -> Path:
    """
    Execute the ingestion pipeline.

    Steps:
    - Read the raw JSON exports (missing files yield empty tables).
    - Map raw fields into the canonical salon, booking and subscription schemas.
    - Persist cleaned data as CSVs for the recommendation store.
    """
    config.processed_data_dir.mkdir(parents=True, exist_ok=True)

    outputs = {
        SALONS_CSV: normalize_salons(_load_raw(config.raw_path(config.salons_filename))),
        BOOKINGS_CSV: normalize_bookings(_load_raw(config.raw_path(config.bookings_filename))),
        SUBSCRIPTIONS_CSV: normalize_subscriptions(
            _load_raw(config.raw_path(config.subscriptions_filename))
        ),
    }
    for filename, df in outputs.items():
        df.to_csv(config.processed_data_dir / filename, index=False)
        logger.info("Wrote %d rows to %s", len(df), filename)

    return config.processed_data_dir


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    path = run_ingestion()
    print(f"Ingestion complete. Processed data saved to: {path}")
