from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd

from .config import DEFAULT_RECOMMENDATION_CONFIG
from .models import (
    ActiveSubscription,
    Booking,
    BookingStatus,
    HistoricalBooking,
    MatchRecord,
    Salon,
    SalonLocation,
    Subscription,
    SubscriptionStatus,
)

logger = logging.getLogger(__name__)

SALONS_CSV = "salons.csv"
BOOKINGS_CSV = "bookings.csv"
SUBSCRIPTIONS_CSV = "subscriptions.csv"


MatchKey = tuple[str, str, datetime]


class SalonStore:
    """
    In-memory backing store for the recommendation pipeline.

    Holds the salon catalog, booking history and subscriptions (read-only to
    the recommender) and the match ledger it owns. Ledger writes go through
    a lock so the (salon, user, week) key stays unique and the weekly
    ceiling can be enforced atomically.
    """

    def __init__(self) -> None:
        self._salons: dict[str, Salon] = {}
        self._bookings: list[Booking] = []
        self._subscriptions: dict[str, Subscription] = {}
        self._matches: dict[MatchKey, MatchRecord] = {}
        self._lock = threading.Lock()

    # ── Salon catalog ───────────────────────────────────────────────────

    def add_salon(self, salon: Salon) -> None:
        self._salons[salon.id] = salon

    def get_all_salons(self) -> list[Salon]:
        return list(self._salons.values())

    def get_salon_by_id(self, salon_id: str) -> Salon | None:
        return self._salons.get(salon_id)

    # ── Booking history ─────────────────────────────────────────────────

    def add_booking(self, booking: Booking) -> None:
        self._bookings.append(booking)

    def find_accepted_bookings(self, user_id: str, limit: int) -> list[HistoricalBooking]:
        """Accepted bookings for a user, newest first, with salon snapshots."""
        accepted = [
            b for b in self._bookings
            if b.user_id == user_id and b.status == BookingStatus.accepted
        ]
        accepted.sort(key=lambda b: b.requested_at, reverse=True)
        return [
            HistoricalBooking(
                salon=self._salons.get(b.salon_id) if b.salon_id else None,
                requested_at=b.requested_at,
            )
            for b in accepted[:limit]
        ]

    # ── Subscriptions ───────────────────────────────────────────────────

    def add_subscription(self, subscription: Subscription) -> None:
        self._subscriptions[subscription.id] = subscription

    def get_subscription(self, subscription_id: str) -> Subscription | None:
        return self._subscriptions.get(subscription_id)

    def find_active_subscriptions_with_salon(self) -> list[ActiveSubscription]:
        active: list[ActiveSubscription] = []
        for sub in self._subscriptions.values():
            if sub.status != SubscriptionStatus.active or not sub.salon_id:
                continue
            salon = self._salons.get(sub.salon_id)
            if salon is None:
                continue
            active.append(ActiveSubscription(subscription=sub, salon=salon))
        return active

    # ── Match ledger ────────────────────────────────────────────────────

    def count_matches(self, salon_id: str, week_start: datetime) -> int:
        with self._lock:
            return self._count_unlocked(salon_id, week_start)

    def find_match(self, salon_id: str, user_id: str, week_start: datetime) -> MatchRecord | None:
        with self._lock:
            return self._matches.get((salon_id, user_id, week_start))

    def insert_match(
        self,
        salon_id: str,
        user_id: str,
        week_start: datetime,
        ceiling: int | None = None,
    ) -> bool:
        """
        Insert a ledger entry unless one exists for this key or the salon
        already holds ``ceiling`` entries for the week. Returns whether a
        row was written.
        """
        key = (salon_id, user_id, week_start)
        with self._lock:
            if key in self._matches:
                return False
            if ceiling is not None and self._count_unlocked(salon_id, week_start) >= ceiling:
                return False
            self._matches[key] = MatchRecord(
                salon_id=salon_id,
                user_id=user_id,
                week_start=week_start,
                created_at=datetime.now(),
            )
            return True

    def list_matches(self) -> list[MatchRecord]:
        with self._lock:
            return list(self._matches.values())

    def _count_unlocked(self, salon_id: str, week_start: datetime) -> int:
        return sum(
            1 for (sid, _, week) in self._matches
            if sid == salon_id and week == week_start
        )


# ── CSV loading ─────────────────────────────────────────────────────────


def _read_records(path: Path) -> list[dict[str, Any]]:
    if not path.is_file():
        logger.info("%s not found, skipping", path)
        return []
    # Everything as text; pydantic coerces numeric fields on load
    df = pd.read_csv(path, dtype=str)
    df = df.astype(object).where(df.notna(), None)
    return df.to_dict(orient="records")


def _split_tags(raw: Any) -> list[str]:
    if not raw:
        return []
    return [t.strip() for t in str(raw).split(",") if t.strip()]


def _salon_from_row(row: dict[str, Any]) -> Salon:
    return Salon(
        id=str(row["id"]),
        name=row.get("name") or "",
        owner_id=str(row["owner_id"]),
        image_url=row.get("image_url"),
        location=SalonLocation(
            street_address=row.get("street_address"),
            city=row.get("city"),
            province=row.get("province"),
            country=row.get("country") or "Thailand",
            latitude=row.get("latitude"),
            longitude=row.get("longitude"),
        ),
        price=row.get("price"),
        service_types=_split_tags(row.get("service_types")),
        rating=row.get("rating"),
        total_reviews=int(float(row["total_reviews"])) if row.get("total_reviews") is not None else 0,
    )


def load_store(data_dir: Path) -> SalonStore:
    """Build a store from the processed CSVs in ``data_dir``."""
    store = SalonStore()
    salons = _read_records(data_dir / SALONS_CSV)
    bookings = _read_records(data_dir / BOOKINGS_CSV)
    subscriptions = _read_records(data_dir / SUBSCRIPTIONS_CSV)
    for row in salons:
        store.add_salon(_salon_from_row(row))
    for row in bookings:
        store.add_booking(Booking(**row))
    for row in subscriptions:
        store.add_subscription(Subscription(**row))

    logger.info(
        "Loaded store from %s: %d salons, %d bookings, %d subscriptions",
        data_dir,
        len(salons),
        len(bookings),
        len(subscriptions),
    )
    return store


_store: SalonStore | None = None


def get_store() -> SalonStore:
    """Return the process-wide store, loading it on first call."""
    global _store
    if _store is None:
        _store = load_store(DEFAULT_RECOMMENDATION_CONFIG.data_dir)
    return _store
