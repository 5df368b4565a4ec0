from __future__ import annotations

from datetime import datetime, timedelta

from .config import DEFAULT_RECOMMENDATION_CONFIG, RecommendationConfig
from .data_store import SalonStore
from .models import BoostedSalon, SubscriptionStatus

WEEKLY_MATCH_QUOTA = DEFAULT_RECOMMENDATION_CONFIG.weekly_match_quota


def get_week_start(now: datetime | None = None) -> datetime:
    """Monday 00:00:00 of the week containing ``now`` (local clock)."""
    now = now or datetime.now()
    monday = now - timedelta(days=now.weekday())
    return monday.replace(hour=0, minute=0, second=0, microsecond=0)


def get_weekly_match_count(store: SalonStore, subscription_id: str, week_start: datetime) -> int:
    """Ledger entries this week for the salon linked to a subscription."""
    subscription = store.get_subscription(subscription_id)
    if (
        subscription is None
        or subscription.status != SubscriptionStatus.active
        or not subscription.salon_id
    ):
        return 0
    return store.count_matches(subscription.salon_id, week_start)


def get_available_subscribed_salons(
    store: SalonStore,
    week_start: datetime,
    config: RecommendationConfig = DEFAULT_RECOMMENDATION_CONFIG,
) -> list[BoostedSalon]:
    """Active subscribers that still have matches left this week."""
    pool: list[BoostedSalon] = []
    for active in store.find_active_subscriptions_with_salon():
        count = get_weekly_match_count(store, active.subscription.id, week_start)
        if count < config.weekly_match_quota:
            pool.append(BoostedSalon(
                salon=active.salon,
                subscription=active.subscription,
                weekly_match_count=count,
                remaining_matches=config.weekly_match_quota - count,
            ))
    return pool


def record_match(
    store: SalonStore,
    salon_id: str,
    user_id: str,
    week_start: datetime,
    quota: int = WEEKLY_MATCH_QUOTA,
) -> bool:
    """
    Record that ``salon_id`` was surfaced to ``user_id`` this week.

    Idempotent per (salon, user, week): a repeat call is a no-op. Nothing is
    written once the salon has used up its quota. Returns whether a new
    ledger entry was created.
    """
    if store.find_match(salon_id, user_id, week_start) is not None:
        return False
    if store.count_matches(salon_id, week_start) >= quota:
        return False
    # re-checked atomically by the store
    return store.insert_match(salon_id, user_id, week_start, ceiling=quota)
