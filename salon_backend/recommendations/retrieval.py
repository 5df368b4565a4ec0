from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

from ..analytics.store import record_event
from .config import DEFAULT_RECOMMENDATION_CONFIG, RecommendationConfig
from .data_store import SalonStore, get_store
from .errors import RecommendationSourceUnavailable
from .models import (
    BoostedSalon,
    CustomRecommendationRequest,
    GeoPoint,
    PriceFilter,
    RecommendationItem,
    Salon,
    SalonOut,
    SubscriptionSnapshot,
    UserPreferenceProfile,
)
from .preferences import analyze_user_preferences
from .quota import get_available_subscribed_salons, get_weekly_match_count, get_week_start, record_match
from .scorer import calculate_relevance_score, generate_reasons, tags_overlap

logger = logging.getLogger(__name__)

T = TypeVar("T")

PREVIOUSLY_VISITED = "Previously visited"
NO_SALONS_MESSAGE = "No salons available at the moment"
COLD_START_MESSAGE = "Personalized recommendations will appear after your first accepted booking"


@dataclass
class _Candidate:
    salon: Salon
    score: float
    boosted: BoostedSalon | None


def _read(source: str, fn: Callable[..., T], *args: Any) -> T:
    """Run a store call, surfacing any failure as RecommendationSourceUnavailable."""
    try:
        return fn(*args)
    except RecommendationSourceUnavailable:
        raise
    except Exception as exc:
        logger.error("Failed accessing %s", source, exc_info=True)
        raise RecommendationSourceUnavailable(source, str(exc)) from exc


def _merge_candidates(pool: list[BoostedSalon], catalog: list[Salon]) -> list[Salon]:
    """Boost-pool salons first, then the rest of the catalog, each id once."""
    seen: set[str] = set()
    merged: list[Salon] = []
    for salon in [b.salon for b in pool] + catalog:
        if salon.id in seen:
            continue
        seen.add(salon.id)
        merged.append(salon)
    return merged


def _track_match(
    store: SalonStore,
    boosted: BoostedSalon,
    user_id: str,
    week_start: datetime,
    quota: int,
) -> SubscriptionSnapshot:
    salon_id = boosted.salon.id
    existing = _read("match ledger", store.find_match, salon_id, user_id, week_start)
    current = _read(
        "match ledger", get_weekly_match_count, store, boosted.subscription.id, week_start,
    )

    weekly = current
    if existing is None and current < quota:
        if _read("match ledger", record_match, store, salon_id, user_id, week_start, quota):
            weekly = current + 1
        else:
            # Another request took the last slot or the same key first
            weekly = _read("match ledger", store.count_matches, salon_id, week_start)

    return SubscriptionSnapshot(
        id=boosted.subscription.id,
        plan_type=boosted.subscription.plan_type,
        weekly_match_count=weekly,
        remaining_matches=max(0, quota - weekly),
    )


def _salon_out(salon: Salon, is_subscribed: bool) -> SalonOut:
    return SalonOut(
        id=salon.id,
        name=salon.name,
        image_url=salon.image_url,
        location=salon.location,
        price=salon.price,
        service_types=salon.service_types,
        rating=salon.rating or 0.0,
        total_reviews=salon.total_reviews,
        is_subscribed=is_subscribed,
        owner_id=salon.owner_id,
    )


def _rank(
    store: SalonStore,
    user_id: str,
    location: GeoPoint | None,
    limit: int,
    config: RecommendationConfig,
    now: datetime | None,
) -> tuple[list[RecommendationItem], UserPreferenceProfile]:
    preferences = _read("booking history", analyze_user_preferences, store, user_id, config)

    week_start = get_week_start(now)
    pool = _read("subscriptions", get_available_subscribed_salons, store, week_start, config)
    catalog = _read("salon catalog", store.get_all_salons)

    pool_by_id = {b.salon.id: b for b in pool}
    frequent = set(preferences.frequent_salons)

    # --- Scoring ---
    candidates: list[_Candidate] = []
    for salon in _merge_candidates(pool, catalog):
        score = calculate_relevance_score(salon, preferences, location)
        boosted = pool_by_id.get(salon.id)
        if boosted is not None and boosted.remaining_matches > 0:
            score += config.subscription_boost
        if salon.id in frequent:
            score += config.frequent_salon_boost
        candidates.append(_Candidate(salon=salon, score=score, boosted=boosted))

    # Ties fall back to ascending salon id
    candidates.sort(key=lambda c: (-c.score, c.salon.id))
    top = candidates[:limit]

    # --- Quota bookkeeping for boosted salons that made the cut ---
    items: list[RecommendationItem] = []
    for cand in top:
        snapshot = None
        if cand.boosted is not None:
            snapshot = _track_match(store, cand.boosted, user_id, week_start, config.weekly_match_quota)
        items.append(RecommendationItem(
            salon=_salon_out(cand.salon, cand.boosted is not None),
            score=round(cand.score, 4),
            reasons=generate_reasons(cand.salon, preferences),
            subscription=snapshot,
        ))

    return items, preferences


def _record(
    user_id: str,
    items: list[RecommendationItem],
    preferences: UserPreferenceProfile,
    start_time: float,
    custom: bool,
) -> None:
    elapsed_ms = round((time.time() - start_time) * 1000, 1)
    boosted = sum(1 for i in items if i.subscription is not None)
    record_event("recommendation", {
        "user_id": user_id,
        "cold_start": preferences.is_cold_start,
        "custom": custom,
        "results_returned": len(items),
        "boosted_returned": boosted,
        "salon_ids": [i.salon.id for i in items],
        "response_time_ms": elapsed_ms,
    })
    logger.info(
        "Returned %d salons for user %s (%d boosted, cold_start=%s, %.1f ms)",
        len(items), user_id, boosted, preferences.is_cold_start, elapsed_ms,
    )


def get_recommendations(
    user_id: str,
    location: GeoPoint | None = None,
    limit: int | None = None,
    store: SalonStore | None = None,
    config: RecommendationConfig = DEFAULT_RECOMMENDATION_CONFIG,
    now: datetime | None = None,
) -> list[RecommendationItem]:
    """
    Rank salons for a user.

    Scores every catalog salon against the user's booking-history profile,
    boosts subscribed salons that still have weekly quota, and writes a
    match-ledger entry for each boosted salon that ends up in the returned
    slice. Store read failures raise ``RecommendationSourceUnavailable``.
    """
    start_time = time.time()
    store = store if store is not None else get_store()
    limit = config.default_limit if limit is None else limit

    items, preferences = _rank(store, user_id, location, limit, config, now)
    _record(user_id, items, preferences, start_time, custom=False)
    return items


def filter_recommendations(
    items: list[RecommendationItem],
    preferred_services: list[str] | None = None,
    price_range: PriceFilter | None = None,
) -> list[RecommendationItem]:
    """Narrow ranked items to requested services and/or a price window."""
    if preferred_services:
        wanted = [p.lower() for p in preferred_services]
        items = [
            i for i in items
            if i.salon.service_types and tags_overlap(i.salon.service_types, wanted)
        ]

    if price_range is not None:
        def _in_range(price: float | None) -> bool:
            if price is None:
                return False
            if price_range.min and price < price_range.min:
                return False
            if price_range.max and price > price_range.max:
                return False
            return True

        items = [i for i in items if _in_range(i.salon.price)]

    return items


def get_custom_recommendations(
    user_id: str,
    request: CustomRecommendationRequest,
    store: SalonStore | None = None,
    config: RecommendationConfig = DEFAULT_RECOMMENDATION_CONFIG,
    now: datetime | None = None,
) -> list[RecommendationItem]:
    """Rank as ``get_recommendations`` does, then apply the request's filters."""
    start_time = time.time()
    store = store if store is not None else get_store()

    location = None
    if request.latitude is not None and request.longitude is not None:
        location = GeoPoint(latitude=request.latitude, longitude=request.longitude)

    items, preferences = _rank(store, user_id, location, request.limit, config, now)
    items = filter_recommendations(items, request.preferred_services, request.price_range)
    _record(user_id, items, preferences, start_time, custom=True)
    return items


def build_message(items: list[RecommendationItem]) -> str | None:
    if not items:
        return NO_SALONS_MESSAGE
    if any(PREVIOUSLY_VISITED in i.reasons for i in items):
        return None
    return COLD_START_MESSAGE
