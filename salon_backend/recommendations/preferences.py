"""
Booking-history preference analysis.

Derives a ``UserPreferenceProfile`` from a user's most recent accepted
bookings. Each facet (services, price band, location, frequent salons) is
computed on its own so a gap in one never blanks out the others.
"""
from __future__ import annotations

from collections import Counter

from .config import DEFAULT_RECOMMENDATION_CONFIG, RecommendationConfig
from .data_store import SalonStore
from .geo import centroid
from .models import (
    GeoPoint,
    HistoricalBooking,
    LocationPattern,
    PriceBand,
    Salon,
    UserPreferenceProfile,
)


def _preferred_services(salons: list[Salon], top_n: int) -> list[str]:
    counter: Counter[str] = Counter()
    for salon in salons:
        for service in salon.service_types:
            counter[service.lower()] += 1
    # most_common keeps first-encountered order for equal counts
    return [name for name, _ in counter.most_common(top_n)]


def _price_band(salons: list[Salon]) -> PriceBand | None:
    prices = [s.price for s in salons if s.price is not None]
    if not prices:
        return None
    return PriceBand(
        min=max(0.0, min(prices) * 0.7),
        max=max(prices) * 1.3,
        average=sum(prices) / len(prices),
    )


def _location_pattern(salons: list[Salon], radius_km: float) -> LocationPattern | None:
    points: list[GeoPoint] = [p for p in (s.coordinates() for s in salons) if p is not None]
    if not points:
        return None
    return LocationPattern(center=centroid(points), max_distance_km=radius_km)


def _frequent_salons(salons: list[Salon], top_n: int) -> list[str]:
    counter: Counter[str] = Counter(s.id for s in salons)
    return [salon_id for salon_id, _ in counter.most_common(top_n)]


def build_profile(
    history: list[HistoricalBooking],
    config: RecommendationConfig = DEFAULT_RECOMMENDATION_CONFIG,
) -> UserPreferenceProfile:
    """Build a profile from already-fetched booking history."""
    if not history:
        return UserPreferenceProfile()

    salons = [b.salon for b in history if b.salon is not None]
    return UserPreferenceProfile(
        preferred_services=_preferred_services(salons, config.top_services),
        price_band=_price_band(salons),
        location_pattern=_location_pattern(salons, config.location_radius_km),
        frequent_salons=_frequent_salons(salons, config.top_frequent_salons),
    )


def analyze_user_preferences(
    store: SalonStore,
    user_id: str,
    config: RecommendationConfig = DEFAULT_RECOMMENDATION_CONFIG,
) -> UserPreferenceProfile:
    """Fetch the user's accepted bookings and derive their preferences."""
    history = store.find_accepted_bookings(user_id, config.history_limit)
    return build_profile(history, config)
