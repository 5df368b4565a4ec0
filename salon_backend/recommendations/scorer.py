from __future__ import annotations

from .geo import distance_between
from .models import GeoPoint, Salon, UserPreferenceProfile

SERVICE_MATCH_POINTS = 40.0
SERVICE_MISS_POINTS = 10.0
SERVICE_NEUTRAL_POINTS = 20.0
PRICE_POINTS = 25.0
LOCATION_POINTS = 25.0
RATING_POINTS = 10.0

HIGHLY_RATED_THRESHOLD = 4.5
FALLBACK_REASON = "Popular choice"


def tags_overlap(salon_services: list[str], preferred: list[str]) -> bool:
    """True if any pair of tags contains the other, case-insensitively."""
    salon_lower = [s.lower() for s in salon_services]
    for pref in preferred:
        pref = pref.lower()
        if any(s in pref or pref in s for s in salon_lower):
            return True
    return False


def services_match(salon: Salon, preferences: UserPreferenceProfile) -> bool:
    if not preferences.preferred_services or not salon.service_types:
        return False
    return tags_overlap(salon.service_types, preferences.preferred_services)


def _service_score(salon: Salon, preferences: UserPreferenceProfile) -> float:
    if not preferences.preferred_services or not salon.service_types:
        return SERVICE_NEUTRAL_POINTS
    if services_match(salon, preferences):
        return SERVICE_MATCH_POINTS
    return SERVICE_MISS_POINTS


def _price_score(salon: Salon, preferences: UserPreferenceProfile) -> float:
    band = preferences.price_band
    if band is None:
        return PRICE_POINTS / 2
    price = salon.price
    if price is None or not (band.min <= price <= band.max):
        return 0.0
    width = band.max - band.min
    if width <= 0:
        return PRICE_POINTS
    return PRICE_POINTS * (1 - min(abs(price - band.average) / width, 1.0))


def _location_score(
    salon: Salon,
    preferences: UserPreferenceProfile,
    live_location: GeoPoint | None,
) -> float:
    pattern = preferences.location_pattern
    salon_point = salon.coordinates()
    if live_location is None or pattern is None or salon_point is None:
        return LOCATION_POINTS / 2
    distance = distance_between(live_location, salon_point)
    if distance > pattern.max_distance_km:
        return 0.0
    return LOCATION_POINTS * (1 - distance / pattern.max_distance_km)


def _rating_score(salon: Salon) -> float:
    if not salon.rating or salon.rating <= 0:
        return 0.0
    return (min(salon.rating, 5.0) / 5.0) * RATING_POINTS


def calculate_relevance_score(
    salon: Salon,
    preferences: UserPreferenceProfile,
    live_location: GeoPoint | None = None,
) -> float:
    """
    Organic relevance of a salon to a user, in [0, 100].

    Sums service match (0-40), price fit (0-25), proximity (0-25) and
    rating (0-10). Facets the user has no data for score a flat neutral
    value; subscription and repeat-visit boosts are applied by the caller.
    """
    return (
        _service_score(salon, preferences)
        + _price_score(salon, preferences)
        + _location_score(salon, preferences, live_location)
        + _rating_score(salon)
    )


def generate_reasons(salon: Salon, preferences: UserPreferenceProfile) -> list[str]:
    """Human-readable explanations for a recommendation, never empty."""
    reasons: list[str] = []
    if services_match(salon, preferences):
        reasons.append(f"Offers {', '.join(salon.service_types)}")
    if salon.rating is not None and salon.rating >= HIGHLY_RATED_THRESHOLD:
        reasons.append("Highly rated")
    if salon.id in preferences.frequent_salons:
        reasons.append("Previously visited")
    return reasons or [FALLBACK_REASON]
