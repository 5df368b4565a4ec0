from __future__ import annotations

from datetime import datetime

import pytest

from salon_backend.recommendations.data_store import SalonStore
from salon_backend.recommendations.errors import RecommendationSourceUnavailable
from salon_backend.recommendations.models import (
    Booking,
    BookingStatus,
    GeoPoint,
    PriceFilter,
    Salon,
    SalonLocation,
    Subscription,
    SubscriptionStatus,
)
from salon_backend.recommendations.quota import get_week_start
from salon_backend.recommendations.retrieval import (
    COLD_START_MESSAGE,
    NO_SALONS_MESSAGE,
    build_message,
    filter_recommendations,
    get_recommendations,
)

NOW = datetime(2026, 10, 14, 12, 0)
WEEK = get_week_start(NOW)


def _salon(salon_id, services=None, price=None, rating=None, lat=None, lon=None) -> Salon:
    return Salon(
        id=salon_id,
        name=f"Salon {salon_id}",
        owner_id=f"owner-{salon_id}",
        image_url=f"https://img.example.com/{salon_id}.jpg",
        service_types=services or [],
        price=price,
        rating=rating,
        total_reviews=12,
        location=SalonLocation(city="Bangkok", latitude=lat, longitude=lon),
    )


def _subscribe(store: SalonStore, salon_id: str, existing_matches: int = 0) -> None:
    store.add_subscription(Subscription(
        id=f"sub-{salon_id}", salon_id=salon_id, status=SubscriptionStatus.active,
    ))
    for i in range(existing_matches):
        store.insert_match(salon_id, f"earlier-user-{i}", WEEK)


def _scenario_store() -> SalonStore:
    """User u1 has booked salon A once; C is subscribed with 9 matches used."""
    store = SalonStore()
    store.add_salon(_salon("A", ["Oil massage"], "150", 4.8, 13.75, 100.5))
    store.add_salon(_salon("B", ["Oil massage"], 140))
    store.add_salon(_salon("C", ["Oil massage", "Hot compress"], "300", 4.0))
    store.add_booking(Booking(
        id="bk1", user_id="u1", salon_id="A",
        status=BookingStatus.accepted, requested_at=datetime(2026, 9, 1, 15, 0),
    ))
    _subscribe(store, "C", existing_matches=9)
    return store


# ── End-to-end ───────────────────────────────────────────────────────────


def test_subscribed_salon_consumes_last_weekly_match():
    store = _scenario_store()

    recs = get_recommendations("u1", None, 20, store=store, now=NOW)
    ids = [r.salon.id for r in recs]
    assert ids == ["C", "A", "B"]

    top = recs[0]
    assert top.salon.is_subscribed
    assert top.subscription is not None
    assert top.subscription.weekly_match_count == 10
    assert top.subscription.remaining_matches == 0
    assert store.count_matches("C", WEEK) == 10
    assert store.find_match("C", "u1", WEEK) is not None

    # The quota is now spent for everyone else this week
    other = get_recommendations("u2", None, 20, store=store, now=NOW)
    c_entry = next(r for r in other if r.salon.id == "C")
    assert not c_entry.salon.is_subscribed
    assert c_entry.subscription is None
    assert store.count_matches("C", WEEK) == 10


def test_scores_include_boosts():
    store = _scenario_store()
    recs = {r.salon.id: r for r in get_recommendations("u1", None, 20, store=store, now=NOW)}
    # C: service 40 + price 0 + location 12.5 + rating 8 + subscription 50
    assert recs["C"].score == pytest.approx(110.5)
    # A: service 40 + price 25 + location 12.5 + rating 9.6 + frequent 10
    assert recs["A"].score == pytest.approx(97.1)
    assert recs["A"].reasons == ["Offers Oil massage", "Highly rated", "Previously visited"]


def test_returned_salon_carries_owner_and_display_fields():
    store = _scenario_store()
    salon = get_recommendations("u1", None, 20, store=store, now=NOW)[0].salon
    assert salon.owner_id == "owner-C"
    assert salon.name == "Salon C"
    assert salon.image_url == "https://img.example.com/C.jpg"
    assert salon.price == 300.0
    assert salon.total_reviews == 12
    assert salon.location is not None and salon.location.city == "Bangkok"


def test_repeat_request_does_not_consume_more_quota():
    store = SalonStore()
    store.add_salon(_salon("S", rating=4.0))
    _subscribe(store, "S", existing_matches=2)

    first = get_recommendations("u1", None, 20, store=store, now=NOW)[0]
    second = get_recommendations("u1", None, 20, store=store, now=NOW)[0]
    assert first.subscription.weekly_match_count == 3
    assert second.subscription.weekly_match_count == 3
    assert store.count_matches("S", WEEK) == 3


def test_only_returned_salons_consume_quota():
    store = SalonStore()
    store.add_salon(_salon("high", rating=5.0))
    store.add_salon(_salon("low", rating=1.0))
    _subscribe(store, "high")
    _subscribe(store, "low")

    recs = get_recommendations("u1", None, 1, store=store, now=NOW)
    assert [r.salon.id for r in recs] == ["high"]
    assert store.count_matches("high", WEEK) == 1
    assert store.count_matches("low", WEEK) == 0


# ── Cold start / ordering ────────────────────────────────────────────────


def test_cold_start_orders_by_rating_and_subscription():
    store = SalonStore()
    store.add_salon(_salon("plain", rating=3.0))
    store.add_salon(_salon("star", rating=5.0))
    store.add_salon(_salon("paid", rating=1.0))
    _subscribe(store, "paid")

    recs = get_recommendations("newbie", None, 20, store=store, now=NOW)
    assert [r.salon.id for r in recs] == ["paid", "star", "plain"]
    assert recs[1].score == pytest.approx(45 + 10)
    assert recs[1].reasons == ["Highly rated"]
    assert recs[2].reasons == ["Popular choice"]


def test_ties_break_on_salon_id():
    store = SalonStore()
    for salon_id in ("c", "a", "b"):
        store.add_salon(_salon(salon_id, rating=4.0))
    recs = get_recommendations("newbie", None, 20, store=store, now=NOW)
    assert [r.salon.id for r in recs] == ["a", "b", "c"]


def test_pool_salon_listed_once():
    store = SalonStore()
    store.add_salon(_salon("x"))
    store.add_salon(_salon("y"))
    _subscribe(store, "y")
    store.add_subscription(Subscription(id="sub-y-2", salon_id="y", status=SubscriptionStatus.active))

    recs = get_recommendations("u1", None, 20, store=store, now=NOW)
    assert sorted(r.salon.id for r in recs) == ["x", "y"]


def test_limit_slices_result():
    store = SalonStore()
    for i in range(30):
        store.add_salon(_salon(f"s{i:02d}"))
    assert len(get_recommendations("u1", None, None, store=store, now=NOW)) == 20
    assert len(get_recommendations("u1", None, 5, store=store, now=NOW)) == 5


def test_empty_catalog_returns_empty_list():
    assert get_recommendations("u1", None, 20, store=SalonStore(), now=NOW) == []


def test_live_location_rewards_nearby_salons():
    store = SalonStore()
    store.add_salon(_salon("home", ["Foot massage"], 200, None, 13.75, 100.5))
    store.add_salon(_salon("near", lat=13.76, lon=100.5))
    store.add_salon(_salon("far", lat=14.5, lon=100.5))
    store.add_booking(Booking(
        id="bk1", user_id="u1", salon_id="home",
        status=BookingStatus.accepted, requested_at=datetime(2026, 9, 1),
    ))
    here = GeoPoint(latitude=13.75, longitude=100.5)
    recs = {r.salon.id: r.score for r in get_recommendations("u1", here, 20, store=store, now=NOW)}
    assert recs["near"] > recs["far"]


def test_out_of_range_catalog_coordinates_score_as_missing():
    store = SalonStore()
    store.add_salon(_salon("home", ["Foot massage"], 200, None, 13.75, 100.5))
    store.add_salon(_salon("broken", lat=95.0, lon=100.5))
    store.add_salon(_salon("unknown"))
    store.add_booking(Booking(
        id="bk1", user_id="u1", salon_id="home",
        status=BookingStatus.accepted, requested_at=datetime(2026, 9, 1),
    ))
    here = GeoPoint(latitude=13.75, longitude=100.5)
    recs = {r.salon.id: r.score for r in get_recommendations("u1", here, 20, store=store, now=NOW)}
    assert recs["broken"] == pytest.approx(recs["unknown"])


def test_out_of_range_history_coordinates_skip_location_pattern():
    store = SalonStore()
    store.add_salon(_salon("broken", ["Oil massage"], 150, 4.0, 95.0, 100.5))
    store.add_salon(_salon("near", lat=13.76, lon=100.5))
    store.add_booking(Booking(
        id="bk1", user_id="u1", salon_id="broken",
        status=BookingStatus.accepted, requested_at=datetime(2026, 9, 1),
    ))
    here = GeoPoint(latitude=13.75, longitude=100.5)
    recs = {r.salon.id: r for r in get_recommendations("u1", here, 20, store=store, now=NOW)}
    assert set(recs) == {"broken", "near"}
    # No usable visit coordinates, so proximity stays neutral:
    # untagged 20 + unpriced 0 + neutral location 12.5 + unrated 0
    assert recs["near"].score == pytest.approx(32.5)


# ── Failures ─────────────────────────────────────────────────────────────


class _BrokenCatalogStore(SalonStore):
    def get_all_salons(self):
        raise ConnectionError("catalog timed out")


class _BrokenHistoryStore(SalonStore):
    def find_accepted_bookings(self, user_id, limit):
        raise ConnectionError("bookings down")


def test_catalog_failure_raises_source_unavailable():
    with pytest.raises(RecommendationSourceUnavailable) as exc_info:
        get_recommendations("u1", None, 20, store=_BrokenCatalogStore(), now=NOW)
    assert exc_info.value.source == "salon catalog"
    assert isinstance(exc_info.value.__cause__, ConnectionError)


def test_history_failure_raises_source_unavailable():
    store = _BrokenHistoryStore()
    store.add_salon(_salon("a"))
    with pytest.raises(RecommendationSourceUnavailable) as exc_info:
        get_recommendations("u1", None, 20, store=store, now=NOW)
    assert exc_info.value.source == "booking history"


class _BrokenLedgerStore(SalonStore):
    def insert_match(self, salon_id, user_id, week_start, ceiling=None):
        raise ConnectionError("ledger write rejected")


def test_ledger_write_failure_raises_source_unavailable():
    store = _BrokenLedgerStore()
    store.add_salon(_salon("S", rating=4.0))
    _subscribe(store, "S")
    with pytest.raises(RecommendationSourceUnavailable) as exc_info:
        get_recommendations("u1", None, 20, store=store, now=NOW)
    assert exc_info.value.source == "match ledger"
    assert isinstance(exc_info.value.__cause__, ConnectionError)


# ── Custom filters / messages ────────────────────────────────────────────


def _ranked() -> list:
    store = SalonStore()
    store.add_salon(_salon("oil", ["Oil massage"], "150"))
    store.add_salon(_salon("foot", ["Foot massage"], 90))
    store.add_salon(_salon("noprice", ["Oil massage"], "ask"))
    store.add_salon(_salon("untagged", [], 120))
    return get_recommendations("u1", None, 20, store=store, now=NOW)


def test_filter_by_services():
    kept = filter_recommendations(_ranked(), preferred_services=["OIL"])
    assert sorted(r.salon.id for r in kept) == ["noprice", "oil"]


def test_filter_by_price_range():
    kept = filter_recommendations(_ranked(), price_range=PriceFilter(min=100, max=200))
    assert sorted(r.salon.id for r in kept) == ["oil", "untagged"]


def test_filter_price_bounds_are_optional():
    kept = filter_recommendations(_ranked(), price_range=PriceFilter(max=100))
    assert [r.salon.id for r in kept] == ["foot"]
    kept = filter_recommendations(_ranked(), price_range=PriceFilter())
    assert "noprice" not in [r.salon.id for r in kept]
    assert len(kept) == 3


def test_filter_without_criteria_keeps_everything():
    ranked = _ranked()
    assert filter_recommendations(ranked) == ranked


def test_build_message():
    store = _scenario_store()
    assert build_message([]) == NO_SALONS_MESSAGE
    assert build_message(get_recommendations("u1", None, 20, store=store, now=NOW)) is None
    assert build_message(get_recommendations("u9", None, 20, store=store, now=NOW)) == COLD_START_MESSAGE
