from __future__ import annotations

import math
import re
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

SERVICE_TYPES: tuple[str, ...] = (
    "Neck/Shoulder",
    "Oil massage",
    "Nuad Thai",
    "Hot compress",
    "Aromatherapy",
    "Foot massage",
    "others",
)

_LEADING_NUMBER = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")


def parse_price(value: Any) -> float | None:
    """
    Normalize a price indicator that may arrive as a number or a string.

    Strings are read by their leading numeric prefix ("150 THB" -> 150.0).
    Anything that does not yield a finite number is treated as absent.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        match = _LEADING_NUMBER.match(str(value))
        if not match:
            return None
        number = float(match.group(1))
    if not math.isfinite(number):
        return None
    return number


# ── Catalog / history records ───────────────────────────────────────────


class GeoPoint(BaseModel):
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)


class SalonLocation(BaseModel):
    street_address: str | None = None
    city: str | None = None
    province: str | None = None
    country: str | None = "Thailand"
    latitude: float | None = None
    longitude: float | None = None

    def coordinates(self) -> GeoPoint | None:
        """Return the salon's coordinate, or ``None`` if it is incomplete or out of range."""
        if self.latitude is None or self.longitude is None:
            return None
        if not (math.isfinite(self.latitude) and math.isfinite(self.longitude)):
            return None
        if abs(self.latitude) > 90.0 or abs(self.longitude) > 180.0:
            return None
        return GeoPoint(latitude=self.latitude, longitude=self.longitude)


class Salon(BaseModel):
    id: str
    name: str
    owner_id: str
    image_url: str | None = None
    location: SalonLocation | None = None
    price: float | None = None
    service_types: list[str] = Field(default_factory=list)
    rating: float | None = None
    total_reviews: int = 0

    @field_validator("price", mode="before")
    @classmethod
    def _normalize_price(cls, value: Any) -> float | None:
        return parse_price(value)

    @field_validator("rating", mode="before")
    @classmethod
    def _normalize_rating(cls, value: Any) -> float | None:
        return parse_price(value)

    @field_validator("total_reviews", mode="before")
    @classmethod
    def _default_reviews(cls, value: Any) -> Any:
        return 0 if value is None else value

    def coordinates(self) -> GeoPoint | None:
        return self.location.coordinates() if self.location else None


class BookingStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"
    cancelled = "cancelled"
    no_show = "no_show"
    expired = "expired"


class Booking(BaseModel):
    id: str
    user_id: str
    salon_id: str | None = None
    status: BookingStatus = BookingStatus.pending
    requested_at: datetime


class HistoricalBooking(BaseModel):
    salon: Salon | None = None
    requested_at: datetime


class SubscriptionStatus(str, Enum):
    active = "Active"
    inactive = "Inactive"
    cancelled = "Cancelled"
    expired = "Expired"


class PlanType(str, Enum):
    free = "Free"
    basic = "Basic"
    standard = "Standard"
    premium = "Premium"


class Subscription(BaseModel):
    id: str
    salon_id: str | None = None
    plan_type: PlanType = PlanType.basic
    status: SubscriptionStatus


class ActiveSubscription(BaseModel):
    subscription: Subscription
    salon: Salon


class MatchRecord(BaseModel):
    salon_id: str
    user_id: str
    week_start: datetime
    created_at: datetime


# ── Derived preference profile ──────────────────────────────────────────


class PriceBand(BaseModel):
    min: float
    max: float
    average: float


class LocationPattern(BaseModel):
    center: GeoPoint
    max_distance_km: float = 20.0


class UserPreferenceProfile(BaseModel):
    preferred_services: list[str] = Field(default_factory=list)
    price_band: PriceBand | None = None
    location_pattern: LocationPattern | None = None
    frequent_salons: list[str] = Field(default_factory=list)

    @property
    def is_cold_start(self) -> bool:
        return not self.preferred_services and not self.frequent_salons


class BoostedSalon(BaseModel):
    salon: Salon
    subscription: Subscription
    weekly_match_count: int
    remaining_matches: int


# ── API models ──────────────────────────────────────────────────────────


class SalonOut(BaseModel):
    id: str
    name: str
    image_url: str | None = None
    location: SalonLocation | None = None
    price: float | None = None
    service_types: list[str]
    rating: float = 0.0
    total_reviews: int = 0
    is_subscribed: bool = False
    owner_id: str


class SubscriptionSnapshot(BaseModel):
    id: str
    plan_type: PlanType
    weekly_match_count: int
    remaining_matches: int


class RecommendationItem(BaseModel):
    salon: SalonOut
    score: float
    reasons: list[str]
    subscription: SubscriptionSnapshot | None = None


class RecommendationResponse(BaseModel):
    success: bool = True
    count: int
    recommendations: list[RecommendationItem]
    message: str | None = None


class PriceFilter(BaseModel):
    min: float | None = Field(default=None, ge=0.0)
    max: float | None = Field(default=None, ge=0.0)


class CustomRecommendationRequest(BaseModel):
    limit: int = Field(default=20, ge=1, le=100)
    latitude: float | None = Field(default=None, ge=-90.0, le=90.0)
    longitude: float | None = Field(default=None, ge=-180.0, le=180.0)
    preferred_services: list[str] = Field(default_factory=list)
    price_range: PriceFilter | None = None
