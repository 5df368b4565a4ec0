from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from .analytics.aggregator import compute_analytics
from .analytics.store import get_events
from .recommendations.config import DEFAULT_RECOMMENDATION_CONFIG
from .recommendations.data_store import SalonStore, get_store
from .recommendations.errors import RecommendationSourceUnavailable
from .recommendations.models import (
    SERVICE_TYPES,
    CustomRecommendationRequest,
    GeoPoint,
    RecommendationResponse,
)
from .recommendations.retrieval import (
    build_message,
    get_custom_recommendations,
    get_recommendations,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=DEFAULT_RECOMMENDATION_CONFIG.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
    )
    yield


app = FastAPI(title="Salon Recommendation API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RecommendationSourceUnavailable)
async def source_unavailable_handler(
    _request: Request, exc: RecommendationSourceUnavailable,
) -> JSONResponse:
    logger.error("Recommendation source failed: %s (%s)", exc.source, exc.message)
    return JSONResponse(
        status_code=503,
        content={"success": False, "detail": f"{exc.source} unavailable"},
    )


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/metadata")
def metadata(store: SalonStore = Depends(get_store)) -> dict:
    salons = store.get_all_salons()
    cities = sorted({s.location.city for s in salons if s.location and s.location.city})
    return {
        "service_types": list(SERVICE_TYPES),
        "cities": cities,
        "salon_count": len(salons),
    }


# ── Recommendation endpoints ─────────────────────────────────────────────


@app.get("/recommendations/{user_id}", response_model=RecommendationResponse)
def recommendations(
    user_id: str,
    limit: int = Query(default=DEFAULT_RECOMMENDATION_CONFIG.default_limit, ge=1, le=100),
    latitude: float | None = Query(default=None, ge=-90.0, le=90.0),
    longitude: float | None = Query(default=None, ge=-180.0, le=180.0),
    store: SalonStore = Depends(get_store),
) -> RecommendationResponse:
    # Live location only counts when both coordinates are given
    location = None
    if latitude is not None and longitude is not None:
        location = GeoPoint(latitude=latitude, longitude=longitude)

    items = get_recommendations(user_id, location, limit, store=store)
    return RecommendationResponse(
        count=len(items),
        recommendations=items,
        message=build_message(items),
    )


@app.post("/recommendations/{user_id}/custom", response_model=RecommendationResponse)
def custom_recommendations(
    user_id: str,
    body: CustomRecommendationRequest,
    store: SalonStore = Depends(get_store),
) -> RecommendationResponse:
    items = get_custom_recommendations(user_id, body, store=store)
    return RecommendationResponse(count=len(items), recommendations=items)


# ── Analytics ────────────────────────────────────────────────────────────


@app.get("/analytics")
def analytics() -> dict:
    return compute_analytics(get_events())
