from __future__ import annotations

from collections import Counter
from typing import Any


def compute_analytics(events: list[dict[str, Any]]) -> dict[str, Any]:
    requests = [e for e in events if e["type"] == "recommendation"]
    total = len(requests)

    # Average response time
    times = [r["response_time_ms"] for r in requests if "response_time_ms" in r]
    avg_time = round(sum(times) / len(times), 1) if times else 0.0

    cold_starts = sum(1 for r in requests if r.get("cold_start"))
    custom = sum(1 for r in requests if r.get("custom"))
    impressions = sum(r.get("boosted_returned", 0) for r in requests)

    # Most returned salons
    salon_counter: Counter[str] = Counter()
    for r in requests:
        for salon_id in r.get("salon_ids", []) or []:
            salon_counter[salon_id] += 1
    top_salons = [{"salon_id": s, "count": c} for s, c in salon_counter.most_common(10)]

    return {
        "total_requests": total,
        "avg_response_time_ms": avg_time,
        "cold_start_rate": round(cold_starts / total * 100, 1) if total else 0.0,
        "custom_request_rate": round(custom / total * 100, 1) if total else 0.0,
        "subscription_impressions": impressions,
        "top_salons": top_salons,
    }
