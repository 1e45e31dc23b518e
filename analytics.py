import asyncio
from collections import Counter
from datetime import timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from pymongo import ReturnDocument
from starlette.concurrency import run_in_threadpool

import settings
from auth import require_admin
from database import collection, utcnow
from errors import ok
from ratelimit import limit_by_ip
from schemas import METRIC_TYPES

router = APIRouter(tags=["analytics"])

IST = timezone(timedelta(hours=5, minutes=30))
CONFIRMED_STATUSES = ["confirmed", "dispatched", "delivered"]
NOT_CANCELLED = {"status": {"$ne": "cancelled"}}


class TrackPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    metric_type: Optional[str] = Field(None, validate_default=True)

    @field_validator("metric_type")
    @classmethod
    def check_metric(cls, value):
        if value not in METRIC_TYPES:
            raise ValueError("Invalid metric type")
        return value


def increment_metric(metric_type: str) -> int:
    doc = collection("analytics").find_one_and_update(
        {"metric_type": metric_type},
        {"$inc": {"count": 1}, "$set": {"last_updated": utcnow()}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return doc.get("count", 0) if doc else 0


@router.post("/analytics/track", dependencies=[Depends(limit_by_ip("analytics_limiter"))])
def track(payload: TrackPayload):
    count = increment_metric(payload.metric_type)
    return ok({"metric_type": payload.metric_type, "count": count})


# ----- Admin reads -----

def interaction_counts() -> dict:
    docs = collection("analytics").find({"metric_type": {"$in": list(METRIC_TYPES)}}, {"metric_type": 1, "count": 1})
    counts = {d["metric_type"]: max(0, d.get("count") or 0) for d in docs}
    return {
        "whatsapp_clicks": counts.get("whatsapp_click", 0),
        "call_clicks": counts.get("call_click", 0),
        "order_clicks": counts.get("order_click", 0),
        "calculator_uses": counts.get("calculator_use", 0),
    }


def most_ordered_product() -> dict:
    top = list(collection("order").aggregate([
        {"$match": NOT_CANCELLED},
        {"$group": {"_id": "$brick_type", "total_quantity": {"$sum": "$quantity"}, "order_count": {"$sum": 1}}},
        {"$sort": {"total_quantity": -1}},
        {"$limit": 1},
    ]))
    if not top:
        return {"name": "N/A", "total_bricks": 0, "total_orders": 0}
    return {"name": top[0]["_id"], "total_bricks": top[0]["total_quantity"], "total_orders": top[0]["order_count"]}


def average_order_bricks() -> float:
    result = list(collection("order").aggregate([
        {"$match": NOT_CANCELLED},
        {"$group": {"_id": None, "avg_bricks": {"$avg": "$quantity"}}},
    ]))
    return (result[0].get("avg_bricks") or 0) if result else 0


def time_bucket(hour: int) -> str:
    if 5 <= hour < 12:
        return "Morning"
    if 12 <= hour < 17:
        return "Afternoon"
    return "Evening"


def peak_enquiry_time() -> str:
    buckets = Counter()
    for enquiry in collection("enquiry").find({}, {"created_at": 1}):
        created = enquiry.get("created_at")
        if created is None:
            continue
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        buckets[time_bucket(created.astimezone(IST).hour)] += 1
    if not buckets:
        return "N/A"
    return buckets.most_common(1)[0][0]


def count_enquiries() -> int:
    return collection("enquiry").count_documents({})


def count_confirmed_orders() -> int:
    return collection("order").count_documents({"status": {"$in": CONFIRMED_STATUSES}})


@router.get("/admin/analytics")
async def admin_analytics(_: dict = Depends(require_admin)):
    interactions, top, avg_bricks, total_enquiries, confirmed, peak = await asyncio.gather(
        run_in_threadpool(interaction_counts),
        run_in_threadpool(most_ordered_product),
        run_in_threadpool(average_order_bricks),
        run_in_threadpool(count_enquiries),
        run_in_threadpool(count_confirmed_orders),
        run_in_threadpool(peak_enquiry_time),
    )
    conversion = confirmed / total_enquiries * 100 if total_enquiries > 0 else 0
    return ok({
        "interactions": interactions,
        "business": {
            "most_ordered_product": top,
            "average_order_size": {
                "bricks": round(avg_bricks, 2),
                "trolleys": round(avg_bricks / settings.BRICKS_PER_TROLLEY, 2),
            },
            "peak_enquiry_time": peak,
            "conversion_rate": round(conversion, 2),
            "totals": {"enquiries": total_enquiries, "confirmed_orders": confirmed},
        },
    })
