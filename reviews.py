import re
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel
from pymongo import ReturnDocument
from starlette.concurrency import run_in_threadpool

from auth import require_admin
from database import collection, create_document, get_documents, to_object_id, utcnow
from errors import AppError, ok
from ratelimit import limit_by_ip
from schemas import Review
from streams import SSE_HEADERS, Broadcaster, format_event, get_broadcaster

router = APIRouter(tags=["reviews"])

# older documents only carry is_approved
APPROVED_FILTER = {"$or": [{"status": "approved"}, {"status": {"$exists": False}, "is_approved": True}]}
REVIEW_FIELDS = {"rating": 1, "comment": 1, "name": 1, "location": 1, "status": 1, "is_approved": 1, "created_at": 1}

TAG_RE = re.compile(r"<[^>]*>")
SPACE_RE = re.compile(r"\s+")


def sanitize_text(value, max_length: int) -> str:
    if not isinstance(value, str):
        return ""
    return SPACE_RE.sub(" ", TAG_RE.sub(" ", value)).strip()[:max_length]


def with_approval_flag(changes: dict) -> dict:
    """Every write that sets `status` also writes the matching legacy `is_approved` flag."""
    if "status" in changes:
        changes = dict(changes, is_approved=changes["status"] == "approved")
    return changes


def map_review(doc: dict) -> dict:
    return {
        "_id": doc["_id"],
        "rating": doc.get("rating"),
        "comment": doc.get("comment"),
        "name": doc.get("name"),
        "location": doc.get("location"),
        "status": doc.get("status") or ("approved" if doc.get("is_approved") else "pending"),
        "created_at": doc.get("created_at"),
    }


def review_summary() -> dict:
    ratings = [float(r.get("rating") or 0) for r in collection("review").find(APPROVED_FILTER, {"rating": 1})]
    if not ratings:
        return {"average_rating": 0, "total_approved_reviews": 0}
    return {
        "average_rating": round(sum(ratings) / len(ratings), 1),
        "total_approved_reviews": len(ratings),
    }


def broadcast_review_update(stream: Broadcaster, event_type: str = "review_updated") -> None:
    if not len(stream):
        return
    stream.publish(
        {
            "eventType": event_type,
            "summary": ok(review_summary())["data"],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
        event_type,
    )


class ReviewPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    rating: float
    comment: Optional[str] = None
    name: Optional[str] = None
    location: Optional[str] = None

    @field_validator("rating", mode="before")
    @classmethod
    def check_rating(cls, value):
        try:
            rating = float(value)
        except (TypeError, ValueError):
            raise ValueError("Rating must be between 1 and 5")
        if isinstance(value, bool) or not 1 <= rating <= 5 or not rating.is_integer():
            raise ValueError("Rating must be between 1 and 5")
        return rating


def create_review(payload: ReviewPayload) -> dict:
    comment = sanitize_text(payload.comment, 300)
    if not comment:
        raise AppError("Review text is required", 400)
    review = Review(
        rating=int(payload.rating),
        comment=comment,
        name=sanitize_text(payload.name, 80) or None,
        location=sanitize_text(payload.location, 120) or None,
        status="pending",
        is_approved=False,
    )
    review_id = create_document("review", review)
    return collection("review").find_one({"_id": to_object_id(review_id)})


def set_review_status(review_id: str, status: str) -> dict:
    oid = to_object_id(review_id, "Valid review ID is required")
    review = collection("review").find_one_and_update(
        {"_id": oid},
        {"$set": with_approval_flag({"status": status, "updated_at": utcnow()})},
        return_document=ReturnDocument.AFTER,
    )
    if not review:
        raise AppError("Review not found", 404)
    return review


# ----- Public -----

@router.post("/reviews", status_code=201, dependencies=[Depends(limit_by_ip("review_limiter"))])
def submit_review(payload: ReviewPayload):
    review = create_review(payload)
    return ok(map_review(review), "Review submitted successfully and is pending approval")


@router.get("/reviews")
def approved_reviews():
    reviews = get_documents("review", APPROVED_FILTER, sort=[("created_at", -1)], projection=REVIEW_FIELDS)
    return ok([map_review(r) for r in reviews], count=len(reviews))


@router.get("/reviews/summary")
def summary():
    return ok(review_summary())


@router.get("/reviews/stream")
async def review_stream(request: Request, stream: Broadcaster = Depends(get_broadcaster("reviews"))):
    current = await run_in_threadpool(review_summary)
    first = format_event(
        {"summary": ok(current)["data"], "timestamp": datetime.now(timezone.utc).isoformat()},
        "connected",
    )
    return StreamingResponse(
        stream.stream(first, request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


# ----- Admin -----

@router.get("/admin/reviews")
def admin_list_reviews(_: dict = Depends(require_admin)):
    reviews = get_documents("review", sort=[("created_at", -1)], projection=REVIEW_FIELDS)
    return ok([map_review(r) for r in reviews], count=len(reviews))


@router.put("/admin/reviews/{review_id}/approve")
def approve_review(review_id: str, stream: Broadcaster = Depends(get_broadcaster("reviews")),
                   _: dict = Depends(require_admin)):
    review = set_review_status(review_id, "approved")
    broadcast_review_update(stream)
    return ok(map_review(review), "Review approved")


@router.put("/admin/reviews/{review_id}/disapprove")
def disapprove_review(review_id: str, stream: Broadcaster = Depends(get_broadcaster("reviews")),
                      _: dict = Depends(require_admin)):
    review = set_review_status(review_id, "pending")
    broadcast_review_update(stream)
    return ok(map_review(review), "Review moved to pending")


@router.delete("/admin/reviews/{review_id}")
def delete_review(review_id: str, stream: Broadcaster = Depends(get_broadcaster("reviews")),
                  _: dict = Depends(require_admin)):
    oid = to_object_id(review_id, "Valid review ID is required")
    result = collection("review").delete_one({"_id": oid})
    if result.deleted_count == 0:
        raise AppError("Review not found", 404)
    broadcast_review_update(stream, "review_deleted")
    return ok(message="Review deleted")


# ----- Legacy /ratings endpoints -----

class LegacyRatingPayload(ReviewPayload):
    phone_number: Optional[str] = None


@router.get("/ratings/summary")
def legacy_rating_summary():
    return summary()


@router.post("/ratings/submit", status_code=201, dependencies=[Depends(limit_by_ip("review_limiter"))])
def legacy_submit_rating(payload: LegacyRatingPayload):
    if payload.comment is None and payload.phone_number:
        payload = payload.model_copy(update={"name": payload.phone_number, "comment": "Local customer feedback"})
    return submit_review(payload)


@router.get("/ratings/admin/pending")
def legacy_admin_reviews(user: dict = Depends(require_admin)):
    return admin_list_reviews(user)


@router.get("/ratings/admin/approved")
def legacy_admin_approved(_: dict = Depends(require_admin)):
    return approved_reviews()


@router.patch("/ratings/admin/{review_id}/approve")
def legacy_approve(review_id: str, stream: Broadcaster = Depends(get_broadcaster("reviews")),
                   user: dict = Depends(require_admin)):
    return approve_review(review_id, stream, user)


@router.delete("/ratings/admin/{review_id}")
def legacy_delete(review_id: str, stream: Broadcaster = Depends(get_broadcaster("reviews")),
                  user: dict = Depends(require_admin)):
    return delete_review(review_id, stream, user)
