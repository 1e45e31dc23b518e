from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from pymongo import ReturnDocument
import structlog

from auth import require_admin, require_super_admin
from database import collection, create_document, get_documents, to_object_id, utcnow
from errors import AppError, ok
from inventory import check_stock
from leads import build_contact_url, classify_lead, estimate_price, normalize_quantity
from schemas import (
    EMAIL_RE, BrickType, DistanceRange, Order, OrderStatus, QuantityUnit, Urgency, UsagePurpose, is_phone_valid,
)

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["orders"])


class OrderPayload(BaseModel):
    """Body of the public smart-order form."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="forbid",
    )

    brick_type: BrickType
    usage_purpose: UsagePurpose
    quantity_unit: QuantityUnit
    quantity_value: float = Field(..., gt=0, strict=True, allow_inf_nan=False)
    delivery_area: str = Field(..., min_length=2, max_length=200)
    landmark: Optional[str] = Field(None, max_length=200)
    distance_range: DistanceRange
    required_delivery_date: datetime
    urgency: Urgency
    name: str = Field(..., min_length=2, max_length=150)
    phone_number: str
    email: str = Field(..., max_length=120)
    whatsapp_number: Optional[str] = None
    is_whatsapp_same: bool = False

    @field_validator("phone_number")
    @classmethod
    def check_phone(cls, value: str) -> str:
        if not is_phone_valid(value):
            raise ValueError("Valid phone number is required")
        return value

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        if not EMAIL_RE.match(value):
            raise ValueError("Valid email is required")
        return value.lower()

    @field_validator("required_delivery_date", mode="before")
    @classmethod
    def parse_delivery_date(cls, value):
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
            except ValueError:
                raise ValueError("Valid required delivery date is required")
        return value

    @field_validator("required_delivery_date")
    @classmethod
    def to_naive_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    @field_validator("landmark")
    @classmethod
    def blank_landmark(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    @model_validator(mode="after")
    def resolve_whatsapp(self):
        whatsapp = self.phone_number if self.is_whatsapp_same else self.whatsapp_number
        if not whatsapp or not is_phone_valid(whatsapp):
            raise ValueError("Valid WhatsApp number is required")
        self.whatsapp_number = whatsapp
        return self


def present_order(doc: dict) -> dict:
    """Order as older integrations expect it: the canonical fields plus legacy aliases."""
    data = dict(doc)
    data.update(
        full_name=doc.get("name"),
        customer_name=doc.get("name"),
        mobile_number=doc.get("phone_number"),
        phone=doc.get("phone_number"),
        address=doc.get("delivery_area"),
        product=doc.get("brick_type"),
    )
    return data


def submit_order(payload: OrderPayload) -> dict:
    quantity_bricks, quantity_trolleys = normalize_quantity(payload.quantity_unit, payload.quantity_value)
    lead_priority = classify_lead(payload.brick_type, quantity_bricks, payload.urgency)
    stock = check_stock(quantity_bricks)
    estimate = estimate_price(payload.brick_type, quantity_bricks)
    contact_url = build_contact_url(
        customer_name=payload.name,
        phone_number=payload.phone_number,
        brick_type=payload.brick_type,
        quantity_bricks=quantity_bricks,
        delivery_area=payload.delivery_area,
        lead_priority=lead_priority,
    )

    order = Order(
        name=payload.name,
        phone_number=payload.phone_number,
        email=payload.email,
        whatsapp_number=payload.whatsapp_number,
        is_whatsapp_same=payload.is_whatsapp_same,
        brick_type=payload.brick_type,
        usage_purpose=payload.usage_purpose,
        quantity_unit=payload.quantity_unit,
        quantity_bricks=quantity_bricks,
        quantity_trolleys=quantity_trolleys,
        quantity=quantity_bricks,
        delivery_area=payload.delivery_area,
        landmark=payload.landmark,
        distance_range=payload.distance_range,
        required_delivery_date=payload.required_delivery_date,
        urgency=payload.urgency,
        lead_priority=lead_priority,
        status="pending",
        whatsapp_message_url=contact_url,
        total_price=estimate["min"],
    )
    order_id = create_document("order", order)
    doc = collection("order").find_one({"_id": to_object_id(order_id)})
    logger.info(
        "order_received",
        order_id=order_id,
        brick_type=payload.brick_type,
        quantity_bricks=quantity_bricks,
        lead_priority=lead_priority,
        stock_limited=stock["limited"],
    )

    return {
        "order": present_order(doc),
        "lead_priority": lead_priority,
        "stock": stock,
        "estimate": estimate,
        "admin_contact_url": contact_url,
        "admin_whats_app_url": contact_url,
    }


@router.post("/orders", status_code=201)
def create_order(payload: OrderPayload):
    return ok(submit_order(payload), "Order submitted successfully")


# Orders admin
@router.get("/admin/orders")
def admin_list_orders(limit: int = Query(100), _: dict = Depends(require_admin)):
    limit = min(max(limit, 1), 500)
    orders = [present_order(o) for o in get_documents("order", limit=limit, sort=[("created_at", -1)])]
    return ok(orders, count=len(orders))


class OrderUpdate(BaseModel):
    status: Optional[OrderStatus] = None
    notes: Optional[str] = Field(None, max_length=500)


@router.patch("/admin/orders/{order_id}")
def admin_update_order(order_id: str, payload: OrderUpdate, _: dict = Depends(require_admin)):
    oid = to_object_id(order_id, "Valid order ID is required")
    changes = {"updated_at": utcnow()}
    if payload.status:
        changes["status"] = payload.status
    if payload.notes is not None:
        changes["notes"] = payload.notes.strip()
    updated = collection("order").find_one_and_update(
        {"_id": oid}, {"$set": changes}, return_document=ReturnDocument.AFTER
    )
    if not updated:
        raise AppError("Order not found", 404)
    return ok(present_order(updated), "Order updated successfully")


@router.delete("/admin/orders/{order_id}")
def admin_delete_order(order_id: str, _: dict = Depends(require_super_admin)):
    oid = to_object_id(order_id, "Valid order ID is required")
    deleted = collection("order").find_one_and_delete({"_id": oid})
    if not deleted:
        raise AppError("Order not found", 404)
    return ok(present_order(deleted), "Order deleted successfully")
