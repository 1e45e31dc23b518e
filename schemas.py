"""
Database Schemas for Hanuman Bhatta

Each Pydantic model represents a MongoDB collection. Collection name is the lowercase of the class name
(ActivityLog -> "activitylog", GalleryItem is stored in "gallery").
"""
import re
from typing import Optional, List, Literal, Dict, Any
from pydantic import BaseModel, Field, EmailStr
from datetime import datetime

BrickType = Literal["Avval", "Second", "Rora"]
UsagePurpose = Literal["House", "Boundary", "Filling"]
QuantityUnit = Literal["bricks", "trolleys"]
DistanceRange = Literal["0-10km", "10-25km", "25+km"]
Urgency = Literal["immediate", "flexible"]
LeadPriority = Literal["hot", "warm", "normal"]
OrderStatus = Literal["pending", "processing", "confirmed", "in_progress", "dispatched", "delivered", "cancelled"]
EnquiryStatus = Literal["pending", "contacted", "resolved", "cancelled"]
ReviewStatus = Literal["pending", "approved"]
QualityGrade = Literal["First", "Second", "Rora"]
Role = Literal["super_admin", "admin"]
MetricType = Literal["whatsapp_click", "call_click", "order_click", "calculator_use"]
ActivityAction = Literal["price_change", "inventory_update", "product_archived", "product_restored"]

ORDER_STATUSES = ("pending", "processing", "confirmed", "in_progress", "dispatched", "delivered", "cancelled")
METRIC_TYPES = ("whatsapp_click", "call_click", "order_click", "calculator_use")

PHONE_RE = re.compile(r"^[0-9+\-\s()]{10,20}$")
EMAIL_RE = re.compile(r"^\S+@\S+\.\S+$")


def is_phone_valid(value: str) -> bool:
    return bool(PHONE_RE.match(value))


# Admin users
class User(BaseModel):
    name: str = Field(..., min_length=2, max_length=120)
    email: EmailStr
    password_hash: str = Field(..., min_length=10)
    role: Role = "admin"
    is_active: bool = True


# Customer purchase requests
class Order(BaseModel):
    name: str = Field(..., min_length=2, max_length=150)
    phone_number: str = Field(..., max_length=20)
    email: str = Field(..., max_length=120)
    whatsapp_number: str = Field(..., max_length=20)
    is_whatsapp_same: bool = True
    brick_type: BrickType
    usage_purpose: UsagePurpose
    quantity_unit: QuantityUnit = "bricks"
    quantity_bricks: int = Field(..., ge=1)
    quantity_trolleys: float = Field(..., gt=0)
    quantity: int = Field(..., ge=1)
    delivery_area: str = Field(..., max_length=200)
    landmark: Optional[str] = Field(None, max_length=200)
    distance_range: DistanceRange
    required_delivery_date: datetime
    urgency: Urgency
    lead_priority: LeadPriority = "normal"
    status: OrderStatus = "pending"
    notes: Optional[str] = Field(None, max_length=500)
    whatsapp_message_url: Optional[str] = None
    total_price: Optional[float] = Field(None, ge=0)


# Stock snapshot; the newest document is the current stock
class Inventory(BaseModel):
    total_bricks: int = Field(..., ge=0)
    available_trolleys: int = Field(..., ge=0)


# Catalog entries
class Product(BaseModel):
    name: str = Field(..., min_length=2, max_length=120)
    slug: str = Field(..., max_length=150)
    description: Optional[str] = Field(None, max_length=1000)
    image_url: Optional[str] = None
    type: str = Field(..., max_length=80)
    price_per_1000: float = Field(..., ge=0)
    price_per_trolley: float = Field(..., ge=0)
    usage_tags: List[str] = Field(default_factory=list)
    quality_grade: QualityGrade = "First"
    is_active: bool = True
    availability: bool = True  # mirrors is_active for older clients
    is_archived: bool = False
    archived_at: Optional[datetime] = None
    archived_by: Optional[str] = None


# Contact requests
class Enquiry(BaseModel):
    name: str = Field(..., min_length=2, max_length=80)
    phone: str = Field(..., max_length=20)
    message: str = Field(..., min_length=10, max_length=1000)
    status: EnquiryStatus = "pending"
    notes: Optional[str] = Field(None, max_length=500)


# Customer feedback
class Review(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., max_length=300)
    name: Optional[str] = Field(None, max_length=80)
    location: Optional[str] = Field(None, max_length=120)
    status: ReviewStatus = "pending"
    is_approved: bool = False


# Audit trail, append only
class ActivityLog(BaseModel):
    action_type: ActivityAction
    entity_type: Literal["product", "inventory"]
    entity_id: Optional[str] = None
    message: str = Field(..., max_length=240)
    actor_id: Optional[str] = None
    actor_name: str = Field(..., max_length=120)
    actor_role: Literal["super_admin", "admin", "system"] = "system"
    metadata: Optional[Dict[str, Any]] = None


# Interaction counters, one document per metric
class Analytics(BaseModel):
    metric_type: MetricType
    count: int = Field(0, ge=0)
    last_updated: Optional[datetime] = None


# Hosted media shown on the site
class GalleryItem(BaseModel):
    type: Literal["image", "video"]
    title: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=300)
    media_url: str
    public_id: str
