"""
Startup chores: indexes, the super admin account, a first inventory snapshot
and the default catalog. All of them are idempotent.
"""
import structlog
from pymongo import ASCENDING, DESCENDING

import settings
from auth import hash_password
from catalog import slugify
from database import collection, create_document
from schemas import Inventory, Product, User

logger = structlog.get_logger(__name__)

DEFAULT_PRODUCTS = [
    {
        "name": "First Class Bricks",
        "type": "Avval",
        "price_per_1000": 4500,
        "price_per_trolley": 13500,
        "usage_tags": ["House", "Boundary"],
        "quality_grade": "First",
        "description": "Well burnt red bricks with uniform shape, for load bearing walls.",
    },
    {
        "name": "Second Class Bricks",
        "type": "Second Class",
        "price_per_1000": 3500,
        "price_per_trolley": 10500,
        "usage_tags": ["Boundary"],
        "quality_grade": "Second",
        "description": "Sturdy bricks with minor surface marks, for boundary and partition walls.",
    },
    {
        "name": "Brick Bats",
        "type": "Rora",
        "price_per_1000": 2500,
        "price_per_trolley": 7500,
        "usage_tags": ["Filling"],
        "quality_grade": "Rora",
        "description": "Broken bricks for filling and foundation bedding.",
    },
]


def ensure_indexes() -> None:
    collection("product").create_index("slug", unique=True)
    collection("product").create_index([("is_active", ASCENDING), ("is_archived", ASCENDING)])
    collection("user").create_index("email", unique=True)
    collection("analytics").create_index("metric_type", unique=True)
    collection("inventory").create_index([("created_at", DESCENDING)])
    collection("order").create_index([("status", ASCENDING), ("created_at", DESCENDING)])
    collection("enquiry").create_index([("created_at", DESCENDING)])
    collection("review").create_index([("status", ASCENDING), ("created_at", DESCENDING)])
    collection("activitylog").create_index([("created_at", DESCENDING)])


def ensure_admin_user() -> bool:
    email = settings.ADMIN_EMAIL.lower().strip()
    if collection("user").find_one({"email": email}):
        return False
    admin = User(name=settings.ADMIN_NAME, email=email, password_hash=hash_password(settings.ADMIN_PASSWORD),
                 role="super_admin")
    create_document("user", admin)
    logger.info("admin_seeded", email=email)
    return True


def ensure_inventory() -> bool:
    if collection("inventory").find_one({}):
        return False
    create_document("inventory", Inventory(total_bricks=0, available_trolleys=0))
    logger.info("inventory_seeded")
    return True


def seed_products() -> int:
    if collection("product").count_documents({}) > 0:
        return 0
    for data in DEFAULT_PRODUCTS:
        create_document("product", Product(slug=slugify(data["name"]), **data))
    logger.info("products_seeded", count=len(DEFAULT_PRODUCTS))
    return len(DEFAULT_PRODUCTS)


def verify_startup() -> None:
    if not collection("user").find_one({"role": {"$in": ["super_admin", "admin"]}, "is_active": True}):
        raise RuntimeError("No active admin account exists")
    if not collection("inventory").find_one({}):
        raise RuntimeError("No inventory snapshot exists")


def run_startup_tasks() -> None:
    ensure_indexes()
    ensure_admin_user()
    ensure_inventory()
    seed_products()
    verify_startup()
