import re
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pymongo.errors import DuplicateKeyError

from activity import log_activity
from auth import actor_fields, require_admin
from database import collection, create_document, get_documents, to_object_id, utcnow
from errors import AppError, ok
from schemas import GalleryItem, Product, QualityGrade
from streams import SSE_HEADERS, Broadcaster, format_event, get_broadcaster

router = APIRouter(tags=["catalog"])

PUBLIC_PRODUCT_FIELDS = {
    "name": 1, "slug": 1, "description": 1, "image_url": 1, "type": 1, "price_per_1000": 1,
    "price_per_trolley": 1, "usage_tags": 1, "quality_grade": 1, "availability": 1,
}


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


CAMEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


def _find_product(product_id: str) -> dict:
    product = collection("product").find_one({"_id": to_object_id(product_id, "Valid product ID is required")})
    if not product:
        raise AppError("Product not found", 404)
    return product


def _ensure_slug_free(slug: str) -> None:
    if collection("product").find_one({"slug": slug}):
        raise AppError("Product with this slug already exists", 400)


def _save_product(product_id, changes: dict) -> dict:
    changes["updated_at"] = utcnow()
    try:
        collection("product").update_one({"_id": product_id}, {"$set": changes})
    except DuplicateKeyError:
        raise AppError("Product with this slug already exists", 400)
    return collection("product").find_one({"_id": product_id})


def _price_changed(before: dict, after: dict) -> bool:
    return (before.get("price_per_1000") != after.get("price_per_1000")
            or before.get("price_per_trolley") != after.get("price_per_trolley"))


def _log_price_change(before: dict, after: dict, user: dict) -> None:
    log_activity(
        "price_change",
        "product",
        "Price updated",
        actor_fields(user),
        entity_id=str(after["_id"]),
        metadata={
            "product_name": after.get("name"),
            "previous": {"price_per_1000": before.get("price_per_1000"), "price_per_trolley": before.get("price_per_trolley")},
            "next": {"price_per_1000": after.get("price_per_1000"), "price_per_trolley": after.get("price_per_trolley")},
        },
    )


def _notify_products(request: Request, action: str, product: dict) -> None:
    stream: Broadcaster = request.app.state.products_stream
    stream.publish({"type": "product_updated", "action": action, "productId": str(product["_id"])}, "product_updated")


# ----- Products (public) -----

@router.get("/products")
def list_products():
    products = get_documents(
        "product",
        {"is_active": True, "is_archived": {"$ne": True}},
        sort=[("created_at", -1)],
        projection=PUBLIC_PRODUCT_FIELDS,
    )
    return ok(products, count=len(products))


@router.get("/products/stream")
async def product_stream(request: Request, stream: Broadcaster = Depends(get_broadcaster("products"))):
    return StreamingResponse(
        stream.stream(format_event({"type": "connected"}), request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


# ----- Products (admin) -----

class ProductCreate(BaseModel):
    model_config = CAMEL_CONFIG

    name: str = Field(..., min_length=2, max_length=120)
    slug: Optional[str] = Field(None, max_length=150)
    description: Optional[str] = Field(None, max_length=1000)
    image_url: Optional[str] = None
    type: str = Field(..., min_length=2, max_length=80)
    price_per_1000: float = Field(..., ge=0)
    price_per_trolley: float = Field(..., ge=0)
    usage_tags: List[str] = Field(default_factory=list)
    quality_grade: QualityGrade = "First"
    is_active: bool = True


class ProductUpdate(BaseModel):
    model_config = CAMEL_CONFIG

    name: Optional[str] = Field(None, min_length=2, max_length=120)
    slug: Optional[str] = Field(None, max_length=150)
    description: Optional[str] = Field(None, max_length=1000)
    image_url: Optional[str] = None
    type: Optional[str] = Field(None, min_length=2, max_length=80)
    price_per_1000: Optional[float] = Field(None, ge=0)
    price_per_trolley: Optional[float] = Field(None, ge=0)
    usage_tags: Optional[List[str]] = None
    quality_grade: Optional[QualityGrade] = None
    is_active: Optional[bool] = None
    remove_image: bool = False


class PricingUpdate(BaseModel):
    model_config = CAMEL_CONFIG

    price_per_1000: float = Field(..., ge=0, strict=True)
    price_per_trolley: float = Field(..., ge=0, strict=True)
    availability: Optional[bool] = Field(None, strict=True)


@router.get("/admin/products")
def admin_list_products(include_archived: bool = Query(False, alias="includeArchived"), _: dict = Depends(require_admin)):
    query = {} if include_archived else {"is_archived": {"$ne": True}}
    products = get_documents("product", query, sort=[("created_at", -1)])
    return ok(products, count=len(products))


@router.get("/admin/products/{product_id}")
def admin_get_product(product_id: str, _: dict = Depends(require_admin)):
    return ok(_find_product(product_id))


@router.post("/admin/products", status_code=201)
def admin_create_product(payload: ProductCreate, request: Request, _: dict = Depends(require_admin)):
    slug = slugify(payload.slug or payload.name)
    if not slug:
        raise AppError("Product slug could not be derived from the name", 400)
    _ensure_slug_free(slug)
    product = Product(
        name=payload.name,
        slug=slug,
        description=payload.description,
        image_url=payload.image_url,
        type=payload.type,
        price_per_1000=payload.price_per_1000,
        price_per_trolley=payload.price_per_trolley,
        usage_tags=payload.usage_tags,
        quality_grade=payload.quality_grade,
        is_active=payload.is_active,
        availability=payload.is_active,
    )
    try:
        product_id = create_document("product", product)
    except DuplicateKeyError:
        raise AppError("Product with this slug already exists", 400)
    doc = _find_product(product_id)
    _notify_products(request, "created", doc)
    return ok(doc, "Product created successfully")


@router.put("/admin/products/{product_id}")
def admin_update_product(product_id: str, payload: ProductUpdate, request: Request, user: dict = Depends(require_admin)):
    product = _find_product(product_id)
    if product.get("is_archived"):
        raise AppError("Archived product cannot be edited. Restore it first.", 400)

    changes = payload.model_dump(exclude_unset=True, exclude={"remove_image", "is_active"})
    if "slug" in changes:
        changes["slug"] = slugify(changes["slug"] or "")
        if not changes["slug"]:
            raise AppError("Product slug cannot be empty", 400)
        if changes["slug"] != product.get("slug"):
            _ensure_slug_free(changes["slug"])
    if payload.remove_image and "image_url" not in changes:
        changes["image_url"] = None
    if payload.is_active is not None:
        changes["is_active"] = payload.is_active
        changes["availability"] = payload.is_active
    # explicit nulls for required fields mean "leave unchanged"
    changes = {k: v for k, v in changes.items() if v is not None or k in ("description", "image_url")}

    updated = _save_product(product["_id"], changes)
    if _price_changed(product, updated):
        _log_price_change(product, updated, user)
    _notify_products(request, "updated", updated)
    return ok(updated, "Product updated successfully")


@router.put("/admin/products/{product_id}/pricing")
def admin_update_pricing(product_id: str, payload: PricingUpdate, request: Request, user: dict = Depends(require_admin)):
    product = _find_product(product_id)
    if product.get("is_archived"):
        raise AppError("Archived product cannot be edited. Restore it first.", 400)
    changes = {"price_per_1000": payload.price_per_1000, "price_per_trolley": payload.price_per_trolley}
    if payload.availability is not None:
        changes["availability"] = payload.availability
        changes["is_active"] = payload.availability
    updated = _save_product(product["_id"], changes)
    if _price_changed(product, updated):
        _log_price_change(product, updated, user)
    _notify_products(request, "updated", updated)
    return ok(updated, "Product pricing updated successfully")


@router.patch("/admin/products/{product_id}/toggle-active")
def admin_toggle_product(product_id: str, request: Request, _: dict = Depends(require_admin)):
    product = _find_product(product_id)
    if product.get("is_archived"):
        raise AppError("Archived product cannot be activated. Restore it first.", 400)
    is_active = not product.get("is_active", False)
    updated = _save_product(product["_id"], {"is_active": is_active, "availability": is_active})
    _notify_products(request, "updated", updated)
    return ok(updated, f"Product {'activated' if is_active else 'deactivated'} successfully")


@router.delete("/admin/products/{product_id}")
def admin_archive_product(product_id: str, request: Request, user: dict = Depends(require_admin)):
    product = _find_product(product_id)
    if product.get("is_archived"):
        raise AppError("Product is already archived", 400)
    updated = _save_product(product["_id"], {
        "is_archived": True,
        "archived_at": utcnow(),
        "archived_by": user.get("id"),
        "is_active": False,
        "availability": False,
    })
    log_activity("product_archived", "product", "Product archived", actor_fields(user),
                 entity_id=str(product["_id"]), metadata={"product_name": product.get("name")})
    _notify_products(request, "archived", updated)
    return ok(updated, "Product archived successfully")


@router.patch("/admin/products/{product_id}/restore")
def admin_restore_product(product_id: str, request: Request, user: dict = Depends(require_admin)):
    product = _find_product(product_id)
    if not product.get("is_archived"):
        raise AppError("Product is not archived", 400)
    collection("product").update_one(
        {"_id": product["_id"]},
        {"$set": {"is_archived": False, "updated_at": utcnow()}, "$unset": {"archived_at": "", "archived_by": ""}},
    )
    restored = collection("product").find_one({"_id": product["_id"]})
    log_activity("product_restored", "product", "Product restored", actor_fields(user),
                 entity_id=str(product["_id"]), metadata={"product_name": product.get("name")})
    _notify_products(request, "restored", restored)
    return ok(restored, "Product restored successfully")


# ----- Gallery -----

class GalleryCreate(BaseModel):
    model_config = CAMEL_CONFIG

    type: Literal["image", "video"]
    title: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=300)
    media_url: str = Field(..., min_length=1)
    public_id: str = Field(..., min_length=1)


class GalleryUpdate(BaseModel):
    model_config = CAMEL_CONFIG

    title: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=300)


def _notify_gallery(request: Request, action: str, item_id: str) -> None:
    stream: Broadcaster = request.app.state.gallery_stream
    stream.publish({"type": "gallery_updated", "action": action, "itemId": item_id}, "gallery_updated")


@router.get("/gallery")
def list_gallery():
    items = get_documents("gallery", sort=[("created_at", -1)])
    return ok(items, count=len(items))


@router.get("/gallery/stream")
async def gallery_stream(request: Request, stream: Broadcaster = Depends(get_broadcaster("gallery"))):
    return StreamingResponse(
        stream.stream(format_event({"type": "connected"}), request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/admin/gallery")
def admin_list_gallery(_: dict = Depends(require_admin)):
    items = get_documents("gallery", sort=[("created_at", -1)])
    return ok(items, count=len(items))


@router.post("/admin/gallery", status_code=201)
def admin_create_gallery_item(payload: GalleryCreate, request: Request, _: dict = Depends(require_admin)):
    item_id = create_document("gallery", GalleryItem(**payload.model_dump()))
    _notify_gallery(request, "added", item_id)
    return ok(collection("gallery").find_one({"_id": to_object_id(item_id)}), "Media added successfully")


@router.put("/admin/gallery/{item_id}")
def admin_update_gallery_item(item_id: str, payload: GalleryUpdate, request: Request, _: dict = Depends(require_admin)):
    oid = to_object_id(item_id, "Valid gallery item ID is required")
    changes = payload.model_dump(exclude_unset=True)
    changes["updated_at"] = utcnow()
    result = collection("gallery").update_one({"_id": oid}, {"$set": changes})
    if result.matched_count == 0:
        raise AppError("Gallery item not found", 404)
    _notify_gallery(request, "updated", item_id)
    return ok(collection("gallery").find_one({"_id": oid}), "Gallery item updated successfully")


@router.delete("/admin/gallery/{item_id}")
def admin_delete_gallery_item(item_id: str, request: Request, _: dict = Depends(require_admin)):
    oid = to_object_id(item_id, "Valid gallery item ID is required")
    result = collection("gallery").delete_one({"_id": oid})
    if result.deleted_count == 0:
        raise AppError("Gallery item not found", 404)
    _notify_gallery(request, "deleted", item_id)
    return ok(message="Gallery item deleted successfully")
