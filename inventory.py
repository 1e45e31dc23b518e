from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from pymongo import ReturnDocument

from activity import log_activity
from auth import actor_fields, require_admin
from database import collection, latest_inventory, utcnow
from errors import ok

router = APIRouter(tags=["inventory"])


def current_stock() -> dict:
    inventory = latest_inventory()
    if not inventory:
        return {"total_bricks": 0, "available_trolleys": 0, "updated_at": None}
    return {
        "total_bricks": inventory.get("total_bricks", 0),
        "available_trolleys": inventory.get("available_trolleys", 0),
        "updated_at": inventory.get("updated_at") or inventory.get("created_at"),
    }


def check_stock(quantity_bricks: int) -> dict:
    """Advisory only: a limited flag never blocks an order."""
    available = current_stock()["total_bricks"]
    return {
        "available_bricks": available,
        "requested_bricks": quantity_bricks,
        "limited": quantity_bricks > available,
    }


@router.get("/inventory")
def live_inventory():
    return ok(current_stock())


class InventoryUpdate(BaseModel):
    total_bricks: int = Field(..., ge=0, strict=True, alias="totalBricks")
    available_trolleys: int = Field(..., ge=0, strict=True, alias="availableTrolleys")

    model_config = {"populate_by_name": True}


@router.put("/admin/inventory")
def update_inventory(payload: InventoryUpdate, user: dict = Depends(require_admin)):
    previous = latest_inventory()
    now = utcnow()
    updated = collection("inventory").find_one_and_update(
        {},
        {
            "$set": {
                "total_bricks": payload.total_bricks,
                "available_trolleys": payload.available_trolleys,
                "updated_at": now,
            },
            "$setOnInsert": {"created_at": now},
        },
        sort=[("created_at", -1)],
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )

    previous_values = None
    if previous:
        previous_values = {
            "total_bricks": previous.get("total_bricks"),
            "available_trolleys": previous.get("available_trolleys"),
        }
    next_values = {"total_bricks": payload.total_bricks, "available_trolleys": payload.available_trolleys}
    if previous_values != next_values:
        log_activity(
            "inventory_update",
            "inventory",
            "Inventory updated",
            actor_fields(user),
            entity_id=str(updated["_id"]),
            metadata={"previous": previous_values, "next": next_values},
        )
    return ok(updated, "Inventory updated successfully")
