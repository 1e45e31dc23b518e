from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator
from pymongo import ReturnDocument

from auth import require_admin, require_super_admin
from database import collection, create_document, get_documents, to_object_id, utcnow
from errors import AppError, ok
from schemas import Enquiry, EnquiryStatus, is_phone_valid

router = APIRouter(tags=["enquiries"])


class EnquiryPayload(BaseModel):
    model_config = {"str_strip_whitespace": True}

    name: str = Field(..., min_length=2, max_length=80)
    phone: str
    message: str = Field(..., min_length=10, max_length=1000)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, value: str) -> str:
        if not is_phone_valid(value):
            raise ValueError("Phone number is invalid")
        return value


@router.post("/enquiries", status_code=201)
def submit_enquiry(payload: EnquiryPayload):
    enquiry_id = create_document("enquiry", Enquiry(**payload.model_dump()))
    return ok(collection("enquiry").find_one({"_id": to_object_id(enquiry_id)}), "Enquiry submitted successfully")


@router.get("/admin/enquiries")
def admin_list_enquiries(limit: int = Query(100), _: dict = Depends(require_admin)):
    enquiries = get_documents("enquiry", limit=min(max(limit, 1), 500), sort=[("created_at", -1)])
    return ok(enquiries, count=len(enquiries))


class EnquiryUpdate(BaseModel):
    status: Optional[EnquiryStatus] = None
    notes: Optional[str] = Field(None, max_length=500)


@router.put("/admin/enquiries/{enquiry_id}")
def admin_update_enquiry(enquiry_id: str, payload: EnquiryUpdate, _: dict = Depends(require_admin)):
    oid = to_object_id(enquiry_id, "Valid enquiry ID is required")
    changes = {"updated_at": utcnow()}
    if payload.status:
        changes["status"] = payload.status
    if payload.notes is not None:
        changes["notes"] = payload.notes.strip()
    updated = collection("enquiry").find_one_and_update(
        {"_id": oid}, {"$set": changes}, return_document=ReturnDocument.AFTER
    )
    if not updated:
        raise AppError("Enquiry not found", 404)
    return ok(updated, "Enquiry updated successfully")


@router.delete("/admin/enquiries/{enquiry_id}")
def admin_delete_enquiry(enquiry_id: str, _: dict = Depends(require_super_admin)):
    oid = to_object_id(enquiry_id, "Valid enquiry ID is required")
    deleted = collection("enquiry").find_one_and_delete({"_id": oid})
    if not deleted:
        raise AppError("Enquiry not found or already deleted", 404)
    return ok(deleted, "Enquiry deleted successfully")
