"""
MongoDB handle and small document helpers shared by every route module.

`db` stays None when DATABASE_URL/DATABASE_NAME are not configured; startup
refuses to serve in that case, and `collection()` answers 500 if a request
somehow gets through.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient

import settings
from errors import AppError

client = None
db = None

if settings.DATABASE_URL and settings.DATABASE_NAME:
    client = MongoClient(settings.DATABASE_URL, serverSelectionTimeoutMS=5000)
    db = client[settings.DATABASE_NAME]


def utcnow() -> datetime:
    # pymongo hands back naive UTC datetimes; store the same shape we read
    return datetime.now(timezone.utc).replace(tzinfo=None)


def collection(name: str):
    if db is None:
        raise AppError("Database not configured", 500)
    return db[name]


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(exclude_none=True)
    else:
        data_dict = data.copy()
    now = utcnow()
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now
    result = collection(collection_name).insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[Sequence[Tuple[str, int]]] = None,
    projection: Optional[Dict[str, int]] = None,
) -> List[dict]:
    cursor = collection(collection_name).find(filter_dict or {}, projection)
    if sort:
        cursor = cursor.sort(list(sort))
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def to_object_id(value: str, message: str = "Invalid id") -> ObjectId:
    if not value or not ObjectId.is_valid(value):
        raise AppError(message, 400)
    return ObjectId(value)


def latest_inventory() -> Optional[dict]:
    """Newest inventory snapshot; older snapshots are kept for history."""
    return collection("inventory").find_one({}, sort=[("created_at", -1)])
