"""
Database helpers

MongoDB access shared by every service. Each entity lives in its own
collection named after it in lowercase ("product", "order", ...). Foreign
keys are stored as string ids; `_id` stays an ObjectId.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from dotenv import load_dotenv
from pymongo import ASCENDING, MongoClient

from errors import APIError

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

db = None
if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def get_db():
    if db is None:
        raise APIError(500, "Database not configured")
    return db


def now() -> datetime:
    """Current time as naive UTC, the form pymongo hands datetimes back in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def oid(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise APIError(400, "Invalid id")


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    d.pop("password_hash", None)
    return d


def create_document(collection_name: str, data: Any) -> str:
    """Insert a document, stamping created_at/updated_at. Returns the new id."""
    if hasattr(data, "model_dump"):
        data = data.model_dump()
    doc = dict(data)
    stamp = now()
    doc.setdefault("created_at", stamp)
    doc["updated_at"] = stamp
    result = get_db()[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    cursor = get_db()[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def find_by_id(collection_name: str, id_str: str) -> Optional[Dict[str, Any]]:
    return get_db()[collection_name].find_one({"_id": oid(id_str)})


def update_document(collection_name: str, id_str: str, changes: Dict[str, Any]) -> None:
    changes = dict(changes)
    changes["updated_at"] = now()
    get_db()[collection_name].update_one({"_id": oid(id_str)}, {"$set": changes})


def ensure_indexes() -> None:
    database = get_db()
    for name, field in (
        ("user", "email"),
        ("vendor", "email"),
        ("category", "name"),
        ("deal", "name"),
        ("banner", "name"),
        ("promo", "code"),
        ("cart", "userId"),
        ("wishlist", "userId"),
    ):
        database[name].create_index([(field, ASCENDING)], unique=True)
    database["product_variant"].create_index([("productId", ASCENDING), ("sku", ASCENDING)], unique=True)
    database["review"].create_index([("userId", ASCENDING), ("productId", ASCENDING)], unique=True)
    database["revoked_token"].create_index([("expires_at", ASCENDING)])
    logger.info("Database indexes ensured")
