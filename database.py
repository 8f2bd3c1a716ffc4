"""
MongoDB access for the Pharmacy POS API.

Each collection name is the lowercase snake_case of its schema class in
schemas.py (Bill -> "bill", InventoryMovement -> "inventory_movement").
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from config import DATABASE_NAME, DATABASE_URL

_client: Optional[MongoClient] = None


def get_client() -> MongoClient:
    global _client
    if _client is None:
        _client = MongoClient(DATABASE_URL)
    return _client


def get_db() -> Database:
    """FastAPI dependency; tests override it with an in-memory database."""
    return get_client()[DATABASE_NAME]


def ensure_indexes(db: Database) -> None:
    db["bill"].create_index([("bill_number", ASCENDING)], unique=True)
    db["bill"].create_index([("created_at", DESCENDING)])
    db["bill_item"].create_index([("bill_id", ASCENDING)])
    db["customer"].create_index([("mobile", ASCENDING)], unique=True)
    db["inventory_movement"].create_index([("product_id", ASCENDING)])
    db["inventory_movement"].create_index([("reference", ASCENDING)])


# -----------------------------
# Document helpers
# -----------------------------

def oid(obj: Optional[str]) -> Optional[ObjectId]:
    if obj is None or not ObjectId.is_valid(obj):
        return None
    return ObjectId(obj)


def to_str_id(doc: Dict[str, Any]) -> Dict[str, Any]:
    if not doc:
        return doc
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    # normalize ObjectId refs to string
    for k, v in list(d.items()):
        if isinstance(v, ObjectId):
            d[k] = str(v)
    return d


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    if not doc.get("created_at"):
        doc["created_at"] = datetime.now(timezone.utc)
    res = db[collection_name].insert_one(doc)
    return str(res.inserted_id)


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return [to_str_id(d) for d in cursor]
