"""
Database helpers

Connects to MongoDB using DATABASE_URL / DATABASE_NAME. When either is missing
`db` stays None and routes report the database as unavailable.
"""
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel
from pymongo import MongoClient

_client: Optional[MongoClient] = None
db = None

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

if DATABASE_URL and DATABASE_NAME:
    _client = MongoClient(DATABASE_URL)
    db = _client[DATABASE_NAME]


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document stamped with created_at/updated_at and return its _id as str"""
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")

    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)

    data_dict.setdefault("created_at", now_iso())
    data_dict["updated_at"] = now_iso()

    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")

    cursor = db[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def upsert_document(collection_name: str, key: Dict[str, Any], data: Dict[str, Any]) -> None:
    """Insert or update the single document matching `key`"""
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")

    fields = dict(data)
    fields.pop("_id", None)
    fields.pop("created_at", None)
    fields["updated_at"] = now_iso()
    db[collection_name].update_one(
        key,
        {"$set": fields, "$setOnInsert": {"created_at": now_iso()}},
        upsert=True,
    )
