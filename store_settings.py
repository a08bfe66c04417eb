"""Singleton store configuration row"""
from typing import Any, Dict

import structlog

from database import db, now_iso
from schemas import StoreSettings

logger = structlog.get_logger(__name__)

COLLECTION = "store_settings"
SECRET_FIELDS = ("square_api_key",)


def load_settings() -> Dict[str, Any]:
    """Stored settings merged over defaults; defaults alone when nothing is stored"""
    settings = StoreSettings().model_dump()
    if db is None:
        return settings
    doc = db[COLLECTION].find_one({})
    if doc:
        for key in settings:
            if doc.get(key) is not None:
                settings[key] = doc[key]
    return settings


def public_settings() -> Dict[str, Any]:
    settings = load_settings()
    for key in SECRET_FIELDS:
        settings.pop(key, None)
    return settings


def save_settings(changes: Dict[str, Any]) -> Dict[str, Any]:
    """Apply a partial update and return the merged settings"""
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    merged = load_settings()
    merged.update({k: v for k, v in changes.items() if k in merged})
    # Re-validate the merged row so a partial update cannot store bad values
    validated = StoreSettings(**merged).model_dump()

    existing = db[COLLECTION].find_one({}, {"_id": 1})
    if existing:
        db[COLLECTION].update_one({"_id": existing["_id"]}, {"$set": {**validated, "updated_at": now_iso()}})
    else:
        logger.info("settings.created")
        db[COLLECTION].insert_one({**validated, "created_at": now_iso(), "updated_at": now_iso()})
    return validated
