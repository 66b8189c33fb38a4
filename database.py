"""
MongoDB connection and document helpers.

`db` is None when DATABASE_URL is not configured; callers fall back to the
in-memory stores in that case.
"""

import os
import logging
from typing import Optional

from bson import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

import config

logger = logging.getLogger(__name__)

client: Optional[MongoClient] = None
db: Optional[Database] = None

if config.DATABASE_URL:
    client = MongoClient(config.DATABASE_URL, serverSelectionTimeoutMS=5000, tz_aware=True)
    db = client[config.DATABASE_NAME]


def object_id(value) -> Optional[ObjectId]:
    """Parse a string id, returning None for anything that isn't a valid ObjectId."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def canonical_id(value):
    """Lower-case hex form of a valid ObjectId string; anything else is returned unchanged."""
    oid = object_id(value)
    return str(oid) if oid is not None else value


def to_document(model: BaseModel) -> dict:
    """Dump a schema model for storage, moving `id` to Mongo's `_id`."""
    data = model.model_dump(exclude={"id"})
    oid = object_id(getattr(model, "id", None))
    if oid is not None:
        data["_id"] = oid
    return data


def from_document(doc: dict) -> dict:
    """Inverse of to_document: convert `_id` to a string `id`."""
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    return doc


def database_status() -> dict:
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
            response["database_name"] = db.name
            response["connection_status"] = "Connected"
            try:
                collections = db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️  Connected but Error: {str(e)[:80]}"
        else:
            response["database"] = "⚠️  Not configured, using in-memory stores"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response
