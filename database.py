"""
MongoDB access

A single client is created lazily from DATABASE_URL. Routes receive the
database handle through the `get_db` dependency so it can be overridden.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

import config

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None


def get_db() -> Optional[Database]:
    """Database handle, or None when DATABASE_URL is not set."""
    global _client
    if not config.DATABASE_URL:
        return None
    if _client is None:
        logger.info("Connecting to MongoDB database %s", config.DATABASE_NAME)
        _client = MongoClient(config.DATABASE_URL)
    return _client[config.DATABASE_NAME]


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: str) -> Optional[ObjectId]:
    """Parse an id string, returning None for anything that is not an ObjectId."""
    if isinstance(value, ObjectId):
        return value
    if not ObjectId.is_valid(value or ""):
        return None
    return ObjectId(value)


def serialize_doc(doc: Dict[str, Any]) -> Dict[str, Any]:
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.get("_id")
    if isinstance(_id, ObjectId):
        doc["id"] = str(_id)
        del doc["_id"]
    # Convert ObjectId and datetimes in top-level fields
    for k, v in list(doc.items()):
        if isinstance(v, ObjectId):
            doc[k] = str(v)
        elif isinstance(v, datetime):
            doc[k] = v.isoformat()
    return doc


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    doc.setdefault("created_at", now_utc())
    doc.setdefault("updated_at", doc["created_at"])
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(db: Database, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  limit: Optional[int] = None, sort: Optional[List] = None) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
