"""
Database access

Holds the process-wide MongoClient and the small helpers every module uses to
write documents. Collection names are the lowercase model name.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from settings import get_settings

logger = logging.getLogger(__name__)

_database_settings = get_settings().database

client = MongoClient(_database_settings.url)
db = client[_database_settings.name]

IDENTITY_COLLECTIONS = ("customer", "driver", "admin")

# Newest first, with _id breaking ties between bookings created in the same millisecond
NEWEST_FIRST = [("createdAt", DESCENDING), ("_id", DESCENDING)]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if not value or not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


def session_options(session) -> dict:
    return {"session": session} if session is not None else {}


def create_document(collection_name: str, data, database: Database = None, session=None) -> str:
    """Insert a model or dict, stamping createdAt/updatedAt, and return the new id."""
    target = database if database is not None else db
    if isinstance(data, BaseModel):
        doc = data.model_dump(by_alias=True, exclude_none=True)
    else:
        doc = dict(data)
    now = utcnow()
    doc.setdefault("createdAt", now)
    doc["updatedAt"] = now
    result = target[collection_name].insert_one(doc, **session_options(session))
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: dict = None, limit: int = None,
                  database: Database = None, sort=None, skip: int = 0):
    target = database if database is not None else db
    cursor = target[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes(database: Database = None) -> None:
    target = database if database is not None else db
    for name in IDENTITY_COLLECTIONS:
        target[name].create_index([("email", ASCENDING)], unique=True)
    target["booking"].create_index([("status", ASCENDING), ("createdAt", DESCENDING)])
    target["booking"].create_index([("customerId", ASCENDING), ("createdAt", DESCENDING)])
    target["booking"].create_index([("driverId", ASCENDING)])
    logger.info("Indexes ensured on %s", target.name)
