"""MongoDB access helpers.

Each collection is named after the lowercase model name (``MenuItem`` ->
``"menuitem"``). Route handlers receive the database through the
:func:`get_db` dependency so tests can substitute an in-memory store.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.database import Database

from config import get_settings
from errors import ValidationFailed

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None


def get_client() -> MongoClient:
    global _client
    if _client is None:
        settings = get_settings()
        _client = MongoClient(settings.database_url, serverSelectionTimeoutMS=5000)
    return _client


def get_db() -> Database:
    """FastAPI dependency returning the application database."""
    return get_client()[get_settings().database_name]


def now() -> datetime:
    """Restaurant wall-clock time used for every stored timestamp."""
    return datetime.now().replace(microsecond=0)


def object_id(value: Any, what: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise ValidationFailed(f"Invalid {what}")


def is_object_id(value: Any) -> bool:
    return ObjectId.is_valid(str(value))


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Make a Mongo document JSON friendly.

    ``_id`` becomes a string and is mirrored to ``id`` unless the document
    already carries its own public ``id`` (menu items, reservations).
    Nested ObjectIds inside dicts and lists are converted as well.
    """
    if not doc:
        return doc
    out: Dict[str, Any] = {}
    for k, v in doc.items():
        out[k] = _convert(v)
    if "_id" in out and "id" not in out:
        out["id"] = out["_id"]
    return out


def _convert(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: _convert(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_convert(v) for v in value]
    return value


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert ``data`` with audit timestamps and return the new id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(by_alias=True)
    else:
        data_dict = dict(data)
    stamp = now()
    data_dict.setdefault("createdAt", stamp)
    data_dict["updatedAt"] = stamp
    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[List[tuple]] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def next_sequence(db: Database, name: str) -> int:
    """Atomically increment and return the named counter."""
    doc = db["counter"].find_one_and_update(
        {"_id": name},
        {"$inc": {"value": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return int(doc["value"])


def ensure_indexes(db: Database) -> None:
    db["menuitem"].create_index([("id", ASCENDING)], unique=True)
    db["table"].create_index([("number", ASCENDING)], unique=True)
    db["session"].create_index([("sessionId", ASCENDING)], unique=True)
    db["session"].create_index([("tableNumber", ASCENDING), ("active", ASCENDING)])
    db["reservation"].create_index([("id", ASCENDING)], unique=True, sparse=True)
    db["order"].create_index([("tableNumber", ASCENDING), ("paymentStatus", ASCENDING)])
    db["order"].create_index([("idempotencyKey", ASCENDING)], unique=True, sparse=True)
    logger.info("database indexes ensured")
