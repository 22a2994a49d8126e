import logging
from datetime import datetime
from typing import Any, Dict, List

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Request
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

from config import Settings
from errors import NotFoundError, ValidationError

log = logging.getLogger(__name__)


def connect(settings: Settings) -> Database:
    client = MongoClient(settings.database_url, tz_aware=False)
    db = client[settings.database_name]
    log.info("Using database %s", settings.database_name)
    return db


def get_db(request: Request) -> Database:
    return request.app.state.db


def parse_object_id(value: Any, label: str = "object") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid {label} id: {value}")


def create_document(db: Database, collection_name: str, data: BaseModel | Dict[str, Any]) -> str:
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = datetime.utcnow()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(db: Database, collection_name: str, filter_dict: Dict[str, Any] | None = None,
                  limit: int | None = None, sort_newest: bool = True) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {})
    if sort_newest:
        cursor = cursor.sort("created_at", -1)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def get_or_404(db: Database, collection_name: str, doc_id: Any, label: str) -> Dict[str, Any]:
    doc = db[collection_name].find_one({"_id": parse_object_id(doc_id, label.lower())})
    if not doc:
        raise NotFoundError(f"{label} not found")
    return doc


def serialize_doc(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: serialize_doc(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize_doc(v) for v in value]
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value
