"""
Database helpers

Thin layer over pymongo shared by the services. The connection is opened
lazily on first use so that importing the app never touches the network.
"""
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

from config import settings

PRODUCTS = "products"
ORDERS = "orders"

_client: Optional[MongoClient] = None
db: Optional[Database] = None
_lock = threading.Lock()


def get_db() -> Database:
    global _client, db
    if db is None:
        with _lock:
            if db is None:
                _client = MongoClient(settings.database_url)
                db = _client[settings.database_name]
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_document(database: Database, collection: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    if isinstance(data, BaseModel):
        data = data.model_dump()
    doc = dict(data)
    now = utcnow()
    doc.setdefault("created_at", now)
    doc.setdefault("updated_at", now)
    result = database[collection].insert_one(doc)
    return str(result.inserted_id)


def get_documents(
    database: Database,
    collection: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[List[Tuple[str, int]]] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    cursor = database[collection].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(int(limit))
    return list(cursor)


def to_str_id(doc: dict) -> dict:
    if not doc:
        return doc
    d = dict(doc)
    if d.get("_id") is not None:
        d["id"] = str(d.pop("_id"))
    return d


def parse_object_id(id_str: Any) -> Optional[ObjectId]:
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(str(id_str))
    except (InvalidId, TypeError):
        return None


def parse_object_ids(ids: Iterable[Any]) -> List[ObjectId]:
    # distinct, first-seen order; malformed ids can never match a record
    seen = []
    for raw in ids:
        oid = parse_object_id(raw)
        if oid is not None and oid not in seen:
            seen.append(oid)
    return seen
