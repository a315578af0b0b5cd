"""Business logic for the gateway.

Functions take the store (see ``db.ConnectionManager``) as their first argument
and return JSON-ready response dicts. Store errors propagate unchanged.
"""

import json
import logging
from datetime import datetime, timezone

from bson import ObjectId, json_util

from .validation import DocumentValidator

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _stamp(validator: DocumentValidator, collection: str, document: dict,
           metadata: dict | None, now: datetime) -> dict:
    """Merge metadata into the document and add createdAt."""
    record = validator.validate(collection, document)
    record.update(metadata or {})
    record["createdAt"] = now
    return record


def _serialize_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _serialize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize_value(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    # Decimal128, Binary, Regex, Timestamp, ... as relaxed Extended JSON
    return json.loads(json_util.dumps(value, json_options=json_util.RELAXED_JSON_OPTIONS))


def _serialize_document(document: dict) -> dict:
    """Convert a stored document to a JSON-safe dict."""
    return {k: _serialize_value(v) for k, v in document.items()}


# ── Writes ────────────────────────────────────────────────────────────


def insert_document(store, validator: DocumentValidator, collection: str,
                    document: dict, metadata: dict | None = None) -> dict:
    record = _stamp(validator, collection, document, metadata, _now())
    inserted_id = store.insert_one(collection, record)
    logger.info("Inserted 1 document into %s", collection)
    return {"success": True, "insertedId": inserted_id, "collection": collection}


def insert_documents(store, validator: DocumentValidator, collection: str,
                     documents: list[dict], metadata: dict | None = None) -> dict:
    """Insert a batch; every element gets the same createdAt."""
    now = _now()
    records = [_stamp(validator, collection, doc, metadata, now) for doc in documents]
    inserted_count = store.insert_many(collection, records)
    logger.info("Inserted %d documents into %s", inserted_count, collection)
    return {"success": True, "insertedCount": inserted_count, "collection": collection}


def update_document(store, collection: str, filter: dict, update: dict) -> dict:
    """Set the given fields on the first matching document and stamp updatedAt."""
    fields = {**update, "updatedAt": _now()}
    matched, modified = store.update_one(collection, filter, {"$set": fields})
    logger.info("Updated %d document(s) in %s", modified, collection)
    return {
        "success": True,
        "matchedCount": matched,
        "modifiedCount": modified,
        "collection": collection,
    }


def delete_document(store, collection: str, filter: dict) -> dict:
    deleted = store.delete_one(collection, filter)
    logger.info("Deleted %d document(s) from %s", deleted, collection)
    return {"success": True, "deletedCount": deleted, "collection": collection}


# ── Reads ─────────────────────────────────────────────────────────────


def query_documents(store, collection: str, filter: dict | None = None, limit: int = 10) -> dict:
    docs = store.find_many(collection, filter or {}, limit)
    logger.info("Query on %s returned %d document(s)", collection, len(docs))
    return {
        "success": True,
        "count": len(docs),
        "documents": [_serialize_document(d) for d in docs],
        "collection": collection,
    }
