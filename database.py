"""
MongoDB access

A single MongoClient is created per process. pymongo connects lazily, so
importing this module never touches the network.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from config import DATABASE_NAME, DATABASE_URL

logger = logging.getLogger(__name__)

client = MongoClient(DATABASE_URL)
db = client[DATABASE_NAME]

SUBMISSIONS = "submissions"
ADMINS = "admins"
NOTIFICATIONS = "notifications"


def get_db() -> Database:
    """FastAPI dependency returning the process-wide database handle."""
    return db


def ensure_indexes(database: Database) -> None:
    submissions = database[SUBMISSIONS]
    submissions.create_index([("submittedAt", DESCENDING)])
    submissions.create_index([("personalInfo.email", ASCENDING)])
    submissions.create_index([("status", ASCENDING)])

    admins = database[ADMINS]
    admins.create_index([("username", ASCENDING)], unique=True)
    admins.create_index([("email", ASCENDING)], unique=True)
    logger.info("Indexes ensured on %s", database.name)


def to_object_id(value: str) -> Optional[ObjectId]:
    # ObjectId(None) would mint a fresh id
    if not isinstance(value, str):
        return None
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def serialize(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Replace the Mongo ``_id`` with a string ``id``."""
    if doc is None:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    return doc


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(by_alias=True)
    else:
        data_dict = dict(data)

    now = datetime.now(timezone.utc)
    data_dict.setdefault("createdAt", now)
    data_dict["updatedAt"] = now

    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)

