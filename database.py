"""
MongoDB access for HouseHunt

`db` is the shared database handle. Collections:
- property  -> property listings with their media
- shortlist -> shareable, token-addressed property selections
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

import settings

client = MongoClient(settings.DATABASE_URL, tz_aware=True)
db = client[settings.DATABASE_NAME]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]],
                    database: Optional[Database] = None) -> str:
    """Insert a document, stamping created_at/updated_at. Returns the new id as a string."""
    target = db if database is None else database
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = utcnow()
    doc["created_at"] = now
    doc["updated_at"] = now
    result = target[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  database: Optional[Database] = None) -> List[Dict[str, Any]]:
    target = db if database is None else database
    return list(target[collection_name].find(filter_dict or {}))
