"""
Database helpers

MongoDB access shared by the API. `db` is None when DATABASE_URL / DATABASE_NAME
are not configured; endpoints check for that and answer 500.
"""
import logging
import os
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

db = None

if DATABASE_URL and DATABASE_NAME:
    try:
        _client = MongoClient(DATABASE_URL, serverSelectionTimeoutMS=5000)
        db = _client[DATABASE_NAME]
    except Exception as e:
        logger.error("Could not connect to MongoDB: %s", e)
        db = None


def create_document(collection_name: str, data: Union[BaseModel, dict], session=None) -> str:
    """Insert a document with created_at/updated_at stamps and return its id as a string."""
    if db is None:
        raise RuntimeError("Database not available")
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = datetime.now(timezone.utc)
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    result = db[collection_name].insert_one(data_dict, session=session)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None,
                  sort: Optional[list] = None) -> List[Dict[str, Any]]:
    if db is None:
        raise RuntimeError("Database not available")
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


@contextmanager
def transaction():
    """
    Run a block of writes in one multi-document transaction.

    Yields the pymongo session to pass to each write. Commits when the block
    finishes, aborts and re-raises on any exception. No retry.
    """
    session = db.client.start_session()
    session.start_transaction()
    try:
        yield session
    except Exception:
        logger.warning("Aborting transaction")
        session.abort_transaction()
        raise
    else:
        session.commit_transaction()
    finally:
        session.end_session()


def ensure_indexes():
    """Create the indexes the API relies on, including the single-open-timer constraint."""
    if db is None:
        return
    db["client"].create_index([("user_id", ASCENDING), ("name", ASCENDING)], unique=True)
    db["task"].create_index([("user_id", ASCENDING), ("status", ASCENDING)])
    db["task"].create_index([("client_id", ASCENDING), ("status", ASCENDING)])
    db["timer"].create_index([("user_id", ASCENDING), ("start_time", DESCENDING)])
    db["timer"].create_index(
        [("user_id", ASCENDING)],
        unique=True,
        partialFilterExpression={"is_running": True},
        name="one_open_timer_per_user",
    )
    db["profitability"].create_index([("user_id", ASCENDING), ("client_id", ASCENDING)], unique=True)
    db["user"].create_index([("api_token", ASCENDING)], unique=True, sparse=True)
