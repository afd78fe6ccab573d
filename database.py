"""
Database connection for the portfolio service.

A single MongoDB database holds the portfolio collection. When DATABASE_URL
or DATABASE_NAME is not set, `db` is None and callers must handle it.
"""
from typing import Optional

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from config import DATABASE_NAME, DATABASE_URL

client: Optional[MongoClient] = None
db: Optional[Database] = None

if DATABASE_URL and DATABASE_NAME:
    # MongoClient connects lazily, so importing never blocks on the network
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def get_collection(name: str) -> Collection:
    if db is None:
        raise RuntimeError("Database not available")
    return db[name]
