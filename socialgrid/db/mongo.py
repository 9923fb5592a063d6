"""
Document store client and index management.

Connects to MongoDB; the client is a process-wide handle opened in the
application lifespan and closed on shutdown.
"""

from typing import Optional

from pymongo import ASCENDING, GEOSPHERE, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from ..logging import get_logger
from ..settings import settings

logger = get_logger(__name__)

USERS = "users"
REGIONS = "regions"

_client: Optional[MongoClient] = None


def connect_mongo(uri: Optional[str] = None) -> MongoClient:
    """Create the shared Mongo client (lazy connect)."""
    global _client
    if _client is None:
        _client = MongoClient(
            uri or settings.mongodb_uri,
            serverSelectionTimeoutMS=settings.mongodb_timeout_ms,
            tz_aware=True,
        )
    return _client


def get_database(name: Optional[str] = None) -> Database:
    """Get the application database."""
    return connect_mongo()[name or settings.mongodb_database]


def close_mongo():
    """Close the shared client if open."""
    global _client
    if _client is not None:
        _client.close()
        _client = None


def check_connection() -> bool:
    """
    Check document store connection.

    Returns:
        True if the server answered a ping
    """
    try:
        connect_mongo().admin.command("ping")
        return True
    except PyMongoError:
        return False


def ensure_indexes(db: Database):
    """Create the indices the repositories rely on (idempotent)."""
    users = db[USERS]
    users.create_index([("username", ASCENDING)], unique=True)
    for field in ("regionId", "districtId", "countryId", "status", "socialRating"):
        users.create_index([(field, ASCENDING)])
    users.create_index([("currentLocation.position", GEOSPHERE)])

    regions = db[REGIONS]
    for field in ("type", "parentRegionId", "underThreat"):
        regions.create_index([(field, ASCENDING)])
    regions.create_index([("boundaries", GEOSPHERE)])

    logger.info("mongo_indexes_ensured", database=db.name)
