"""
MongoDB Connection Utility

MongoDB is the document-database backend for the portal:
- users:        one document per student/professor, profile embedded
- projects:     IC project listings
- applications: student applications, keyed by student/project/professor

Connection timeouts come from settings.storage_timeout_seconds so a
dead server surfaces as TransientIO instead of hanging a request.
"""
import logging

from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from ic_portal.core.config import get_settings

logger = logging.getLogger(__name__)

# Global client (connection pooling handled internally by pymongo)
_client: MongoClient = None
_db: Database = None


def get_mongo_client() -> MongoClient:
    """Get or create MongoDB client (singleton pattern)"""
    global _client
    if _client is None:
        settings = get_settings()
        timeout_ms = int(settings.storage_timeout_seconds * 1000)
        _client = MongoClient(
            settings.mongodb_uri,
            serverSelectionTimeoutMS=timeout_ms,
            connectTimeoutMS=timeout_ms,
            socketTimeoutMS=timeout_ms,
        )
    return _client


def get_mongo_db() -> Database:
    """Get the portal database"""
    global _db
    if _db is None:
        client = get_mongo_client()
        _db = client[get_settings().mongodb_db]
    return _db


def test_mongo_connection() -> bool:
    """
    Test if MongoDB is reachable.
    Returns True if connection successful, False otherwise.
    """
    try:
        client = get_mongo_client()
        # ping command checks connection
        client.admin.command('ping')
        return True
    except PyMongoError as e:
        logger.warning("MongoDB connection failed: %s", e)
        return False


# Collection name constants (avoid typos)
COLLECTIONS = {
    "users": "users",
    "projects": "projects",
    "applications": "applications",
}


def init_mongo_indexes(db: Database = None):
    """
    Create indexes for better query performance.
    Call this once during app startup.
    """
    db = db if db is not None else get_mongo_db()

    db[COLLECTIONS["users"]].create_index("email", unique=True)

    # One application per (student, project)
    db[COLLECTIONS["applications"]].create_index([
        ("student_id", ASCENDING),
        ("project_id", ASCENDING)
    ], unique=True)

    # Professor-scoped candidate lists and badges
    db[COLLECTIONS["applications"]].create_index("professor_id")
    db[COLLECTIONS["projects"]].create_index("professor_id")

    logger.info("MongoDB indexes created")
