"""
Storage gateway factory
Returns the in-memory, MongoDB, or SQL gateway based on configuration.
This allows switching backends without touching the lifecycle engine.
"""

import logging

from ic_portal.core.config import Settings, get_settings
from ic_portal.services.storage import InMemoryStorage, StorageGateway

logger = logging.getLogger(__name__)


def build_storage(settings: Settings = None) -> StorageGateway:
    """
    Build the gateway named by settings.storage_backend.

    Returns:
        MongoStorage for the document database
        SqlStorage for PostgreSQL (or any SQLAlchemy URL)
        InMemoryStorage for local development and tests
    """
    settings = settings or get_settings()
    backend = settings.storage_backend

    if backend == "mongo":
        from ic_portal.db.mongodb import init_mongo_indexes
        from ic_portal.services.mongo_storage import MongoStorage

        logger.info("Using MongoDB storage (%s)", settings.mongodb_db)
        init_mongo_indexes()
        return MongoStorage()

    if backend == "sql":
        from ic_portal.db.sql import init_sql_schema
        from ic_portal.services.sql_storage import SqlStorage

        logger.info("Using SQL storage")
        init_sql_schema()
        return SqlStorage()

    logger.info("Using in-memory storage (data is lost on restart)")
    return InMemoryStorage()
