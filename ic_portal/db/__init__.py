"""
Database module - SQL and MongoDB connections.
"""
from ic_portal.db.sql import get_db_session, test_sql_connection
from ic_portal.db.mongodb import get_mongo_db, test_mongo_connection

__all__ = [
    "get_db_session",
    "test_sql_connection",
    "get_mongo_db",
    "test_mongo_connection"
]
