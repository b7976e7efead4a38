"""
SQL Connection Utility

The relational backend stores the same three collections as tables:
- users:        role column + profile payload as JSON text
- projects:     one row per listing, keywords as JSON text
- applications: one row per (student, project), unique on that pair

PostgreSQL in production; any SQLAlchemy URL works (tests use SQLite).
"""
import logging
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ic_portal.core.config import get_settings

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None


def build_engine(url: str, timeout_seconds: float = 10.0, echo: bool = False) -> Engine:
    """
    Create an engine for the given URL.

    In-memory SQLite needs a single shared connection (StaticPool),
    otherwise every checkout would see an empty database.
    """
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": timeout_seconds},
            poolclass=StaticPool,
            echo=echo,
        )

    # pool_size=5: maintain 5 connections ready
    # max_overflow=10: allow 10 extra connections under load
    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        connect_args={"connect_timeout": int(timeout_seconds)},
        echo=echo,
    )


def get_engine() -> Engine:
    """Get or create the configured engine (singleton pattern)"""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = build_engine(
            settings.sql_url,
            timeout_seconds=settings.storage_timeout_seconds,
            echo=settings.debug,  # Log SQL queries in debug mode
        )
    return _engine


@contextmanager
def get_db_session(engine: Engine = None):
    """
    Context manager for database sessions.
    Usage:
        with get_db_session() as db:
            db.execute(text("SELECT * FROM users"))
    """
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine or get_engine())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def test_sql_connection(engine: Engine = None) -> bool:
    """
    Test if the SQL database is reachable.
    Returns True if connection successful, False otherwise.
    """
    try:
        with get_db_session(engine) as db:
            result = db.execute(text("SELECT 1 as test"))
            row = result.fetchone()
            return row[0] == 1
    except SQLAlchemyError as e:
        logger.warning("SQL connection failed: %s", e)
        return False


SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        nusp TEXT,
        role TEXT NOT NULL,
        profile TEXT NOT NULL,
        created_at TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS projects (
        id TEXT PRIMARY KEY,
        professor_id TEXT NOT NULL,
        professor_name TEXT NOT NULL,
        faculty TEXT NOT NULL,
        department TEXT NOT NULL,
        title TEXT NOT NULL,
        area TEXT NOT NULL,
        theme TEXT NOT NULL,
        duration TEXT NOT NULL,
        description TEXT NOT NULL,
        keywords TEXT NOT NULL,
        has_scholarship BOOLEAN NOT NULL,
        scholarship_details TEXT,
        vacancies INTEGER NOT NULL CHECK (vacancies >= 0),
        total_vacancies INTEGER,
        posted_date TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS applications (
        id TEXT PRIMARY KEY,
        student_id TEXT NOT NULL,
        project_id TEXT NOT NULL,
        professor_id TEXT NOT NULL,
        motivation TEXT NOT NULL,
        application_date TIMESTAMP NOT NULL,
        status TEXT NOT NULL,
        viewed_by_student BOOLEAN NOT NULL,
        viewed_by_professor BOOLEAN NOT NULL,
        UNIQUE (student_id, project_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_projects_professor ON projects (professor_id)",
    "CREATE INDEX IF NOT EXISTS ix_applications_professor ON applications (professor_id)",
]


def init_sql_schema(engine: Engine = None):
    """Create tables if missing. Call this once during app startup."""
    with get_db_session(engine) as db:
        for statement in SCHEMA_STATEMENTS:
            db.execute(text(statement))
    logger.info("SQL schema ready")
