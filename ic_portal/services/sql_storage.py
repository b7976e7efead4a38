"""
SQL Storage Gateway - relational backend over SQLAlchemy text queries.

Guards are part of the UPDATE statements, so each write is one atomic
statement and the row count tells us whether the guard held:

    UPDATE projects SET vacancies = vacancies + :delta
    WHERE id = :id AND vacancies + :delta >= 0
      AND (total_vacancies IS NULL OR vacancies + :delta <= total_vacancies)

    UPDATE applications SET status = :status, ...
    WHERE id = :id AND status = :expected
"""

import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ic_portal.core.errors import (
    AlreadyApplied, NotFound, ProjectNotFound, TransientIO, ValidationError
)
from ic_portal.db.sql import get_db_session, get_engine, test_sql_connection
from ic_portal.models import Application, ApplicationStatus, Project, User
from ic_portal.services.storage import StorageGateway, new_id

logger = logging.getLogger(__name__)

PROJECT_COLUMNS = [
    "id", "professor_id", "professor_name", "faculty", "department", "title", "area",
    "theme", "duration", "description", "keywords", "has_scholarship",
    "scholarship_details", "vacancies", "total_vacancies", "posted_date",
]

APPLICATION_COLUMNS = [
    "id", "student_id", "project_id", "professor_id", "motivation", "application_date",
    "status", "viewed_by_student", "viewed_by_professor",
]


# ============================================================
# ROW <-> MODEL CONVERSION
# ============================================================

def _to_param(value):
    """Bind values the same way on PostgreSQL and SQLite."""
    if isinstance(value, ApplicationStatus):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, list):
        return json.dumps(value)
    return value


def _params(fields: dict) -> dict:
    return {k: _to_param(v) for k, v in fields.items()}


def row_to_user(row: dict) -> User:
    return User.model_validate({
        "id": row["id"],
        "email": row["email"],
        "name": row["name"],
        "nusp": row["nusp"],
        "profile": json.loads(row["profile"]),
        "created_at": row["created_at"],
    })


def row_to_project(row: dict) -> Project:
    data = dict(row)
    data["keywords"] = json.loads(data["keywords"] or "[]")
    return Project.model_validate(data)


def row_to_application(row: dict) -> Application:
    return Application.model_validate(dict(row))


@contextmanager
def storage_errors():
    """Turn connection failures / timeouts into TransientIO."""
    try:
        yield
    except IntegrityError:
        raise
    except SQLAlchemyError as e:
        logger.error("SQL operation failed: %s", e)
        raise TransientIO() from e


class SqlStorage(StorageGateway):
    """Storage gateway over a SQLAlchemy engine."""

    name = "sql"

    def __init__(self, engine: Engine = None):
        self.engine = engine or get_engine()

    def _fetch_all(self, sql: str, params: dict = None) -> List[dict]:
        with storage_errors():
            with get_db_session(self.engine) as db:
                result = db.execute(text(sql), params or {})
                return [dict(row._mapping) for row in result.fetchall()]

    def _fetch_one(self, sql: str, params: dict) -> Optional[dict]:
        rows = self._fetch_all(sql, params)
        return rows[0] if rows else None

    def _execute(self, sql: str, params: dict) -> int:
        """Run a write statement, return affected row count."""
        with storage_errors():
            with get_db_session(self.engine) as db:
                result = db.execute(text(sql), params)
                return result.rowcount

    # ---------------- users ----------------

    def get_user(self, user_id: str) -> User:
        row = self._fetch_one("SELECT * FROM users WHERE id = :id", {"id": user_id})
        if row is None:
            raise NotFound(f"User {user_id} not found")
        return row_to_user(row)

    def list_users(self) -> List[User]:
        return [row_to_user(row) for row in self._fetch_all("SELECT * FROM users")]

    def _user_params(self, user: User) -> dict:
        return {
            "id": user.id,
            "email": user.email,
            "name": user.name,
            "nusp": user.nusp,
            "role": user.role.value,
            "profile": json.dumps(user.profile.model_dump(mode="json")),
            "created_at": user.created_at.isoformat(),
        }

    def create_user(self, user: User) -> User:
        try:
            self._execute(
                """
                INSERT INTO users (id, email, name, nusp, role, profile, created_at)
                VALUES (:id, :email, :name, :nusp, :role, :profile, :created_at)
                """,
                self._user_params(user)
            )
        except IntegrityError:
            # Primary key or UNIQUE (email) caught a racing profile creation
            raise ValidationError("Profile or email already registered")
        return user

    def update_user(self, user_id: str, fields: dict) -> User:
        # Users are only written by their owner, a read-merge-write is enough
        user = self.get_user(user_id)
        updated = User.model_validate({**user.model_dump(), **fields})
        self._execute(
            """
            UPDATE users SET email = :email, name = :name, nusp = :nusp,
                             role = :role, profile = :profile
            WHERE id = :id
            """,
            self._user_params(updated)
        )
        return updated

    # ---------------- projects ----------------

    def get_project(self, project_id: str) -> Project:
        row = self._fetch_one("SELECT * FROM projects WHERE id = :id", {"id": project_id})
        if row is None:
            raise ProjectNotFound(f"Project {project_id} not found")
        return row_to_project(row)

    def list_projects(self) -> List[Project]:
        return [row_to_project(row) for row in self._fetch_all("SELECT * FROM projects")]

    def create_project(self, fields: dict) -> Project:
        project = Project.model_validate({**fields, "id": new_id()})
        self._execute(
            f"""
            INSERT INTO projects ({', '.join(PROJECT_COLUMNS)})
            VALUES ({', '.join(':' + c for c in PROJECT_COLUMNS)})
            """,
            _params(project.model_dump())
        )
        return project

    def update_project(self, project_id: str, fields: dict) -> Project:
        updates = [f"{c} = :{c}" for c in PROJECT_COLUMNS if c in fields and c != "id"]
        if updates:
            params = _params({c: fields[c] for c in PROJECT_COLUMNS if c in fields})
            params["id"] = project_id
            count = self._execute(
                f"UPDATE projects SET {', '.join(updates)} WHERE id = :id",
                params
            )
            if count == 0:
                raise ProjectNotFound(f"Project {project_id} not found")
        return self.get_project(project_id)

    def adjust_vacancies(self, project_id: str, delta: int, ceiling: Optional[int] = None) -> Project:
        params = {"id": project_id, "delta": delta}
        guard = "vacancies + :delta >= 0"
        if delta > 0 and ceiling is not None:
            guard = "vacancies + :delta <= :ceiling"
            params["ceiling"] = ceiling
        elif delta > 0:
            guard = "(total_vacancies IS NULL OR vacancies + :delta <= total_vacancies)"
        self._execute(
            f"UPDATE projects SET vacancies = vacancies + :delta WHERE id = :id AND {guard}",
            params
        )
        # Zero rows means the guard held us at floor/ceiling; get_project raises if gone
        return self.get_project(project_id)

    # ---------------- applications ----------------

    def get_application(self, application_id: str) -> Application:
        row = self._fetch_one("SELECT * FROM applications WHERE id = :id", {"id": application_id})
        if row is None:
            raise NotFound(f"Application {application_id} not found")
        return row_to_application(row)

    def list_applications(self) -> List[Application]:
        return [row_to_application(row) for row in self._fetch_all("SELECT * FROM applications")]

    def create_application(self, fields: dict) -> Application:
        application = Application.model_validate({**fields, "id": new_id()})
        try:
            self._execute(
                f"""
                INSERT INTO applications ({', '.join(APPLICATION_COLUMNS)})
                VALUES ({', '.join(':' + c for c in APPLICATION_COLUMNS)})
                """,
                _params(application.model_dump())
            )
        except IntegrityError:
            # UNIQUE (student_id, project_id) caught a racing apply
            raise AlreadyApplied()
        return application

    def _update_application_sql(self, fields: dict, guard: str = "") -> tuple:
        updates = [f"{c} = :{c}" for c in APPLICATION_COLUMNS if c in fields and c != "id"]
        params = _params({c: fields[c] for c in APPLICATION_COLUMNS if c in fields and c != "id"})
        return f"UPDATE applications SET {', '.join(updates)} WHERE id = :id{guard}", params

    def update_application(self, application_id: str, fields: dict) -> Application:
        if fields:
            sql, params = self._update_application_sql(fields)
            params["id"] = application_id
            if self._execute(sql, params) == 0:
                raise NotFound(f"Application {application_id} not found")
        return self.get_application(application_id)

    def transition_application(
        self,
        application_id: str,
        expected_status: ApplicationStatus,
        fields: dict
    ) -> Optional[Application]:
        sql, params = self._update_application_sql(fields, " AND status = :expected_status")
        params["id"] = application_id
        params["expected_status"] = expected_status.value
        if self._execute(sql, params) == 0:
            # Raises NotFound if the row vanished, otherwise the status moved on
            self.get_application(application_id)
            return None
        return self.get_application(application_id)

    def delete_application(
        self,
        application_id: str,
        expected_status: Optional[ApplicationStatus] = None
    ) -> bool:
        sql = "DELETE FROM applications WHERE id = :id"
        params = {"id": application_id}
        if expected_status is not None:
            sql += " AND status = :expected_status"
            params["expected_status"] = expected_status.value
        return self._execute(sql, params) > 0

    # ---------------- health ----------------

    def ping(self) -> bool:
        return test_sql_connection(self.engine)
