"""
Storage Gateway - the persistence contract the lifecycle engine relies on.

Three collections, each row addressed by a string id:
1. users        - students and professors (tagged by role)
2. projects     - IC project listings
3. applications - student -> project links, carry professor_id too

Any backend (in-memory, MongoDB, SQL) must provide:
- get_* raising NotFound when the row is absent
- partial updates that merge only the named fields
- store-assigned ids on create
- full-collection list_* reads (callers filter in Python)
- adjust_vacancies: atomic +/-1 on Project.vacancies, floored at 0 and
  capped at the given ceiling (seats not held by selected/accepted
  applications), or at total_vacancies when no ceiling is passed
- transition_application: compare-and-set on Application.status
"""

import threading
import uuid
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from ic_portal.core.errors import NotFound, ProjectNotFound
from ic_portal.models import Application, ApplicationStatus, Project, User


def new_id() -> str:
    return uuid.uuid4().hex


def clamp_vacancies(project: Project, delta: int, ceiling: Optional[int] = None) -> int:
    """Vacancy count after applying delta, kept within [0, ceiling]."""
    if ceiling is None:
        ceiling = project.total_vacancies
    value = max(0, project.vacancies + delta)
    if delta > 0 and ceiling is not None:
        value = min(value, max(ceiling, project.vacancies))
    return value


class StorageGateway(ABC):
    """Interface every persistence backend implements."""

    name = "abstract"

    # ---------------- users ----------------

    @abstractmethod
    def get_user(self, user_id: str) -> User: ...

    @abstractmethod
    def list_users(self) -> List[User]: ...

    @abstractmethod
    def create_user(self, user: User) -> User: ...

    @abstractmethod
    def update_user(self, user_id: str, fields: dict) -> User: ...

    # ---------------- projects ----------------

    @abstractmethod
    def get_project(self, project_id: str) -> Project: ...

    @abstractmethod
    def list_projects(self) -> List[Project]: ...

    @abstractmethod
    def create_project(self, fields: dict) -> Project: ...

    @abstractmethod
    def update_project(self, project_id: str, fields: dict) -> Project: ...

    @abstractmethod
    def adjust_vacancies(self, project_id: str, delta: int, ceiling: Optional[int] = None) -> Project:
        """
        Atomically add delta to vacancies.

        Floor 0. Increments stop at ceiling, or at total_vacancies when
        ceiling is None; a count already above the cap is left alone.
        """

    # ---------------- applications ----------------

    @abstractmethod
    def get_application(self, application_id: str) -> Application: ...

    @abstractmethod
    def list_applications(self) -> List[Application]: ...

    @abstractmethod
    def create_application(self, fields: dict) -> Application: ...

    @abstractmethod
    def update_application(self, application_id: str, fields: dict) -> Application: ...

    @abstractmethod
    def transition_application(
        self,
        application_id: str,
        expected_status: ApplicationStatus,
        fields: dict
    ) -> Optional[Application]:
        """
        Apply fields only if the row still has expected_status.

        Returns the updated application, or None when the status moved on
        (the row exists but someone else changed it first).
        Raises NotFound when the row is gone.
        """

    @abstractmethod
    def delete_application(
        self,
        application_id: str,
        expected_status: Optional[ApplicationStatus] = None
    ) -> bool:
        """Remove the row (only if its status matches, when given). True if removed."""

    # ---------------- health ----------------

    def ping(self) -> bool:
        return True


# ============================================================
# IN-MEMORY BACKEND
# Mock store for local development and tests
# ============================================================

class InMemoryStorage(StorageGateway):
    """Dict-backed gateway. One lock makes every method atomic."""

    name = "memory"

    def __init__(self):
        self._lock = threading.RLock()
        self._users: Dict[str, User] = {}
        self._projects: Dict[str, Project] = {}
        self._applications: Dict[str, Application] = {}

    # ---------------- users ----------------

    def get_user(self, user_id: str) -> User:
        with self._lock:
            user = self._users.get(user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found")
        return user

    def list_users(self) -> List[User]:
        with self._lock:
            return list(self._users.values())

    def create_user(self, user: User) -> User:
        with self._lock:
            self._users[user.id] = user
        return user

    def update_user(self, user_id: str, fields: dict) -> User:
        with self._lock:
            user = self.get_user(user_id)
            updated = User.model_validate({**user.model_dump(), **fields})
            self._users[user_id] = updated
        return updated

    # ---------------- projects ----------------

    def get_project(self, project_id: str) -> Project:
        with self._lock:
            project = self._projects.get(project_id)
        if project is None:
            raise ProjectNotFound(f"Project {project_id} not found")
        return project

    def list_projects(self) -> List[Project]:
        with self._lock:
            return list(self._projects.values())

    def create_project(self, fields: dict) -> Project:
        project = Project.model_validate({**fields, "id": new_id()})
        with self._lock:
            self._projects[project.id] = project
        return project

    def update_project(self, project_id: str, fields: dict) -> Project:
        with self._lock:
            project = self.get_project(project_id)
            updated = Project.model_validate({**project.model_dump(), **fields})
            self._projects[project_id] = updated
        return updated

    def adjust_vacancies(self, project_id: str, delta: int, ceiling: Optional[int] = None) -> Project:
        with self._lock:
            project = self.get_project(project_id)
            updated = project.model_copy(update={"vacancies": clamp_vacancies(project, delta, ceiling)})
            self._projects[project_id] = updated
        return updated

    # ---------------- applications ----------------

    def get_application(self, application_id: str) -> Application:
        with self._lock:
            application = self._applications.get(application_id)
        if application is None:
            raise NotFound(f"Application {application_id} not found")
        return application

    def list_applications(self) -> List[Application]:
        with self._lock:
            return list(self._applications.values())

    def create_application(self, fields: dict) -> Application:
        application = Application.model_validate({**fields, "id": new_id()})
        with self._lock:
            self._applications[application.id] = application
        return application

    def update_application(self, application_id: str, fields: dict) -> Application:
        with self._lock:
            application = self.get_application(application_id)
            updated = Application.model_validate({**application.model_dump(), **fields})
            self._applications[application_id] = updated
        return updated

    def transition_application(
        self,
        application_id: str,
        expected_status: ApplicationStatus,
        fields: dict
    ) -> Optional[Application]:
        with self._lock:
            application = self.get_application(application_id)
            if application.status != expected_status:
                return None
            return self.update_application(application_id, fields)

    def delete_application(
        self,
        application_id: str,
        expected_status: Optional[ApplicationStatus] = None
    ) -> bool:
        with self._lock:
            application = self._applications.get(application_id)
            if application is None:
                return False
            if expected_status is not None and application.status != expected_status:
                return False
            del self._applications[application_id]
        return True
