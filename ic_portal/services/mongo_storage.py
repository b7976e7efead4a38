"""
MongoDB Storage Gateway - document-database backend.

Collections (see ic_portal.db.mongodb.COLLECTIONS):
1. users        - _id is the identity-provider user id
2. projects     - _id is an ObjectId, exposed as its hex string
3. applications - _id is an ObjectId, exposed as its hex string

Concurrency guards live in the query filters, so every write is a single
atomic document update:
- vacancies move with $inc, filtered so they never drop below 0 or rise
  above the release ceiling (total_vacancies minus seats held by
  selected/accepted applications)
- status transitions use find_one_and_update filtered on the current status
"""

import logging
from contextlib import contextmanager
from typing import List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from ic_portal.core.errors import (
    AlreadyApplied, NotFound, ProjectNotFound, TransientIO, ValidationError
)
from ic_portal.db.mongodb import COLLECTIONS, get_mongo_db, test_mongo_connection
from ic_portal.models import Application, ApplicationStatus, Project, User
from ic_portal.services.storage import StorageGateway

logger = logging.getLogger(__name__)


# ============================================================
# HELPERS: ObjectId <-> string ids
# ============================================================

def to_object_id(value: str) -> Optional[ObjectId]:
    """Parse a hex id; None when it cannot be an ObjectId (so it cannot exist)."""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def serialize_doc(doc: dict) -> dict:
    """Convert MongoDB document to a dict our models accept."""
    if doc is None:
        return None
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return doc


def _enum_values(fields: dict) -> dict:
    """BSON cannot encode Enum members; store their values."""
    return {k: (v.value if isinstance(v, ApplicationStatus) else v) for k, v in fields.items()}


@contextmanager
def storage_errors():
    """Turn driver failures (timeouts, lost connections) into TransientIO."""
    try:
        yield
    except DuplicateKeyError:
        raise
    except PyMongoError as e:
        logger.error("MongoDB operation failed: %s", e)
        raise TransientIO() from e


class MongoStorage(StorageGateway):
    """Storage gateway over pymongo collections."""

    name = "mongo"

    def __init__(self, db: Database = None):
        db = db if db is not None else get_mongo_db()
        self.users: Collection = db[COLLECTIONS["users"]]
        self.projects: Collection = db[COLLECTIONS["projects"]]
        self.applications: Collection = db[COLLECTIONS["applications"]]

    # ---------------- users ----------------

    def get_user(self, user_id: str) -> User:
        with storage_errors():
            doc = self.users.find_one({"_id": user_id})
        if doc is None:
            raise NotFound(f"User {user_id} not found")
        return User.model_validate(serialize_doc(doc))

    def list_users(self) -> List[User]:
        with storage_errors():
            return [User.model_validate(serialize_doc(doc)) for doc in self.users.find({})]

    def create_user(self, user: User) -> User:
        doc = user.model_dump(exclude={"id"})
        doc["_id"] = user.id
        try:
            with storage_errors():
                self.users.insert_one(doc)
        except DuplicateKeyError:
            # Unique email index (or _id) caught a racing profile creation
            raise ValidationError("Profile or email already registered")
        return user

    def update_user(self, user_id: str, fields: dict) -> User:
        with storage_errors():
            doc = self.users.find_one_and_update(
                {"_id": user_id},
                {"$set": fields},
                return_document=ReturnDocument.AFTER
            )
        if doc is None:
            raise NotFound(f"User {user_id} not found")
        return User.model_validate(serialize_doc(doc))

    # ---------------- projects ----------------

    def get_project(self, project_id: str) -> Project:
        oid = to_object_id(project_id)
        doc = None
        if oid is not None:
            with storage_errors():
                doc = self.projects.find_one({"_id": oid})
        if doc is None:
            raise ProjectNotFound(f"Project {project_id} not found")
        return Project.model_validate(serialize_doc(doc))

    def list_projects(self) -> List[Project]:
        with storage_errors():
            return [Project.model_validate(serialize_doc(doc)) for doc in self.projects.find({})]

    def create_project(self, fields: dict) -> Project:
        # Validate before writing so bad input never lands in the collection
        project = Project.model_validate({**fields, "id": str(ObjectId())})
        doc = project.model_dump(exclude={"id"})
        doc["_id"] = ObjectId(project.id)
        with storage_errors():
            self.projects.insert_one(doc)
        return project

    def update_project(self, project_id: str, fields: dict) -> Project:
        oid = to_object_id(project_id)
        doc = None
        if oid is not None:
            with storage_errors():
                doc = self.projects.find_one_and_update(
                    {"_id": oid},
                    {"$set": fields},
                    return_document=ReturnDocument.AFTER
                )
        if doc is None:
            raise ProjectNotFound(f"Project {project_id} not found")
        return Project.model_validate(serialize_doc(doc))

    def adjust_vacancies(self, project_id: str, delta: int, ceiling: Optional[int] = None) -> Project:
        oid = to_object_id(project_id)
        if oid is None:
            raise ProjectNotFound(f"Project {project_id} not found")

        query = {"_id": oid}
        if delta < 0:
            query["vacancies"] = {"$gte": -delta}
        elif delta > 0 and ceiling is not None:
            query["vacancies"] = {"$lte": ceiling - delta}
        elif delta > 0:
            # total_vacancies None/missing means no ceiling (legacy rows)
            query["$or"] = [
                {"total_vacancies": None},
                {"$expr": {"$lte": [{"$add": ["$vacancies", delta]}, "$total_vacancies"]}},
            ]

        with storage_errors():
            doc = self.projects.find_one_and_update(
                query,
                {"$inc": {"vacancies": delta}},
                return_document=ReturnDocument.AFTER
            )
        if doc is None:
            # Guard rejected the change (already at floor/ceiling) or row is gone
            return self.get_project(project_id)
        return Project.model_validate(serialize_doc(doc))

    # ---------------- applications ----------------

    def get_application(self, application_id: str) -> Application:
        oid = to_object_id(application_id)
        doc = None
        if oid is not None:
            with storage_errors():
                doc = self.applications.find_one({"_id": oid})
        if doc is None:
            raise NotFound(f"Application {application_id} not found")
        return Application.model_validate(serialize_doc(doc))

    def list_applications(self) -> List[Application]:
        with storage_errors():
            return [
                Application.model_validate(serialize_doc(doc))
                for doc in self.applications.find({})
            ]

    def create_application(self, fields: dict) -> Application:
        application = Application.model_validate({**fields, "id": str(ObjectId())})
        doc = _enum_values(application.model_dump(exclude={"id"}))
        doc["_id"] = ObjectId(application.id)
        try:
            with storage_errors():
                self.applications.insert_one(doc)
        except DuplicateKeyError:
            # Unique (student_id, project_id) index caught a racing apply
            raise AlreadyApplied()
        return application

    def update_application(self, application_id: str, fields: dict) -> Application:
        oid = to_object_id(application_id)
        doc = None
        if oid is not None:
            with storage_errors():
                doc = self.applications.find_one_and_update(
                    {"_id": oid},
                    {"$set": _enum_values(fields)},
                    return_document=ReturnDocument.AFTER
                )
        if doc is None:
            raise NotFound(f"Application {application_id} not found")
        return Application.model_validate(serialize_doc(doc))

    def transition_application(
        self,
        application_id: str,
        expected_status: ApplicationStatus,
        fields: dict
    ) -> Optional[Application]:
        oid = to_object_id(application_id)
        if oid is None:
            raise NotFound(f"Application {application_id} not found")
        with storage_errors():
            doc = self.applications.find_one_and_update(
                {"_id": oid, "status": expected_status.value},
                {"$set": _enum_values(fields)},
                return_document=ReturnDocument.AFTER
            )
        if doc is None:
            # Raises NotFound if the row vanished, otherwise the status moved on
            self.get_application(application_id)
            return None
        return Application.model_validate(serialize_doc(doc))

    def delete_application(
        self,
        application_id: str,
        expected_status: Optional[ApplicationStatus] = None
    ) -> bool:
        oid = to_object_id(application_id)
        if oid is None:
            return False
        query = {"_id": oid}
        if expected_status is not None:
            query["status"] = expected_status.value
        with storage_errors():
            result = self.applications.delete_one(query)
        return result.deleted_count > 0

    # ---------------- health ----------------

    def ping(self) -> bool:
        return test_mongo_connection()
