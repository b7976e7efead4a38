"""
Project Service - listing, creation and owner edits of IC projects.

Owner fields (professor_name, faculty, department) are copied from the
professor when the project is created and never re-synced afterwards.

Vacancies edited by the owner also move total_vacancies, so that
total = open seats + seats held by selected/accepted applications.
"""

import logging
from typing import List, Optional

from ic_portal.core.errors import Forbidden, ValidationError
from ic_portal.models import Project, RESERVED_STATUSES, UserRole, utc_now
from ic_portal.services.lifecycle_service import ProjectLocks
from ic_portal.services.storage import StorageGateway

logger = logging.getLogger(__name__)

# Fields the owner may change after posting
EDITABLE_FIELDS = (
    "title", "area", "theme", "duration", "description", "keywords",
    "scholarship_details", "vacancies",
)


def normalize_keywords(keywords: List[str]) -> List[str]:
    """Trim, drop empties, keep first occurrence order."""
    seen = []
    for keyword in keywords:
        keyword = keyword.strip()
        if keyword and keyword not in seen:
            seen.append(keyword)
    return seen


def filter_projects(
    projects: List[Project],
    available_only: bool = False,
    keyword: Optional[str] = None,
    search: Optional[str] = None,
    professor_id: Optional[str] = None
) -> List[Project]:
    """Client-side filtering over the full collection, newest first."""
    results = projects
    if professor_id:
        results = [p for p in results if p.professor_id == professor_id]
    if available_only:
        results = [p for p in results if p.vacancies > 0]
    if keyword:
        wanted = keyword.strip().lower()
        results = [p for p in results if any(k.lower() == wanted for k in p.keywords)]
    if search:
        needle = search.strip().lower()
        results = [
            p for p in results
            if needle in p.title.lower()
            or needle in p.area.lower()
            or needle in p.theme.lower()
        ]
    return sorted(results, key=lambda p: p.posted_date, reverse=True)


class ProjectService:

    def __init__(self, storage: StorageGateway, locks: Optional[ProjectLocks] = None):
        self.storage = storage
        self.locks = locks or ProjectLocks()

    def create_project(self, professor_id: str, data: dict) -> Project:
        professor = self.storage.get_user(professor_id)
        if professor.role != UserRole.professor:
            raise Forbidden("Only professors can post projects")

        vacancies = data["vacancies"]
        if vacancies < 0:
            raise ValidationError("Vacancies cannot be negative")
        scholarship = (data.get("scholarship_details") or "").strip() or None

        project = self.storage.create_project({
            "professor_id": professor.id,
            "professor_name": professor.name,
            "faculty": professor.profile.faculty,
            "department": professor.profile.department,
            "title": data["title"],
            "area": data["area"],
            "theme": data["theme"],
            "duration": data["duration"],
            "description": data["description"],
            "keywords": normalize_keywords(data.get("keywords", [])),
            "has_scholarship": scholarship is not None,
            "scholarship_details": scholarship,
            "vacancies": vacancies,
            "total_vacancies": vacancies,
            "posted_date": utc_now(),
        })
        logger.info("Professor %s posted project %s with %d vacancies",
                    professor.id, project.id, vacancies)
        return project

    def update_project(self, professor_id: str, project_id: str, changes: dict) -> Project:
        project = self.storage.get_project(project_id)
        if project.professor_id != professor_id:
            raise Forbidden("Only the project owner can edit it")

        fields = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS and v is not None}
        if "keywords" in fields:
            fields["keywords"] = normalize_keywords(fields["keywords"])
        if "scholarship_details" in fields:
            details = fields["scholarship_details"].strip() or None
            fields["scholarship_details"] = details
            fields["has_scholarship"] = details is not None

        with self.locks.hold(project_id):
            if "vacancies" in fields:
                if fields["vacancies"] < 0:
                    raise ValidationError("Vacancies cannot be negative")
                reserved = sum(
                    1 for a in self.storage.list_applications()
                    if a.project_id == project_id and a.status in RESERVED_STATUSES
                )
                fields["total_vacancies"] = fields["vacancies"] + reserved
            if not fields:
                return project
            updated = self.storage.update_project(project_id, fields)

        logger.info("Project %s updated by owner (%s)", project_id, ", ".join(sorted(fields)))
        return updated

    def list_projects(self, **filters) -> List[Project]:
        return filter_projects(self.storage.list_projects(), **filters)
