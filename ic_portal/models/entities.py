"""
Domain records - what the storage gateways read and write.

These are internal data structures; the API contract lives in
ic_portal.schemas.schemas.

User is a tagged union: one common record whose `profile` payload is
picked by the `role` tag (StudentProfile or ProfessorProfile).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================
# ENUMS
# ============================================================

class UserRole(str, Enum):
    student = "student"
    professor = "professor"


class ApplicationStatus(str, Enum):
    pending = "pending"
    selected = "selected"
    not_selected = "not_selected"
    accepted = "accepted"
    declined = "declined"


# Statuses that hold one of the project's seats
RESERVED_STATUSES = frozenset({ApplicationStatus.selected, ApplicationStatus.accepted})


# ============================================================
# USERS
# ============================================================

class Resume(BaseModel):
    filename: str
    content_type: str
    content: str  # base64
    size_bytes: int
    uploaded_at: datetime = Field(default_factory=utc_now)


class StudentProfile(BaseModel):
    role: Literal["student"] = "student"
    course: str
    ideal_period: int = Field(..., ge=1)
    resume: Optional[Resume] = None


class ProfessorProfile(BaseModel):
    role: Literal["professor"] = "professor"
    faculty: str
    department: str


Profile = Annotated[Union[StudentProfile, ProfessorProfile], Field(discriminator="role")]


class User(BaseModel):
    id: str
    email: str
    name: str
    nusp: Optional[str] = None
    profile: Profile
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def role(self) -> UserRole:
        return UserRole(self.profile.role)

    @property
    def has_resume(self) -> bool:
        return isinstance(self.profile, StudentProfile) and self.profile.resume is not None


# ============================================================
# PROJECTS
# ============================================================

class Project(BaseModel):
    id: str
    professor_id: str
    # Snapshot of the owner at creation time, never re-synced
    professor_name: str
    faculty: str
    department: str
    title: str
    area: str
    theme: str
    duration: str
    description: str
    keywords: List[str] = Field(default_factory=list)
    has_scholarship: bool = False
    scholarship_details: Optional[str] = None
    vacancies: int = Field(..., ge=0)
    # Ceiling for seat releases; None on records written before it existed
    total_vacancies: Optional[int] = Field(None, ge=0)
    posted_date: datetime = Field(default_factory=utc_now)


# ============================================================
# APPLICATIONS
# ============================================================

class Application(BaseModel):
    id: str
    student_id: str
    project_id: str
    professor_id: str
    motivation: str
    application_date: datetime = Field(default_factory=utc_now)
    status: ApplicationStatus = ApplicationStatus.pending
    viewed_by_student: bool = True
    viewed_by_professor: bool = False
