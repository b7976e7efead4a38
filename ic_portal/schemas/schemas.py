"""
Pydantic Schemas - Request/Response Validation

All API request and response schemas in one file for simplicity.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, model_validator

from ic_portal.models import (
    Application, ApplicationStatus, Project, StudentProfile, User, UserRole
)


# ============================================================
# USER SCHEMAS
# ============================================================

def is_blank(value) -> bool:
    """None or whitespace-only text."""
    return value is None or (isinstance(value, str) and not value.strip())


class ProfileCreate(BaseModel):
    role: UserRole
    name: str = Field(..., min_length=2, max_length=120)
    nusp: Optional[str] = Field(None, max_length=20)
    # Student
    course: Optional[str] = None
    ideal_period: Optional[int] = Field(None, ge=1, le=20)
    # Professor
    faculty: Optional[str] = None
    department: Optional[str] = None

    @model_validator(mode="after")
    def check_role_fields(self):
        if self.role == UserRole.student:
            required = ("course", "ideal_period")
        else:
            required = ("faculty", "department")
        missing = [f for f in required if is_blank(getattr(self, f))]
        if missing:
            raise ValueError(f"Missing fields for {self.role.value}: {', '.join(missing)}")
        return self


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=120)
    nusp: Optional[str] = Field(None, max_length=20)
    course: Optional[str] = Field(None, min_length=1)
    ideal_period: Optional[int] = Field(None, ge=1, le=20)
    faculty: Optional[str] = Field(None, min_length=1)
    department: Optional[str] = Field(None, min_length=1)


class ResumeInfo(BaseModel):
    filename: str
    content_type: str
    size_bytes: int
    uploaded_at: datetime


class UserResponse(BaseModel):
    id: str
    email: EmailStr
    name: str
    nusp: Optional[str] = None
    role: UserRole
    course: Optional[str] = None
    ideal_period: Optional[int] = None
    faculty: Optional[str] = None
    department: Optional[str] = None
    resume: Optional[ResumeInfo] = None
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        payload = {k: v for k, v in user.profile.model_dump().items() if k not in ("role", "resume")}
        resume = None
        if isinstance(user.profile, StudentProfile) and user.profile.resume:
            resume = ResumeInfo(**user.profile.resume.model_dump(exclude={"content"}))
        return cls(
            id=user.id, email=user.email, name=user.name, nusp=user.nusp,
            role=user.role, resume=resume, created_at=user.created_at, **payload
        )


class UserSummary(BaseModel):
    """Directory entry - enough to show names in tables."""
    id: str
    name: str
    role: UserRole


# ============================================================
# PROJECT SCHEMAS
# ============================================================

class ProjectCreate(BaseModel):
    title: str = Field(..., min_length=3, max_length=200)
    area: str = Field(..., min_length=1)
    theme: str = Field(..., min_length=1)
    duration: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    keywords: List[str] = Field(..., min_length=1)
    scholarship_details: Optional[str] = None
    vacancies: int = Field(1, ge=0)


class ProjectUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=3, max_length=200)
    area: Optional[str] = None
    theme: Optional[str] = None
    duration: Optional[str] = None
    description: Optional[str] = None
    keywords: Optional[List[str]] = None
    scholarship_details: Optional[str] = None
    vacancies: Optional[int] = Field(None, ge=0)


class ProjectResponse(BaseModel):
    id: str
    professor_id: str
    professor_name: str
    faculty: str
    department: str
    title: str
    area: str
    theme: str
    duration: str
    description: str
    keywords: List[str] = []
    has_scholarship: bool
    scholarship_details: Optional[str] = None
    vacancies: int
    total_vacancies: Optional[int] = None
    posted_date: datetime

    @classmethod
    def from_project(cls, project: Project) -> "ProjectResponse":
        return cls(**project.model_dump())


# ============================================================
# APPLICATION SCHEMAS
# ============================================================

class ApplicationCreate(BaseModel):
    project_id: str
    motivation: str = Field(..., max_length=5000)


class OfferResponse(BaseModel):
    accept: bool


class ApplicationResponse(BaseModel):
    id: str
    student_id: str
    project_id: str
    professor_id: str
    motivation: str
    application_date: datetime
    status: ApplicationStatus
    viewed_by_student: bool
    viewed_by_professor: bool
    # Display joins; None when the referenced record is gone
    project_title: Optional[str] = None
    student_name: Optional[str] = None

    @classmethod
    def from_application(
        cls,
        application: Application,
        project_title: Optional[str] = None,
        student_name: Optional[str] = None
    ) -> "ApplicationResponse":
        return cls(
            **application.model_dump(),
            project_title=project_title,
            student_name=student_name
        )


# ============================================================
# NOTIFICATION SCHEMAS
# ============================================================

class NotificationBadge(BaseModel):
    role: UserRole
    has_unread: bool


class NotificationsMarked(BaseModel):
    marked: int
    has_unread: bool


# ============================================================
# GENERIC SCHEMAS
# ============================================================

class MessageResponse(BaseModel):
    message: str
    success: bool = True


class ErrorResponse(BaseModel):
    detail: str
    error: Optional[str] = None
