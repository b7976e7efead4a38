"""
Models module - domain records shared by services and storage gateways.
"""
from ic_portal.models.entities import (
    Application,
    ApplicationStatus,
    ProfessorProfile,
    Project,
    RESERVED_STATUSES,
    Resume,
    StudentProfile,
    User,
    UserRole,
    utc_now,
)

__all__ = [
    "Application",
    "ApplicationStatus",
    "ProfessorProfile",
    "Project",
    "RESERVED_STATUSES",
    "Resume",
    "StudentProfile",
    "User",
    "UserRole",
    "utc_now",
]
