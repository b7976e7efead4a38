"""
Profile Service - user records and the student resume.

Accounts themselves live at the identity provider; here we keep the
portal profile keyed by the provider's user id. The role is fixed when
the profile is created.
"""

import logging
from typing import Optional

from email_validator import EmailNotValidError, validate_email

from ic_portal.core.errors import Forbidden, NotFound, ValidationError
from ic_portal.models import (
    ProfessorProfile, Resume, StudentProfile, User, UserRole, utc_now
)
from ic_portal.services.storage import StorageGateway
from ic_portal.utils.file_upload import encode_content

logger = logging.getLogger(__name__)

STUDENT_FIELDS = ("course", "ideal_period")
PROFESSOR_FIELDS = ("faculty", "department")


class ProfileService:

    def __init__(self, storage: StorageGateway):
        self.storage = storage

    def create_profile(self, user_id: str, email: str, data: dict) -> User:
        """Create the portal profile for a freshly authenticated account."""
        try:
            validate_email(email or "", check_deliverability=False)
        except EmailNotValidError as e:
            raise ValidationError(f"Account email is not valid: {e}")

        try:
            self.storage.get_user(user_id)
        except NotFound:
            pass
        else:
            raise ValidationError("Profile already exists. Use PATCH to update.")

        if any(u.email.lower() == email.lower() for u in self.storage.list_users()):
            raise ValidationError("Email already registered")

        if data["role"] == UserRole.student:
            profile = StudentProfile(course=data["course"], ideal_period=data["ideal_period"])
        else:
            profile = ProfessorProfile(faculty=data["faculty"], department=data["department"])

        user = self.storage.create_user(User(
            id=user_id,
            email=email,
            name=data["name"],
            nusp=data.get("nusp"),
            profile=profile,
        ))
        logger.info("Created %s profile %s", user.role.value, user.id)
        return user

    def update_profile(self, user_id: str, changes: dict) -> User:
        """Partial update. Fields of the other role are rejected, role never changes."""
        user = self.storage.get_user(user_id)
        changes = {k: v for k, v in changes.items() if v is not None}

        own_fields = STUDENT_FIELDS if user.role == UserRole.student else PROFESSOR_FIELDS
        other_fields = PROFESSOR_FIELDS if user.role == UserRole.student else STUDENT_FIELDS
        foreign = [f for f in other_fields if f in changes]
        if foreign:
            raise ValidationError(f"Fields not valid for a {user.role.value}: {', '.join(foreign)}")

        fields = {k: changes[k] for k in ("name", "nusp") if k in changes}
        profile_changes = {k: changes[k] for k in own_fields if k in changes}
        if profile_changes:
            fields["profile"] = {**user.profile.model_dump(), **profile_changes}

        if not fields:
            raise ValidationError("No fields to update")
        return self.storage.update_user(user_id, fields)

    def save_resume(self, user_id: str, filename: str, content_type: str, content: bytes) -> User:
        """Store (or replace) the student's single resume."""
        user = self.storage.get_user(user_id)
        if user.role != UserRole.student:
            raise Forbidden("Only students have a resume")

        resume = Resume(
            filename=filename,
            content_type=content_type,
            content=encode_content(content),
            size_bytes=len(content),
            uploaded_at=utc_now(),
        )
        profile = {**user.profile.model_dump(), "resume": resume.model_dump()}
        updated = self.storage.update_user(user_id, {"profile": profile})
        logger.info("Student %s uploaded resume %s (%d bytes)", user_id, filename, len(content))
        return updated

    def get_resume(self, requester: User, student_id: str) -> Resume:
        """
        Resume of a student, visible to the student and to professors
        who received an application from them.
        """
        student = self.storage.get_user(student_id)
        resume: Optional[Resume] = getattr(student.profile, "resume", None)

        if requester.id != student_id:
            received = requester.role == UserRole.professor and any(
                a.student_id == student_id and a.professor_id == requester.id
                for a in self.storage.list_applications()
            )
            if not received:
                raise Forbidden("You cannot view this resume")

        if resume is None:
            raise NotFound("This student has not uploaded a resume")
        return resume
