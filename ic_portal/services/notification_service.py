"""
Notification Service - "unread" badges derived from applications.

There is no stored badge. A user has unread notifications iff some
application they are party to changed in a way they care about and
they have not opened the corresponding list since:

- Student:   status in {selected, not_selected} and not viewed_by_student
- Professor: status in {pending, accepted, declined} and not viewed_by_professor

Marking as read is best-effort: it only affects badge cosmetics, so
storage failures are logged and swallowed.
"""

import logging
from typing import Iterable, List

from ic_portal.core.errors import PortalError
from ic_portal.models import Application, ApplicationStatus, UserRole
from ic_portal.services.storage import StorageGateway

logger = logging.getLogger(__name__)

STUDENT_BADGE_STATUSES = frozenset({ApplicationStatus.selected, ApplicationStatus.not_selected})
PROFESSOR_BADGE_STATUSES = frozenset({
    ApplicationStatus.pending, ApplicationStatus.accepted, ApplicationStatus.declined
})


def unread_applications(
    applications: Iterable[Application],
    user_id: str,
    role: UserRole
) -> List[Application]:
    """Applications that currently light up this user's badge."""
    if role == UserRole.student:
        return [
            a for a in applications
            if a.student_id == user_id
            and a.status in STUDENT_BADGE_STATUSES
            and not a.viewed_by_student
        ]
    return [
        a for a in applications
        if a.professor_id == user_id
        and a.status in PROFESSOR_BADGE_STATUSES
        and not a.viewed_by_professor
    ]


def has_unread(applications: Iterable[Application], user_id: str, role: UserRole) -> bool:
    return bool(unread_applications(applications, user_id, role))


class NotificationService:
    """Badge reads and acknowledgment against a storage gateway."""

    def __init__(self, storage: StorageGateway):
        self.storage = storage

    def badge(self, user_id: str, role: UserRole) -> bool:
        return has_unread(self.storage.list_applications(), user_id, role)

    def mark_notifications_read(self, user_id: str, role: UserRole) -> int:
        """
        Set viewed_by_<role> on every application matching the badge rule.

        Idempotent and never raises. Returns how many flags were written.
        """
        flag = "viewed_by_student" if role == UserRole.student else "viewed_by_professor"

        try:
            unread = unread_applications(self.storage.list_applications(), user_id, role)
        except PortalError:
            logger.exception("Could not load applications to mark notifications read for %s", user_id)
            return 0

        marked = 0
        for application in unread:
            try:
                self.storage.update_application(application.id, {flag: True})
                marked += 1
            except PortalError as e:
                logger.warning("Could not mark application %s as read for %s: %s",
                               application.id, user_id, e)
        if marked:
            logger.debug("Marked %d notification(s) read for %s %s", marked, role.value, user_id)
        return marked
