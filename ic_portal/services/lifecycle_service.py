"""
Application Lifecycle Service

The only place that moves an Application's status, and with it the
owning Project's vacancy count. Routes never write status/vacancies
directly.

STATE MACHINE:
    pending ──select──▶ selected ──accept──▶ accepted
       │                   │
       │                   └──decline──▶ declined      (seat released)
       └──reject──▶ not_selected
    pending / selected ──cancel──▶ (row deleted)       (seat released if selected)

VACANCY ACCOUNTING:
- A seat is reserved (vacancies - 1, floored at 0) only on select, so
  several students can queue for one slot.
- A seat is released (vacancies + 1) on decline or on cancel while
  selected, capped at total_vacancies minus the seats still held by
  selected/accepted applications, so a release never hands back a seat
  that a select clamped at 0 never took.
- Exactly one adjustment per transition.

WRITE ORDER:
1. compare-and-set the application status (fails fast if it moved on)
2. adjust the project's vacancies
If step 2 fails after step 1 landed we raise PartialTransition; the
owning professor can run reconcile_vacancies to repair the count.

All mutations on one project are serialized by an in-process lock.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Optional

from ic_portal.core.errors import (
    AlreadyApplied, Forbidden, InvalidTransition, NoResume, NotFound,
    PartialTransition, TransientIO, ValidationError
)
from ic_portal.models import (
    Application, ApplicationStatus, Project, RESERVED_STATUSES, UserRole, utc_now
)
from ic_portal.services.storage import StorageGateway

logger = logging.getLogger(__name__)


# ============================================================
# PER-PROJECT LOCKS
# ============================================================

class ProjectLocks:
    """One lock per project id, created on first use."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    @contextmanager
    def hold(self, project_id: str):
        with self._guard:
            lock = self._locks.setdefault(project_id, threading.RLock())
        with lock:
            yield


# ============================================================
# LIFECYCLE ENGINE
# ============================================================

class ApplicationLifecycleService:
    """
    Status transitions and their vacancy side effects.

    Every public method re-reads current state from storage, so a caller
    that got TransientIO can simply retry the whole call.
    """

    def __init__(self, storage: StorageGateway, locks: Optional[ProjectLocks] = None):
        self.storage = storage
        self.locks = locks or ProjectLocks()

    # ---------------- student actions ----------------

    def apply_to_project(self, student_id: str, project_id: str, motivation: str) -> Application:
        """
        Create a pending application.

        Open vacancies are NOT required: applications queue until the
        professor selects someone.
        """
        if not motivation or not motivation.strip():
            raise ValidationError("Motivation is required")

        student = self.storage.get_user(student_id)
        if student.role != UserRole.student:
            raise Forbidden("Only students can apply to projects")
        if not student.has_resume:
            raise NoResume()

        project = self.storage.get_project(project_id)

        with self.locks.hold(project.id):
            already = any(
                a.student_id == student_id and a.project_id == project.id
                for a in self.storage.list_applications()
            )
            if already:
                raise AlreadyApplied()

            application = self.storage.create_application({
                "student_id": student_id,
                "project_id": project.id,
                "professor_id": project.professor_id,
                "motivation": motivation.strip(),
                "application_date": utc_now(),
                "status": ApplicationStatus.pending,
                "viewed_by_professor": False,
                "viewed_by_student": True,
            })

        logger.info("Student %s applied to project %s (application %s)",
                    student_id, project.id, application.id)
        return application

    def respond_to_offer(self, student_id: str, application_id: str, accept: bool) -> Application:
        """Accept (keep the seat) or decline (release the seat) a selection."""
        application = self._owned_by_student(student_id, application_id)
        target = ApplicationStatus.accepted if accept else ApplicationStatus.declined

        with self.locks.hold(application.project_id):
            updated = self._transition(
                application,
                ApplicationStatus.selected,
                {"status": target, "viewed_by_professor": False}
            )
            if target == ApplicationStatus.declined:
                self._move_seat(updated, +1)

        logger.info("Student %s %s offer %s", student_id, target.value, application_id)
        return updated

    def cancel_application(self, student_id: str, application_id: str) -> None:
        """Delete a pending or selected application; a selected one gives its seat back."""
        application = self._owned_by_student(student_id, application_id)
        if application.status not in (ApplicationStatus.pending, ApplicationStatus.selected):
            raise InvalidTransition(
                f"Application {application_id} is {application.status.value} and can no longer be cancelled"
            )

        with self.locks.hold(application.project_id):
            removed = self.storage.delete_application(application_id, expected_status=application.status)
            if not removed:
                # Raises NotFound if someone else deleted it; otherwise its status moved on
                self.storage.get_application(application_id)
                raise InvalidTransition()
            if application.status == ApplicationStatus.selected:
                self._move_seat(application, +1)

        logger.info("Student %s cancelled application %s (was %s)",
                    student_id, application_id, application.status.value)

    # ---------------- professor actions ----------------

    def select_candidate(self, professor_id: str, application_id: str) -> Application:
        """Pending -> selected, reserving one seat on the project."""
        application = self._owned_by_professor(professor_id, application_id)
        # Seat reservation needs the project to exist before we touch the status
        self.storage.get_project(application.project_id)

        with self.locks.hold(application.project_id):
            updated = self._transition(
                application,
                ApplicationStatus.pending,
                {"status": ApplicationStatus.selected, "viewed_by_student": False}
            )
            self._move_seat(updated, -1)

        logger.info("Professor %s selected application %s", professor_id, application_id)
        return updated

    def reject_candidate(self, professor_id: str, application_id: str) -> Application:
        """Pending -> not_selected. No seat was reserved, so vacancies stay put."""
        application = self._owned_by_professor(professor_id, application_id)

        with self.locks.hold(application.project_id):
            updated = self._transition(
                application,
                ApplicationStatus.pending,
                {"status": ApplicationStatus.not_selected, "viewed_by_student": False}
            )

        logger.info("Professor %s rejected application %s", professor_id, application_id)
        return updated

    def reconcile_vacancies(self, professor_id: str, project_id: str) -> Project:
        """
        Repair a project's vacancy count from its applications.

        vacancies = total_vacancies - seats held by selected/accepted
        Projects without a recorded total adopt the current state as
        their total (vacancies + held seats).
        """
        project = self.storage.get_project(project_id)
        if project.professor_id != professor_id:
            raise Forbidden("Only the project owner can reconcile its vacancies")

        with self.locks.hold(project_id):
            project = self.storage.get_project(project_id)
            reserved = self._held_seats(project_id)
            total = project.total_vacancies
            if total is None:
                total = project.vacancies + reserved
            vacancies = max(0, total - reserved)
            repaired = self.storage.update_project(
                project_id, {"vacancies": vacancies, "total_vacancies": total}
            )

        if repaired.vacancies != project.vacancies:
            logger.warning("Project %s vacancies reconciled %d -> %d (total %d, reserved %d)",
                           project_id, project.vacancies, repaired.vacancies, total, reserved)
        return repaired

    # ---------------- internals ----------------

    def _owned_by_student(self, student_id: str, application_id: str) -> Application:
        application = self.storage.get_application(application_id)
        if application.student_id != student_id:
            raise Forbidden("This application belongs to another student")
        return application

    def _owned_by_professor(self, professor_id: str, application_id: str) -> Application:
        application = self.storage.get_application(application_id)
        if application.professor_id != professor_id:
            raise Forbidden("This application was sent to another professor")
        return application

    def _transition(
        self,
        application: Application,
        expected: ApplicationStatus,
        fields: dict
    ) -> Application:
        if application.status != expected:
            raise InvalidTransition(
                f"Application {application.id} is {application.status.value}, expected {expected.value}"
            )
        updated = self.storage.transition_application(application.id, expected, fields)
        if updated is None:
            raise InvalidTransition()
        return updated

    def _held_seats(self, project_id: str) -> int:
        return sum(
            1 for a in self.storage.list_applications()
            if a.project_id == project_id and a.status in RESERVED_STATUSES
        )

    def _move_seat(self, application: Application, delta: int) -> None:
        """Reserve (-1) or release (+1) one seat after the status write landed."""
        project_id = application.project_id
        try:
            before = self.storage.get_project(project_id)
            ceiling = None
            if delta > 0 and before.total_vacancies is not None:
                ceiling = max(0, before.total_vacancies - self._held_seats(project_id))
            after = self.storage.adjust_vacancies(project_id, delta, ceiling)
        except NotFound:
            # Dangling reference: the status change stands, there is no seat to move
            logger.warning("Project %s missing while moving a seat for application %s",
                           project_id, application.id)
            return
        except TransientIO as e:
            logger.exception("Vacancy update failed for project %s after application %s changed",
                             project_id, application.id)
            raise PartialTransition(application.id, project_id) from e

        if after.vacancies == before.vacancies:
            logger.warning("Project %s vacancies held at %d (delta %+d, total %s)",
                           project_id, after.vacancies, delta, after.total_vacancies)
        elif delta > 0 and after.total_vacancies is None:
            logger.warning("Project %s has no total_vacancies, released seat is uncapped", project_id)
