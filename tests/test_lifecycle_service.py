"""Application state machine and vacancy accounting."""

import threading

import pytest

from ic_portal.core.errors import (
    AlreadyApplied, Forbidden, InvalidTransition, NoResume, NotFound,
    PartialTransition, ProjectNotFound, TransientIO, ValidationError
)
from ic_portal.models import RESERVED_STATUSES, ApplicationStatus, UserRole
from ic_portal.services.lifecycle_service import ApplicationLifecycleService
from ic_portal.services.notification_service import NotificationService
from ic_portal.services.storage import InMemoryStorage
from tests.conftest import PROJECT_DATA, make_professor, make_student


class FailingVacancyStorage(InMemoryStorage):
    """Status writes succeed, vacancy writes time out."""

    def adjust_vacancies(self, project_id, delta, ceiling=None):
        raise TransientIO()


def vacancies(storage, project_id):
    return storage.get_project(project_id).vacancies


# ============================================================
# APPLY
# ============================================================

def test_apply_creates_pending_application(lifecycle, student, project):
    app = lifecycle.apply_to_project(student.id, project.id, "  I love graphs  ")

    assert app.status == ApplicationStatus.pending
    assert app.professor_id == project.professor_id
    assert app.motivation == "I love graphs"
    assert app.viewed_by_student is True
    assert app.viewed_by_professor is False


def test_apply_does_not_touch_vacancies(lifecycle, storage, student, project):
    lifecycle.apply_to_project(student.id, project.id, "motivation")
    assert vacancies(storage, project.id) == 1


def test_apply_without_resume_fails_even_with_open_seats(lifecycle, storage, project):
    storage.create_user(make_student("stu-2", with_resume=False))
    with pytest.raises(NoResume):
        lifecycle.apply_to_project("stu-2", project.id, "motivation")
    assert storage.list_applications() == []


def test_apply_queues_when_project_is_full(lifecycle, projects, storage, student, professor):
    full = projects.create_project(professor.id, {**PROJECT_DATA, "vacancies": 0})
    app = lifecycle.apply_to_project(student.id, full.id, "motivation")
    assert app.status == ApplicationStatus.pending


def test_apply_twice_fails(lifecycle, storage, student, project):
    lifecycle.apply_to_project(student.id, project.id, "first")
    with pytest.raises(AlreadyApplied):
        lifecycle.apply_to_project(student.id, project.id, "second")
    assert len(storage.list_applications()) == 1


def test_apply_requires_motivation(lifecycle, student, project):
    with pytest.raises(ValidationError):
        lifecycle.apply_to_project(student.id, project.id, "   ")


def test_apply_to_missing_project(lifecycle, student):
    with pytest.raises(ProjectNotFound):
        lifecycle.apply_to_project(student.id, "nope", "motivation")


def test_professor_cannot_apply(lifecycle, professor, project):
    with pytest.raises(Forbidden):
        lifecycle.apply_to_project(professor.id, project.id, "motivation")


# ============================================================
# SELECT / REJECT
# ============================================================

def test_select_reserves_seat_and_notifies_student(lifecycle, storage, student, professor, project):
    app = lifecycle.apply_to_project(student.id, project.id, "motivation")
    other = storage.create_user(make_student("stu-2", name="Bia"))
    other_app = lifecycle.apply_to_project(other.id, project.id, "motivation")

    selected = lifecycle.select_candidate(professor.id, app.id)

    assert selected.status == ApplicationStatus.selected
    assert selected.viewed_by_student is False
    assert vacancies(storage, project.id) == 0
    # Other pending applications are untouched
    assert storage.get_application(other_app.id) == other_app


def test_select_at_zero_vacancies_stays_at_zero(lifecycle, storage, student, professor, project):
    other = storage.create_user(make_student("stu-2", name="Bia"))
    first = lifecycle.apply_to_project(student.id, project.id, "m")
    second = lifecycle.apply_to_project(other.id, project.id, "m")

    lifecycle.select_candidate(professor.id, first.id)
    lifecycle.select_candidate(professor.id, second.id)

    assert vacancies(storage, project.id) == 0


def test_select_requires_pending(lifecycle, student, professor, project):
    app = lifecycle.apply_to_project(student.id, project.id, "m")
    lifecycle.select_candidate(professor.id, app.id)
    with pytest.raises(InvalidTransition):
        lifecycle.select_candidate(professor.id, app.id)


def test_reject_keeps_vacancies(lifecycle, storage, student, professor, project):
    app = lifecycle.apply_to_project(student.id, project.id, "m")
    rejected = lifecycle.reject_candidate(professor.id, app.id)

    assert rejected.status == ApplicationStatus.not_selected
    assert rejected.viewed_by_student is False
    assert vacancies(storage, project.id) == 1


def test_reject_selected_application_fails(lifecycle, storage, student, professor, project):
    app = lifecycle.apply_to_project(student.id, project.id, "m")
    lifecycle.select_candidate(professor.id, app.id)

    with pytest.raises(InvalidTransition):
        lifecycle.reject_candidate(professor.id, app.id)
    assert storage.get_application(app.id).status == ApplicationStatus.selected


def test_only_owner_professor_can_select(lifecycle, storage, student, project):
    intruder = storage.create_user(make_professor("prof-2", name="Other"))
    app = lifecycle.apply_to_project(student.id, project.id, "m")

    with pytest.raises(Forbidden):
        lifecycle.select_candidate(intruder.id, app.id)
    assert storage.get_application(app.id).status == ApplicationStatus.pending


def test_select_with_deleted_project_fails_before_writing(lifecycle, storage, student, professor, project):
    app = lifecycle.apply_to_project(student.id, project.id, "m")
    del storage._projects[project.id]

    with pytest.raises(ProjectNotFound):
        lifecycle.select_candidate(professor.id, app.id)
    assert storage.get_application(app.id).status == ApplicationStatus.pending


def test_select_missing_application(lifecycle, professor):
    with pytest.raises(NotFound):
        lifecycle.select_candidate(professor.id, "missing")


# ============================================================
# RESPOND / CANCEL
# ============================================================

def test_accept_keeps_seat_and_notifies_professor(lifecycle, storage, student, professor, project):
    app = lifecycle.apply_to_project(student.id, project.id, "m")
    lifecycle.select_candidate(professor.id, app.id)

    accepted = lifecycle.respond_to_offer(student.id, app.id, accept=True)

    assert accepted.status == ApplicationStatus.accepted
    assert accepted.viewed_by_professor is False
    assert vacancies(storage, project.id) == 0


def test_decline_scenario(lifecycle, projects, storage, student, professor):
    project = projects.create_project(professor.id, {**PROJECT_DATA, "vacancies": 2})
    app = lifecycle.apply_to_project(student.id, project.id, "m")

    lifecycle.select_candidate(professor.id, app.id)
    assert vacancies(storage, project.id) == 1

    declined = lifecycle.respond_to_offer(student.id, app.id, accept=False)
    assert declined.status == ApplicationStatus.declined
    assert vacancies(storage, project.id) == 2

    notifications = NotificationService(storage)
    assert notifications.badge(professor.id, UserRole.professor) is True
    notifications.mark_notifications_read(professor.id, UserRole.professor)
    assert notifications.badge(professor.id, UserRole.professor) is False


def test_select_decline_reselect_round_trip(lifecycle, projects, storage, student, professor):
    project = projects.create_project(professor.id, {**PROJECT_DATA, "vacancies": 3})
    other = storage.create_user(make_student("stu-2", name="Bia"))
    first = lifecycle.apply_to_project(student.id, project.id, "m")
    second = lifecycle.apply_to_project(other.id, project.id, "m")

    lifecycle.select_candidate(professor.id, first.id)
    lifecycle.respond_to_offer(student.id, first.id, accept=False)
    assert vacancies(storage, project.id) == 3

    lifecycle.select_candidate(professor.id, second.id)
    lifecycle.respond_to_offer(other.id, second.id, accept=False)
    assert vacancies(storage, project.id) == 3


def test_respond_requires_selected(lifecycle, student, project):
    app = lifecycle.apply_to_project(student.id, project.id, "m")
    with pytest.raises(InvalidTransition):
        lifecycle.respond_to_offer(student.id, app.id, accept=True)


def test_respond_twice_fails(lifecycle, storage, student, professor, project):
    app = lifecycle.apply_to_project(student.id, project.id, "m")
    lifecycle.select_candidate(professor.id, app.id)
    lifecycle.respond_to_offer(student.id, app.id, accept=False)

    with pytest.raises(InvalidTransition):
        lifecycle.respond_to_offer(student.id, app.id, accept=False)
    assert vacancies(storage, project.id) == 1


def test_other_student_cannot_respond(lifecycle, storage, student, professor, project):
    other = storage.create_user(make_student("stu-2", name="Bia"))
    app = lifecycle.apply_to_project(student.id, project.id, "m")
    lifecycle.select_candidate(professor.id, app.id)

    with pytest.raises(Forbidden):
        lifecycle.respond_to_offer(other.id, app.id, accept=True)


def test_cancel_selected_releases_seat(lifecycle, storage, student, professor, project):
    app = lifecycle.apply_to_project(student.id, project.id, "m")
    lifecycle.select_candidate(professor.id, app.id)
    assert vacancies(storage, project.id) == 0

    lifecycle.cancel_application(student.id, app.id)

    with pytest.raises(NotFound):
        storage.get_application(app.id)
    assert vacancies(storage, project.id) == 1


def test_cancel_pending_keeps_vacancies(lifecycle, storage, student, project):
    app = lifecycle.apply_to_project(student.id, project.id, "m")
    lifecycle.cancel_application(student.id, app.id)

    assert storage.list_applications() == []
    assert vacancies(storage, project.id) == 1


@pytest.mark.parametrize("accept", [True, False])
def test_cancel_after_response_fails(lifecycle, storage, student, professor, project, accept):
    app = lifecycle.apply_to_project(student.id, project.id, "m")
    lifecycle.select_candidate(professor.id, app.id)
    lifecycle.respond_to_offer(student.id, app.id, accept=accept)

    with pytest.raises(InvalidTransition):
        lifecycle.cancel_application(student.id, app.id)
    assert storage.get_application(app.id)


def test_cancel_lets_student_apply_again(lifecycle, storage, student, project):
    app = lifecycle.apply_to_project(student.id, project.id, "m")
    lifecycle.cancel_application(student.id, app.id)
    again = lifecycle.apply_to_project(student.id, project.id, "second try")
    assert again.status == ApplicationStatus.pending


# ============================================================
# CEILING / DANGLING / PARTIAL FAILURES
# ============================================================

def test_release_is_capped_at_total(lifecycle, storage, student, professor, project):
    app = lifecycle.apply_to_project(student.id, project.id, "m")
    lifecycle.select_candidate(professor.id, app.id)
    # Someone bumped the count out of band
    storage.update_project(project.id, {"vacancies": 1})

    lifecycle.respond_to_offer(student.id, app.id, accept=False)

    assert vacancies(storage, project.id) == 1


def test_release_without_total_is_uncapped(lifecycle, storage, student, professor, project):
    storage.update_project(project.id, {"total_vacancies": None})
    app = lifecycle.apply_to_project(student.id, project.id, "m")
    lifecycle.select_candidate(professor.id, app.id)
    storage.update_project(project.id, {"vacancies": 1})

    lifecycle.respond_to_offer(student.id, app.id, accept=False)

    assert vacancies(storage, project.id) == 2


def test_decline_with_deleted_project_still_lands(lifecycle, storage, student, professor, project):
    app = lifecycle.apply_to_project(student.id, project.id, "m")
    lifecycle.select_candidate(professor.id, app.id)
    del storage._projects[project.id]

    declined = lifecycle.respond_to_offer(student.id, app.id, accept=False)
    assert declined.status == ApplicationStatus.declined


def test_vacancy_failure_raises_partial_transition(professor):
    storage = FailingVacancyStorage()
    storage.create_user(professor)
    storage.create_user(make_student())
    project = storage.create_project({
        **PROJECT_DATA, "professor_id": professor.id, "professor_name": professor.name,
        "faculty": "POLI", "department": "PCS", "keywords": ["graphs"],
        "has_scholarship": False, "total_vacancies": 1,
    })
    lifecycle = ApplicationLifecycleService(storage)
    app = lifecycle.apply_to_project("stu-1", project.id, "m")

    with pytest.raises(PartialTransition) as exc_info:
        lifecycle.select_candidate(professor.id, app.id)

    assert isinstance(exc_info.value, TransientIO)
    assert app.id in exc_info.value.message
    # The status write stands, the seat count does not
    assert storage.get_application(app.id).status == ApplicationStatus.selected
    assert storage.get_project(project.id).vacancies == 1


# ============================================================
# RECONCILE
# ============================================================

def test_reconcile_repairs_count(lifecycle, storage, student, professor, project):
    app = lifecycle.apply_to_project(student.id, project.id, "m")
    lifecycle.select_candidate(professor.id, app.id)
    storage.update_project(project.id, {"vacancies": 1})

    repaired = lifecycle.reconcile_vacancies(professor.id, project.id)

    assert repaired.vacancies == 0
    assert repaired.total_vacancies == 1


def test_reconcile_adopts_total_for_legacy_project(lifecycle, storage, student, professor, project):
    app = lifecycle.apply_to_project(student.id, project.id, "m")
    lifecycle.select_candidate(professor.id, app.id)
    storage.update_project(project.id, {"total_vacancies": None, "vacancies": 2})

    repaired = lifecycle.reconcile_vacancies(professor.id, project.id)

    assert repaired.total_vacancies == 3
    assert repaired.vacancies == 2


def test_reconcile_is_owner_only(lifecycle, student, project):
    with pytest.raises(Forbidden):
        lifecycle.reconcile_vacancies(student.id, project.id)


def test_vacancies_never_negative(lifecycle, projects, storage, professor):
    project = projects.create_project(professor.id, {**PROJECT_DATA, "vacancies": 1})
    apps = []
    for i in range(4):
        user = storage.create_user(make_student(f"stu-{i}", name=f"Student {i}"))
        apps.append(lifecycle.apply_to_project(user.id, project.id, "m"))

    for app in apps:
        lifecycle.select_candidate(professor.id, app.id)
        assert vacancies(storage, project.id) >= 0
    for i, app in enumerate(apps):
        lifecycle.respond_to_offer(app.student_id, app.id, accept=i % 2 == 0)
        assert 0 <= vacancies(storage, project.id) <= 1


def held_seats(storage, project_id):
    return sum(
        1 for a in storage.list_applications()
        if a.project_id == project_id and a.status in RESERVED_STATUSES
    )


def test_decline_does_not_release_seat_still_held(lifecycle, storage, professor, project):
    apps = []
    for i in range(3):
        user = storage.create_user(make_student(f"stu-{i}", name=f"Student {i}"))
        apps.append(lifecycle.apply_to_project(user.id, project.id, "m"))

    lifecycle.select_candidate(professor.id, apps[0].id)
    # No seat left, the second selection is clamped at 0
    lifecycle.select_candidate(professor.id, apps[1].id)
    lifecycle.respond_to_offer(apps[0].student_id, apps[0].id, accept=False)

    # apps[1] still holds the project's only seat
    assert vacancies(storage, project.id) == 0
    assert vacancies(storage, project.id) + held_seats(storage, project.id) <= 1


def test_cancel_does_not_release_seat_still_held(lifecycle, projects, storage, professor):
    project = projects.create_project(professor.id, {**PROJECT_DATA, "vacancies": 2})
    apps = []
    for i in range(3):
        user = storage.create_user(make_student(f"stu-{i}", name=f"Student {i}"))
        apps.append(lifecycle.apply_to_project(user.id, project.id, "m"))
    for app in apps:
        lifecycle.select_candidate(professor.id, app.id)
    assert vacancies(storage, project.id) == 0

    lifecycle.cancel_application(apps[0].student_id, apps[0].id)
    assert vacancies(storage, project.id) == 0

    lifecycle.cancel_application(apps[1].student_id, apps[1].id)
    assert vacancies(storage, project.id) == 1
    assert vacancies(storage, project.id) + held_seats(storage, project.id) == 2


# ============================================================
# CONCURRENCY
# ============================================================

def run_together(*calls):
    """Start every call at the same instant, return what each raised (or None)."""
    barrier = threading.Barrier(len(calls))
    outcomes = [None] * len(calls)

    def worker(index, call):
        barrier.wait()
        try:
            call()
        except Exception as e:
            outcomes[index] = e

    threads = [threading.Thread(target=worker, args=(i, c)) for i, c in enumerate(calls)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return outcomes


def test_concurrent_select_and_cancel_keep_seats_balanced(lifecycle, projects, storage, professor):
    for round_number in range(20):
        project = projects.create_project(professor.id, {**PROJECT_DATA, "vacancies": 2})
        waiting = storage.create_user(make_student(f"a-{round_number}", name="Waiting"))
        leaving = storage.create_user(make_student(f"b-{round_number}", name="Leaving"))
        to_select = lifecycle.apply_to_project(waiting.id, project.id, "m")
        to_cancel = lifecycle.apply_to_project(leaving.id, project.id, "m")
        lifecycle.select_candidate(professor.id, to_cancel.id)

        outcomes = run_together(
            lambda: lifecycle.select_candidate(professor.id, to_select.id),
            lambda: lifecycle.cancel_application(leaving.id, to_cancel.id),
        )

        assert outcomes == [None, None]
        assert vacancies(storage, project.id) == 1
        assert vacancies(storage, project.id) + held_seats(storage, project.id) == 2


def test_concurrent_selects_of_one_application_reserve_one_seat(lifecycle, projects, storage,
                                                                student, professor):
    project = projects.create_project(professor.id, {**PROJECT_DATA, "vacancies": 3})
    app = lifecycle.apply_to_project(student.id, project.id, "m")

    outcomes = run_together(*[
        lambda: lifecycle.select_candidate(professor.id, app.id) for _ in range(6)
    ])

    assert sum(1 for o in outcomes if o is None) == 1
    assert all(isinstance(o, InvalidTransition) for o in outcomes if o is not None)
    assert vacancies(storage, project.id) == 2


def test_concurrent_responses_release_at_most_once(lifecycle, storage, student, professor, project):
    app = lifecycle.apply_to_project(student.id, project.id, "m")
    lifecycle.select_candidate(professor.id, app.id)

    outcomes = run_together(
        lambda: lifecycle.respond_to_offer(student.id, app.id, accept=False),
        lambda: lifecycle.cancel_application(student.id, app.id),
        lambda: lifecycle.respond_to_offer(student.id, app.id, accept=False),
    )

    assert sum(1 for o in outcomes if o is None) == 1
    assert vacancies(storage, project.id) == 1
