"""
Application Routes

POST /applications - Apply to a project (student only)
GET /applications/mine - The student's own applications
GET /applications/received - Applications to the professor's projects
POST /applications/{application_id}/select - Select candidate (owner professor)
POST /applications/{application_id}/reject - Reject candidate (owner professor)
POST /applications/{application_id}/respond - Accept or decline an offer (student)
DELETE /applications/{application_id} - Cancel a pending or selected application (student)
"""

from typing import List, Optional

from fastapi import APIRouter, Depends

from ic_portal.api.deps import get_lifecycle_service, get_storage
from ic_portal.core.auth import get_current_professor, get_current_student
from ic_portal.models import Application, User
from ic_portal.schemas.schemas import (
    ApplicationCreate, ApplicationResponse, MessageResponse, OfferResponse
)
from ic_portal.services.lifecycle_service import ApplicationLifecycleService
from ic_portal.services.storage import StorageGateway

router = APIRouter(prefix="/applications", tags=["Applications"])


def with_display_names(
    applications: List[Application],
    storage: StorageGateway
) -> List[ApplicationResponse]:
    """Attach project title and student name; missing records just leave them empty."""
    titles = {p.id: p.title for p in storage.list_projects()}
    names = {u.id: u.name for u in storage.list_users()}
    return [
        ApplicationResponse.from_application(a, titles.get(a.project_id), names.get(a.student_id))
        for a in sorted(applications, key=lambda a: a.application_date, reverse=True)
    ]


@router.post("", response_model=ApplicationResponse, status_code=201)
async def apply_to_project(
    data: ApplicationCreate,
    student: User = Depends(get_current_student),
    lifecycle: ApplicationLifecycleService = Depends(get_lifecycle_service),
    storage: StorageGateway = Depends(get_storage)
):
    """Apply with a motivation letter. Requires an uploaded resume; one application per project."""
    application = lifecycle.apply_to_project(student.id, data.project_id, data.motivation)
    return with_display_names([application], storage)[0]


@router.get("/mine", response_model=List[ApplicationResponse])
async def my_applications(
    student: User = Depends(get_current_student),
    storage: StorageGateway = Depends(get_storage)
):
    mine = [a for a in storage.list_applications() if a.student_id == student.id]
    return with_display_names(mine, storage)


@router.get("/received", response_model=List[ApplicationResponse])
async def received_applications(
    project_id: Optional[str] = None,
    professor: User = Depends(get_current_professor),
    storage: StorageGateway = Depends(get_storage)
):
    received = [
        a for a in storage.list_applications()
        if a.professor_id == professor.id and (project_id is None or a.project_id == project_id)
    ]
    return with_display_names(received, storage)


@router.post("/{application_id}/select", response_model=ApplicationResponse)
async def select_candidate(
    application_id: str,
    professor: User = Depends(get_current_professor),
    lifecycle: ApplicationLifecycleService = Depends(get_lifecycle_service),
    storage: StorageGateway = Depends(get_storage)
):
    application = lifecycle.select_candidate(professor.id, application_id)
    return with_display_names([application], storage)[0]


@router.post("/{application_id}/reject", response_model=ApplicationResponse)
async def reject_candidate(
    application_id: str,
    professor: User = Depends(get_current_professor),
    lifecycle: ApplicationLifecycleService = Depends(get_lifecycle_service),
    storage: StorageGateway = Depends(get_storage)
):
    application = lifecycle.reject_candidate(professor.id, application_id)
    return with_display_names([application], storage)[0]


@router.post("/{application_id}/respond", response_model=ApplicationResponse)
async def respond_to_offer(
    application_id: str,
    data: OfferResponse,
    student: User = Depends(get_current_student),
    lifecycle: ApplicationLifecycleService = Depends(get_lifecycle_service),
    storage: StorageGateway = Depends(get_storage)
):
    """Accept keeps the reserved seat, decline gives it back to the project."""
    application = lifecycle.respond_to_offer(student.id, application_id, data.accept)
    return with_display_names([application], storage)[0]


@router.delete("/{application_id}", response_model=MessageResponse)
async def cancel_application(
    application_id: str,
    student: User = Depends(get_current_student),
    lifecycle: ApplicationLifecycleService = Depends(get_lifecycle_service)
):
    lifecycle.cancel_application(student.id, application_id)
    return MessageResponse(message="Application cancelled")
