"""
Project Routes

POST /projects - Post a project (professor only)
GET /projects - List projects with filters
GET /projects/mine - Projects owned by the current professor
GET /projects/{project_id} - Project details
PATCH /projects/{project_id} - Edit project (owner only)
POST /projects/{project_id}/reconcile - Recompute open seats (owner only)
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ic_portal.api.deps import get_lifecycle_service, get_project_service, get_storage
from ic_portal.core.auth import get_current_professor, get_current_user
from ic_portal.models import User
from ic_portal.schemas.schemas import ProjectCreate, ProjectResponse, ProjectUpdate
from ic_portal.services.lifecycle_service import ApplicationLifecycleService
from ic_portal.services.project_service import ProjectService
from ic_portal.services.storage import StorageGateway

router = APIRouter(prefix="/projects", tags=["Projects"])


@router.post("", response_model=ProjectResponse, status_code=201)
async def create_project(
    data: ProjectCreate,
    professor: User = Depends(get_current_professor),
    service: ProjectService = Depends(get_project_service)
):
    """Post a new project. Owner name, faculty and department are copied from the profile."""
    project = service.create_project(professor.id, data.model_dump())
    return ProjectResponse.from_project(project)


@router.get("", response_model=List[ProjectResponse])
async def list_projects(
    available_only: bool = Query(False, description="Only projects with open seats"),
    keyword: Optional[str] = None,
    search: Optional[str] = Query(None, description="Matches title, area or theme"),
    user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service)
):
    projects = service.list_projects(available_only=available_only, keyword=keyword, search=search)
    return [ProjectResponse.from_project(p) for p in projects]


@router.get("/mine", response_model=List[ProjectResponse])
async def list_my_projects(
    professor: User = Depends(get_current_professor),
    service: ProjectService = Depends(get_project_service)
):
    return [ProjectResponse.from_project(p) for p in service.list_projects(professor_id=professor.id)]


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: str,
    user: User = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage)
):
    return ProjectResponse.from_project(storage.get_project(project_id))


@router.patch("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: str,
    data: ProjectUpdate,
    professor: User = Depends(get_current_professor),
    service: ProjectService = Depends(get_project_service)
):
    project = service.update_project(professor.id, project_id, data.model_dump(exclude_unset=True))
    return ProjectResponse.from_project(project)


@router.post("/{project_id}/reconcile", response_model=ProjectResponse)
async def reconcile_project(
    project_id: str,
    professor: User = Depends(get_current_professor),
    lifecycle: ApplicationLifecycleService = Depends(get_lifecycle_service)
):
    """Repair the open-seat count from total_vacancies and the reserved applications."""
    return ProjectResponse.from_project(lifecycle.reconcile_vacancies(professor.id, project_id))
