"""
User Routes - portal profiles and the student resume

POST /users/me - Create profile for the signed-in account
GET /users/me - Current profile
PATCH /users/me - Update own profile
GET /users - Directory (id, name, role)
GET /users/{user_id} - Profile by id
PUT /users/me/resume - Upload or replace resume (student only)
GET /users/{user_id}/resume - Download a student's resume
"""

from typing import List

from fastapi import APIRouter, Depends, File, Response, UploadFile

from ic_portal.api.deps import get_profile_service, get_storage
from ic_portal.core.auth import get_current_identity, get_current_student, get_current_user
from ic_portal.core.config import get_settings
from ic_portal.core.errors import ValidationError
from ic_portal.models import User
from ic_portal.schemas.schemas import ProfileCreate, ProfileUpdate, UserResponse, UserSummary
from ic_portal.services.profile_service import ProfileService
from ic_portal.services.storage import StorageGateway
from ic_portal.utils.file_upload import decode_content, read_resume_file

router = APIRouter(prefix="/users", tags=["Users"])


@router.post("/me", response_model=UserResponse, status_code=201)
async def create_my_profile(
    data: ProfileCreate,
    identity: dict = Depends(get_current_identity),
    service: ProfileService = Depends(get_profile_service)
):
    """Create the portal profile after the first sign-in. Role is fixed from here on."""
    if not identity.get("email"):
        raise ValidationError("Token carries no email claim")
    user = service.create_profile(identity["user_id"], identity["email"], data.model_dump())
    return UserResponse.from_user(user)


@router.get("/me", response_model=UserResponse)
async def get_my_profile(user: User = Depends(get_current_user)):
    return UserResponse.from_user(user)


@router.patch("/me", response_model=UserResponse)
async def update_my_profile(
    data: ProfileUpdate,
    user: User = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service)
):
    updated = service.update_profile(user.id, data.model_dump(exclude_unset=True))
    return UserResponse.from_user(updated)


@router.put("/me/resume", response_model=UserResponse)
async def upload_resume(
    file: UploadFile = File(...),
    student: User = Depends(get_current_student),
    service: ProfileService = Depends(get_profile_service)
):
    """
    Upload resume (PDF or DOCX, up to the configured size).

    Replaces any previous resume. Having one is required to apply.
    """
    settings = get_settings()
    content, filename, content_type = await read_resume_file(file, settings.max_resume_size_kb)
    updated = service.save_resume(student.id, filename, content_type, content)
    return UserResponse.from_user(updated)


@router.get("", response_model=List[UserSummary])
async def list_users(
    user: User = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage)
):
    return [UserSummary(id=u.id, name=u.name, role=u.role) for u in storage.list_users()]


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    user: User = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage)
):
    return UserResponse.from_user(storage.get_user(user_id))


@router.get("/{user_id}/resume")
async def download_resume(
    user_id: str,
    user: User = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service)
):
    """Resume file. Allowed for its owner and for professors who received an application."""
    resume = service.get_resume(user, user_id)
    return Response(
        content=decode_content(resume.content),
        media_type=resume.content_type,
        headers={"Content-Disposition": f'attachment; filename="{resume.filename}"'}
    )
