"""
Request-scoped dependencies.

The storage gateway and the per-project locks are built once at startup
and kept on app.state; services are created per request around them.
"""

from fastapi import Depends, Request

from ic_portal.services.lifecycle_service import ApplicationLifecycleService, ProjectLocks
from ic_portal.services.notification_service import NotificationService
from ic_portal.services.profile_service import ProfileService
from ic_portal.services.project_service import ProjectService
from ic_portal.services.storage import StorageGateway


def get_storage(request: Request) -> StorageGateway:
    return request.app.state.storage


def get_project_locks(request: Request) -> ProjectLocks:
    return request.app.state.project_locks


def get_lifecycle_service(
    storage: StorageGateway = Depends(get_storage),
    locks: ProjectLocks = Depends(get_project_locks)
) -> ApplicationLifecycleService:
    return ApplicationLifecycleService(storage, locks)


def get_project_service(
    storage: StorageGateway = Depends(get_storage),
    locks: ProjectLocks = Depends(get_project_locks)
) -> ProjectService:
    return ProjectService(storage, locks)


def get_notification_service(storage: StorageGateway = Depends(get_storage)) -> NotificationService:
    return NotificationService(storage)


def get_profile_service(storage: StorageGateway = Depends(get_storage)) -> ProfileService:
    return ProfileService(storage)
