"""
Notification Routes

GET /notifications - Badge state for the current user
POST /notifications/read - Acknowledge everything behind the badge
"""

from fastapi import APIRouter, Depends

from ic_portal.api.deps import get_notification_service
from ic_portal.core.auth import get_current_user
from ic_portal.models import User
from ic_portal.schemas.schemas import NotificationBadge, NotificationsMarked
from ic_portal.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationBadge)
async def get_badge(
    user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service)
):
    return NotificationBadge(role=user.role, has_unread=service.badge(user.id, user.role))


@router.post("/read", response_model=NotificationsMarked)
async def mark_read(
    user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service)
):
    """Called when the user opens their application list. Marking never fails on storage errors."""
    marked = service.mark_notifications_read(user.id, user.role)
    return NotificationsMarked(marked=marked, has_unread=service.badge(user.id, user.role))
