from fastapi import APIRouter, Depends, Query

from cedo.dependencies.auth import get_auth_context
from cedo.dependencies.services import get_notification_inbox_service
from cedo.schemas.auth import AuthContext
from cedo.schemas.notification import (
    MarkReadRequest,
    MarkReadResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from cedo.services.notification_service import NotificationInboxService


router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationResponse])
def list_notifications(
    unread_only: bool = Query(False, alias="unreadOnly"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    auth: AuthContext = Depends(get_auth_context),
    inbox: NotificationInboxService = Depends(get_notification_inbox_service),
) -> list[NotificationResponse]:
    """Direct, role and broadcast notifications visible to the caller, newest first"""
    rows = inbox.list_for_user(auth, unread_only=unread_only, limit=limit, offset=offset)
    return [NotificationResponse.model_validate(n) for n in rows]


@router.get("/unread-count", response_model=UnreadCountResponse)
def unread_count(
    auth: AuthContext = Depends(get_auth_context),
    inbox: NotificationInboxService = Depends(get_notification_inbox_service),
) -> UnreadCountResponse:
    return UnreadCountResponse(unread_count=inbox.unread_count(auth))


@router.post("/mark-read", response_model=MarkReadResponse)
def mark_read(
    request: MarkReadRequest,
    auth: AuthContext = Depends(get_auth_context),
    inbox: NotificationInboxService = Depends(get_notification_inbox_service),
) -> MarkReadResponse:
    return MarkReadResponse(updated=inbox.mark_read(auth, request.ids))


@router.post("/{notification_id}/archive", response_model=NotificationResponse)
def archive_notification(
    notification_id: int,
    auth: AuthContext = Depends(get_auth_context),
    inbox: NotificationInboxService = Depends(get_notification_inbox_service),
) -> NotificationResponse:
    return NotificationResponse.model_validate(inbox.archive(auth, notification_id))
