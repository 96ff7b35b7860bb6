from typing import List

from fastapi import APIRouter, Query

from db import SessionDep
from schemas import NotificationRead
from services import notifications as notification_service
from .auth import UserRoleDep

router = APIRouter(tags=["notifications"])


@router.get("/", response_model=List[NotificationRead])
def list_notifications(
    session: SessionDep,
    current: UserRoleDep,
    limit: int = Query(default=notification_service.DEFAULT_LIMIT, ge=1, le=100),
):
    return notification_service.list_notifications(session, current["user"].id, limit)


@router.get("/unread-count")
def unread_count(session: SessionDep, current: UserRoleDep):
    return {"count": notification_service.unread_count(session, current["user"].id)}


@router.post("/read-all")
def mark_all_read(session: SessionDep, current: UserRoleDep):
    updated = notification_service.mark_all_as_read(session, current["user"].id)
    return {"message": "All notifications marked as read", "updated": updated}


@router.post("/{notification_id}/read", response_model=NotificationRead)
def mark_read(notification_id: int, session: SessionDep, current: UserRoleDep):
    return notification_service.mark_as_read(session, notification_id, current["user"].id)
