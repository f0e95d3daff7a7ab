"""Notification inbox endpoints."""
from fastapi import APIRouter, Query

from aquarent.api.deps import DB, CurrentActor
from aquarent.schemas.notification import NotificationResponse, NotificationListResponse
from aquarent.services.notification_service import NotificationService

router = APIRouter(tags=["Notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    db: DB,
    actor: CurrentActor,
    unread_only: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    items, total = await NotificationService(db).list_notifications(
        actor, unread_only=unread_only, skip=skip, limit=limit
    )
    return NotificationListResponse(
        items=[NotificationResponse.model_validate(n) for n in items],
        total=total,
        unread_only=unread_only,
    )


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(notification_id: int, db: DB, actor: CurrentActor):
    return await NotificationService(db).mark_read(notification_id, actor)
