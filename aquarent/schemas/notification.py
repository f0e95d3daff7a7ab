"""Notification schemas."""
from datetime import datetime
from typing import Optional, List

from aquarent.schemas.base import BaseResponseSchema


class NotificationResponse(BaseResponseSchema):
    id: int
    user_id: int
    title: str
    message: str
    type: str
    related_id: Optional[int] = None
    related_type: Optional[str] = None
    is_read: bool
    created_at: datetime


class NotificationListResponse(BaseResponseSchema):
    items: List[NotificationResponse]
    total: int
    unread_only: bool
