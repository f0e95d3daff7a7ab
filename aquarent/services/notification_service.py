"""
Notification Fan-out

Derives in-app notifications from lifecycle transitions.

Two delivery modes:
- notify(): the row is added to the caller's open transaction and commits
  or rolls back together with the transition that produced it.
- defer(): informational messages (franchise-owner FYIs) are queued and
  written by dispatch_deferred() after the main transaction has committed.
  A failure there is logged and never undoes the committed transition.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from aquarent.core.permissions import Action, Actor, ResourceScope, ensure_allowed
from aquarent.database import atomic
from aquarent.models.notification import Notification, NotificationType
from aquarent.services.lookups import get_or_404

logger = logging.getLogger(__name__)


@dataclass
class PendingNotification:
    user_id: int
    title: str
    message: str
    type: str
    related_id: Optional[int] = None
    related_type: Optional[str] = None

    def to_model(self) -> Notification:
        return Notification(
            user_id=self.user_id,
            title=self.title,
            message=self.message,
            type=self.type,
            related_id=self.related_id,
            related_type=self.related_type,
            is_read=False,
        )


class NotificationService:
    """Service for lifecycle notifications."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._deferred: List[PendingNotification] = []

    def notify(
        self,
        user_id: int,
        title: str,
        message: str,
        type: NotificationType,
        related_id: Optional[int] = None,
        related_type: Optional[str] = None,
    ) -> Notification:
        """Add a notification to the current transaction."""
        notification = PendingNotification(
            user_id, title, message, type.value, related_id, related_type
        ).to_model()
        self.db.add(notification)
        return notification

    def defer(
        self,
        user_id: Optional[int],
        title: str,
        message: str,
        type: NotificationType,
        related_id: Optional[int] = None,
        related_type: Optional[str] = None,
    ) -> None:
        """Queue an informational notification for after the commit."""
        if user_id is None:
            return
        self._deferred.append(
            PendingNotification(user_id, title, message, type.value, related_id, related_type)
        )

    async def dispatch_deferred(self) -> int:
        """
        Write queued notifications in their own session and short transaction.

        Returns the number written; 0 if the queue was empty or the write failed.
        """
        if not self._deferred:
            return 0

        pending, self._deferred = self._deferred, []
        try:
            async with AsyncSession(self.db.bind, expire_on_commit=False) as session:
                async with atomic(session):
                    session.add_all([item.to_model() for item in pending])
        except Exception as e:
            logger.warning(
                f"Dropped {len(pending)} informational notification(s): {type(e).__name__}: {e}"
            )
            return 0
        return len(pending)

    async def list_notifications(
        self,
        actor: Actor,
        unread_only: bool = False,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Notification], int]:
        """Get the actor's own notifications, newest first."""
        query = select(Notification).where(Notification.user_id == actor.user_id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))

        query = query.order_by(Notification.created_at.desc(), Notification.id.desc())
        result = await self.db.execute(query.offset(skip).limit(limit))
        return list(result.scalars().all()), total or 0

    async def mark_read(self, notification_id: int, actor: Actor) -> Notification:
        """Mark one of the actor's notifications as read."""
        async with atomic(self.db):
            notification = await get_or_404(
                self.db, Notification, notification_id, label="Notification"
            )
            ensure_allowed(
                actor, ResourceScope(customer_id=notification.user_id), Action.NOTIFICATION_READ
            )
            notification.is_read = True
        return notification
