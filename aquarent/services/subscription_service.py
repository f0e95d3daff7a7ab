"""
Subscription Lifecycle Manager

Pause, resume, auto-renew and cancellation of rental subscriptions, plus the
time-driven expiry sweep run by the background scheduler.

Pausing extends end_date by the full pause window up front so the customer
never loses paid-for time. Resume is a pure status flip and does not
re-measure how long the subscription actually stayed paused; an early resume
keeps the whole extension.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aquarent.core.exceptions import ConflictError, ValidationFailedError, InvalidStateError
from aquarent.core.permissions import Action, Actor, ResourceScope, ensure_allowed
from aquarent.database import atomic, guarded_status_update, utcnow
from aquarent.models.notification import NotificationType
from aquarent.models.subscription import Subscription, SubscriptionStatus
from aquarent.schemas.subscription import SubscriptionUpdate
from aquarent.services.lookups import get_or_404, franchise_owner_id
from aquarent.services.notification_service import NotificationService
from aquarent.services.state_machines import SUBSCRIPTION_TRANSITIONS

logger = logging.getLogger(__name__)


class SubscriptionService:
    """Service for subscription lifecycle operations."""

    def __init__(self, db: AsyncSession, notifications: Optional[NotificationService] = None):
        self.db = db
        self.notifications = notifications or NotificationService(db)

    async def _scope(self, subscription: Subscription) -> ResourceScope:
        return ResourceScope(
            customer_id=subscription.customer_id,
            franchise_owner_id=await franchise_owner_id(self.db, subscription.franchise_id),
            agent_id=subscription.service_agent_id,
        )

    async def _load_locked(self, subscription_id: int) -> Subscription:
        return await get_or_404(
            self.db, Subscription, subscription_id, for_update=True, label="Subscription"
        )

    def _notify_status(self, subscription: Subscription, status: str) -> None:
        self.notifications.notify(
            subscription.customer_id,
            "Subscription Updated",
            f"Your subscription status has been updated to {status}",
            NotificationType.SUBSCRIPTION,
            related_id=subscription.id,
            related_type="subscription",
        )

    async def get_subscription(self, subscription_id: int, actor: Actor) -> Subscription:
        """Get a subscription the actor is allowed to see."""
        subscription = await get_or_404(self.db, Subscription, subscription_id, label="Subscription")
        ensure_allowed(actor, await self._scope(subscription), Action.SUBSCRIPTION_VIEW)
        return subscription

    # ==================== TRANSITIONS (no commit) ====================

    async def _pause(self, subscription: Subscription, pause_end_date: Optional[datetime]) -> None:
        if pause_end_date is None:
            raise ValidationFailedError("pause_end_date is required to pause a subscription")
        if pause_end_date.tzinfo is None:
            pause_end_date = pause_end_date.replace(tzinfo=timezone.utc)

        now = utcnow()
        if pause_end_date <= now:
            raise ValidationFailedError("pause_end_date must be in the future")
        SUBSCRIPTION_TRANSITIONS.validate_transition(
            subscription.status, SubscriptionStatus.PAUSED.value
        )
        pause_duration = pause_end_date - now
        await guarded_status_update(
            self.db, Subscription, subscription.id,
            SubscriptionStatus.ACTIVE.value, SubscriptionStatus.PAUSED.value,
            end_date=subscription.end_date + pause_duration,
            pause_started_at=now,
            pause_end_date=pause_end_date,
        )
        self._notify_status(subscription, SubscriptionStatus.PAUSED.value)

    async def _resume(self, subscription: Subscription) -> None:
        if subscription.status != SubscriptionStatus.PAUSED.value:
            raise InvalidStateError(
                f"Only paused subscriptions can be resumed, this one is '{subscription.status}'"
            )
        await guarded_status_update(
            self.db, Subscription, subscription.id,
            SubscriptionStatus.PAUSED.value, SubscriptionStatus.ACTIVE.value,
            pause_started_at=None,
            pause_end_date=None,
        )
        self._notify_status(subscription, SubscriptionStatus.ACTIVE.value)

    def _set_auto_renew(self, subscription: Subscription, auto_renew: bool) -> None:
        subscription.auto_renew = auto_renew
        state = "enabled" if auto_renew else "disabled"
        self.notifications.notify(
            subscription.customer_id,
            "Subscription Updated",
            f"Auto-renewal has been {state} for your subscription.",
            NotificationType.SUBSCRIPTION,
            related_id=subscription.id,
            related_type="subscription",
        )

    # ==================== OPERATIONS ====================

    async def pause(self, subscription_id: int, actor: Actor, pause_end_date: Optional[datetime]) -> Subscription:
        """Pause an active subscription until ``pause_end_date``, extending end_date by the window."""
        async with atomic(self.db):
            subscription = await self._load_locked(subscription_id)
            ensure_allowed(actor, await self._scope(subscription), Action.SUBSCRIPTION_MANAGE)
            await self._pause(subscription, pause_end_date)

        logger.info(
            f"Subscription {subscription.id} paused until {subscription.pause_end_date} "
            f"by user {actor.user_id}, end_date now {subscription.end_date}"
        )
        return subscription

    async def resume(self, subscription_id: int, actor: Actor) -> Subscription:
        """Resume a paused subscription."""
        async with atomic(self.db):
            subscription = await self._load_locked(subscription_id)
            ensure_allowed(actor, await self._scope(subscription), Action.SUBSCRIPTION_MANAGE)
            await self._resume(subscription)

        logger.info(f"Subscription {subscription.id} resumed by user {actor.user_id}")
        return subscription

    async def set_auto_renew(self, subscription_id: int, actor: Actor, auto_renew: bool) -> Subscription:
        """Toggle auto-renewal; allowed in any status for anyone who can view the subscription."""
        async with atomic(self.db):
            subscription = await self._load_locked(subscription_id)
            ensure_allowed(actor, await self._scope(subscription), Action.SUBSCRIPTION_SET_AUTO_RENEW)
            self._set_auto_renew(subscription, auto_renew)

        logger.info(f"Subscription {subscription.id} auto_renew={auto_renew} by user {actor.user_id}")
        return subscription

    async def update_subscription(self, subscription_id: int, actor: Actor, data: SubscriptionUpdate) -> Subscription:
        """
        Apply a combined update in one transaction.

        Status may move to paused (with pause_end_date) or back to active.
        Customers may only change auto_renew. Cancellation has its own operation.
        """
        async with atomic(self.db):
            subscription = await self._load_locked(subscription_id)
            scope = await self._scope(subscription)

            if data.status is not None and data.status.value != subscription.status:
                ensure_allowed(actor, scope, Action.SUBSCRIPTION_MANAGE)
                if data.status == SubscriptionStatus.PAUSED:
                    await self._pause(subscription, data.pause_end_date)
                elif data.status == SubscriptionStatus.ACTIVE:
                    await self._resume(subscription)
                else:
                    raise ValidationFailedError(
                        f"Status '{data.status.value}' cannot be set here; use the cancel operation "
                        f"or let the subscription expire"
                    )

            if data.auto_renew is not None and data.auto_renew != subscription.auto_renew:
                ensure_allowed(actor, scope, Action.SUBSCRIPTION_SET_AUTO_RENEW)
                self._set_auto_renew(subscription, data.auto_renew)

        logger.info(f"Subscription {subscription.id} updated by user {actor.user_id}")
        return subscription

    async def cancel(self, subscription_id: int, actor: Actor) -> Subscription:
        """
        Customer cancels their subscription.

        The customer notification commits with the cancellation; the
        franchise owner's FYI is sent after the commit.
        """
        async with atomic(self.db):
            subscription = await self._load_locked(subscription_id)
            scope = await self._scope(subscription)
            ensure_allowed(actor, scope, Action.SUBSCRIPTION_CANCEL)
            if subscription.status == SubscriptionStatus.CANCELLED.value:
                raise InvalidStateError(f"Subscription {subscription.id} is already cancelled")
            SUBSCRIPTION_TRANSITIONS.validate_transition(
                subscription.status, SubscriptionStatus.CANCELLED.value
            )

            await guarded_status_update(
                self.db, Subscription, subscription.id,
                subscription.status, SubscriptionStatus.CANCELLED.value,
            )
            self.notifications.notify(
                subscription.customer_id,
                "Subscription Cancelled",
                "Your subscription has been cancelled.",
                NotificationType.SUBSCRIPTION,
                related_id=subscription.id,
                related_type="subscription",
            )
            self.notifications.defer(
                scope.franchise_owner_id,
                "Subscription Cancelled",
                "A customer has cancelled their subscription.",
                NotificationType.SUBSCRIPTION,
                related_id=subscription.id,
                related_type="subscription",
            )

        await self.notifications.dispatch_deferred()
        logger.info(f"Subscription {subscription.id} cancelled by customer {actor.user_id}")
        return subscription

    # ==================== EXPIRY ====================

    async def expire_due_subscriptions(self, now: Optional[datetime] = None) -> List[int]:
        """
        Move active subscriptions whose end_date has passed to expired.

        Each subscription is expired in its own transaction so one conflict
        does not hold back the rest of the sweep.
        """
        now = now or utcnow()
        result = await self.db.execute(
            select(Subscription.id).where(
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.end_date <= now,
            )
        )
        due_ids = list(result.scalars().all())

        expired = []
        for subscription_id in due_ids:
            try:
                async with atomic(self.db):
                    subscription = await self._load_locked(subscription_id)
                    if (
                        subscription.status != SubscriptionStatus.ACTIVE.value
                        or subscription.end_date > now
                    ):
                        continue
                    await guarded_status_update(
                        self.db, Subscription, subscription.id,
                        SubscriptionStatus.ACTIVE.value, SubscriptionStatus.EXPIRED.value,
                    )
                    self.notifications.notify(
                        subscription.customer_id,
                        "Subscription Expired",
                        "Your subscription has reached its end date and has expired.",
                        NotificationType.SUBSCRIPTION,
                        related_id=subscription.id,
                        related_type="subscription",
                    )
                expired.append(subscription_id)
            except ConflictError:
                logger.warning(f"Subscription {subscription_id} changed during expiry sweep, skipped")

        if expired:
            logger.info(f"Expired {len(expired)} subscription(s): {expired}")
        return expired
