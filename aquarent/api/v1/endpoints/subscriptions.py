"""Subscription API endpoints."""
from fastapi import APIRouter

from aquarent.api.deps import DB, CurrentActor
from aquarent.schemas.subscription import (
    SubscriptionPause,
    SubscriptionAutoRenew,
    SubscriptionUpdate,
    SubscriptionResponse,
)
from aquarent.services.subscription_service import SubscriptionService

router = APIRouter(tags=["Subscriptions"])


@router.get("/{subscription_id}", response_model=SubscriptionResponse)
async def get_subscription(subscription_id: int, db: DB, actor: CurrentActor):
    return await SubscriptionService(db).get_subscription(subscription_id, actor)


@router.put("/{subscription_id}", response_model=SubscriptionResponse)
async def update_subscription(
    subscription_id: int, data: SubscriptionUpdate, db: DB, actor: CurrentActor
):
    """Pause/resume (staff) and toggle auto-renew in one call."""
    return await SubscriptionService(db).update_subscription(subscription_id, actor, data)


@router.post("/{subscription_id}/pause", response_model=SubscriptionResponse)
async def pause_subscription(
    subscription_id: int, data: SubscriptionPause, db: DB, actor: CurrentActor
):
    return await SubscriptionService(db).pause(subscription_id, actor, data.pause_end_date)


@router.post("/{subscription_id}/resume", response_model=SubscriptionResponse)
async def resume_subscription(subscription_id: int, db: DB, actor: CurrentActor):
    return await SubscriptionService(db).resume(subscription_id, actor)


@router.put("/{subscription_id}/auto-renew", response_model=SubscriptionResponse)
async def set_subscription_auto_renew(
    subscription_id: int, data: SubscriptionAutoRenew, db: DB, actor: CurrentActor
):
    return await SubscriptionService(db).set_auto_renew(subscription_id, actor, data.auto_renew)


@router.post("/{subscription_id}/cancel", response_model=SubscriptionResponse)
async def cancel_subscription(subscription_id: int, db: DB, actor: CurrentActor):
    """Cancel your own subscription."""
    return await SubscriptionService(db).cancel(subscription_id, actor)
