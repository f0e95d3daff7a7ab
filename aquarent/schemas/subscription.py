"""Subscription schemas."""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from aquarent.models.subscription import SubscriptionStatus
from aquarent.schemas.base import BaseResponseSchema, BaseCreateSchema


class SubscriptionPause(BaseCreateSchema):
    pause_end_date: datetime


class SubscriptionAutoRenew(BaseCreateSchema):
    auto_renew: bool


class SubscriptionUpdate(BaseCreateSchema):
    """Combined update; staff may pause/resume, any viewer may toggle auto-renew."""
    status: Optional[SubscriptionStatus] = None
    pause_end_date: Optional[datetime] = None
    auto_renew: Optional[bool] = None


class SubscriptionResponse(BaseResponseSchema):
    id: int
    order_id: int
    customer_id: int
    product_id: int
    franchise_id: Optional[int] = None
    service_agent_id: Optional[int] = None
    status: str
    start_date: datetime
    end_date: datetime
    next_billing_date: datetime
    monthly_rent: Decimal
    last_maintenance: Optional[datetime] = None
    next_maintenance: datetime
    maintenance_notes: str
    pause_started_at: Optional[datetime] = None
    pause_end_date: Optional[datetime] = None
    auto_renew: bool
    notes: str
    created_at: datetime
    updated_at: datetime
