"""Service request schemas."""
from datetime import datetime
from typing import Optional

from pydantic import Field

from aquarent.models.service_request import ServiceRequestStatus, ServiceRequestType
from aquarent.schemas.base import BaseResponseSchema, BaseCreateSchema


class ServiceRequestCreate(BaseCreateSchema):
    subscription_id: int
    type: ServiceRequestType
    description: str = Field(..., min_length=1, max_length=2000)


class ServiceRequestUpdate(BaseCreateSchema):
    status: Optional[ServiceRequestStatus] = None
    service_agent_id: Optional[int] = None
    scheduled_time: Optional[datetime] = None
    completion_time: Optional[datetime] = None
    notes: Optional[str] = None


class ServiceFeedback(BaseCreateSchema):
    rating: int = Field(..., ge=1, le=5)
    feedback: Optional[str] = Field(None, max_length=2000)


class ServiceRequestResponse(BaseResponseSchema):
    id: int
    customer_id: int
    subscription_id: int
    franchise_id: Optional[int] = None
    service_agent_id: Optional[int] = None
    type: str
    status: str
    description: str
    scheduled_time: Optional[datetime] = None
    completion_time: Optional[datetime] = None
    notes: str
    rating: Optional[int] = None
    feedback: Optional[str] = None
    created_at: datetime
    updated_at: datetime
