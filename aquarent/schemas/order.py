"""Order schemas."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from pydantic import Field

from aquarent.models.order import OrderStatus
from aquarent.schemas.base import BaseResponseSchema, BaseCreateSchema


class OrderCreate(BaseCreateSchema):
    """Place a rental order."""
    product_id: int
    franchise_id: int
    shipping_address: str = Field(..., min_length=1)
    billing_address: Optional[str] = None
    rental_duration: int = Field(..., ge=1, le=120, description="Months")
    rental_start_date: Optional[datetime] = None
    notes: Optional[str] = None


class OrderStatusUpdate(BaseCreateSchema):
    status: OrderStatus
    service_agent_id: Optional[int] = None
    notes: Optional[str] = None


class OrderFranchiseAssignment(BaseCreateSchema):
    franchise_id: int


class OrderAgentAssignment(BaseCreateSchema):
    service_agent_id: int


class OrderResponse(BaseResponseSchema):
    id: int
    customer_id: int
    product_id: int
    franchise_id: int
    service_agent_id: Optional[int] = None
    order_type: str
    status: str
    shipping_address: str
    billing_address: Optional[str] = None
    rental_start_date: datetime
    rental_duration: int
    delivery_date: Optional[datetime] = None
    monthly_rent: Decimal
    security_deposit: Decimal
    installation_fee: Decimal
    total_initial_amount: Decimal
    notes: str
    created_at: datetime
    updated_at: datetime


class OrderCreateResponse(BaseResponseSchema):
    order: OrderResponse
    invoice_number: str
    payment_id: int


class OrderListResponse(BaseResponseSchema):
    items: List[OrderResponse]
    total: int
    page: int
    size: int
    pages: int
