"""Payment schemas."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any

from pydantic import model_validator

from aquarent.schemas.base import BaseResponseSchema, BaseCreateSchema


class GenerateOrderPaymentRequest(BaseCreateSchema):
    order_id: int


class GenerateMonthlyPaymentRequest(BaseCreateSchema):
    subscription_id: int


class GatewayOrderResponse(BaseResponseSchema):
    """Gateway checkout handle for a pending payment."""
    payment_id: int
    invoice_number: str
    razorpay_order_id: str
    amount: int  # In paise
    currency: str
    key_id: str


class PaymentVerificationRequest(BaseCreateSchema):
    """Gateway callback triple plus the rental entity it settles."""
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str
    order_id: Optional[int] = None
    subscription_id: Optional[int] = None

    @model_validator(mode="after")
    def exactly_one_target(self):
        if (self.order_id is None) == (self.subscription_id is None):
            raise ValueError("Provide exactly one of order_id or subscription_id")
        return self


class PaymentResponse(BaseResponseSchema):
    id: int
    customer_id: int
    order_id: Optional[int] = None
    subscription_id: Optional[int] = None
    amount: Decimal
    payment_type: str
    status: str
    invoice_number: str
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    payment_details: Optional[Dict[str, Any]] = None
    paid_at: Optional[datetime] = None
    notes: str
    created_at: datetime


class PaymentVerificationResponse(BaseResponseSchema):
    verified: bool
    payment: PaymentResponse
    order_status: Optional[str] = None
    subscription_id: Optional[int] = None
    next_billing_date: Optional[datetime] = None


class PaymentListResponse(BaseResponseSchema):
    items: List[PaymentResponse]
    total: int
    page: int
    size: int
    pages: int
