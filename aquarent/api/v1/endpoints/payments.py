"""Payment API endpoints - Razorpay checkout and verification."""
from typing import Optional
from math import ceil

from fastapi import APIRouter, Query

from aquarent.api.deps import DB, CurrentActor, Gateway
from aquarent.models.payment import PaymentStatus
from aquarent.schemas.payment import (
    GenerateOrderPaymentRequest,
    GenerateMonthlyPaymentRequest,
    GatewayOrderResponse,
    PaymentVerificationRequest,
    PaymentVerificationResponse,
    PaymentResponse,
    PaymentListResponse,
)
from aquarent.services.payment_service import PaymentService, GatewayCheckout

router = APIRouter(tags=["Payments"])


def _checkout_response(checkout: GatewayCheckout) -> GatewayOrderResponse:
    return GatewayOrderResponse(
        payment_id=checkout.payment.id,
        invoice_number=checkout.payment.invoice_number,
        razorpay_order_id=checkout.razorpay_order_id,
        amount=checkout.amount,
        currency=checkout.currency,
        key_id=checkout.key_id,
    )


@router.post("/generate-order", response_model=GatewayOrderResponse)
async def generate_order_payment(
    data: GenerateOrderPaymentRequest, db: DB, actor: CurrentActor, gateway: Gateway
):
    """Open checkout for an order's initial payment."""
    checkout = await PaymentService(db, gateway).generate_order_payment(data.order_id, actor)
    return _checkout_response(checkout)


@router.post("/generate-monthly", response_model=GatewayOrderResponse)
async def generate_monthly_payment(
    data: GenerateMonthlyPaymentRequest, db: DB, actor: CurrentActor, gateway: Gateway
):
    """Open checkout for a subscription's monthly bill."""
    checkout = await PaymentService(db, gateway).generate_monthly_payment(data.subscription_id, actor)
    return _checkout_response(checkout)


@router.post("/verify", response_model=PaymentVerificationResponse)
async def verify_payment(
    data: PaymentVerificationRequest, db: DB, actor: CurrentActor, gateway: Gateway
):
    """
    Verify the Razorpay checkout callback.

    An initial payment approves the order and starts its subscription.
    A monthly payment advances the subscription's next billing date.
    """
    result = await PaymentService(db, gateway).verify_payment(actor, data)
    return PaymentVerificationResponse(
        verified=True,
        payment=PaymentResponse.model_validate(result.payment),
        order_status=result.order.status if result.order else None,
        subscription_id=result.subscription.id if result.subscription else None,
        next_billing_date=result.subscription.next_billing_date if result.subscription else None,
    )


@router.get("", response_model=PaymentListResponse)
async def list_payments(
    db: DB,
    actor: CurrentActor,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status: Optional[PaymentStatus] = Query(None),
):
    """Payment history visible to the caller."""
    payments, total = await PaymentService(db).list_payments(
        actor, status=status, skip=(page - 1) * size, limit=size
    )
    return PaymentListResponse(
        items=[PaymentResponse.model_validate(p) for p in payments],
        total=total,
        page=page,
        size=size,
        pages=ceil(total / size) if total > 0 else 1,
    )


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(payment_id: int, db: DB, actor: CurrentActor):
    return await PaymentService(db).get_payment(payment_id, actor)
