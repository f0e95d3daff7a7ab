"""
Payment Verification Engine

Handles the two gateway-driven payment flows of a rental:
- Initial payment: settles the order's pending payment and approves the
  order (creating its subscription) in the same transaction
- Monthly payment: settles a subscription bill and advances its billing date

Callback signatures are checked before any database access.
"""

import logging
from dataclasses import dataclass
from typing import Optional, List, Tuple, Dict, Any

from dateutil.relativedelta import relativedelta
from sqlalchemy import select, func, or_, case
from sqlalchemy.ext.asyncio import AsyncSession

from aquarent.config import settings
from aquarent.core.exceptions import (
    ConflictError, InvalidSignatureError, InvalidStateError, ValidationFailedError,
    PermissionDeniedError,
)
from aquarent.core.permissions import Action, Actor, ResourceScope, ensure_allowed
from aquarent.database import atomic, guarded_status_update, utcnow
from aquarent.models.notification import NotificationType
from aquarent.models.order import Order, OrderStatus
from aquarent.models.payment import Payment, PaymentStatus, PaymentType
from aquarent.models.subscription import Subscription, SubscriptionStatus
from aquarent.models.user import UserRole
from aquarent.schemas.payment import PaymentVerificationRequest
from aquarent.services.invoicing import monthly_invoice_number
from aquarent.services.lookups import get_or_404, franchise_owner_id, owned_franchise_ids
from aquarent.services.notification_service import NotificationService
from aquarent.services.order_service import OrderService
from aquarent.services.payment_gateway import RazorpayGateway, to_paise

logger = logging.getLogger(__name__)

PAYMENT_METHOD = "razorpay"


@dataclass
class GatewayCheckout:
    """Gateway handle the client needs to open checkout."""
    payment: Payment
    razorpay_order_id: str
    amount: int  # In paise
    currency: str
    key_id: str


@dataclass
class VerificationResult:
    payment: Payment
    order: Optional[Order] = None
    subscription: Optional[Subscription] = None


class PaymentService:
    """Service for rental payment flows."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: Optional[RazorpayGateway] = None,
        notifications: Optional[NotificationService] = None,
    ):
        self.db = db
        self._gateway = gateway
        self.notifications = notifications or NotificationService(db)

    @property
    def gateway(self) -> RazorpayGateway:
        # Built on first use; history reads never need a client
        if self._gateway is None:
            self._gateway = RazorpayGateway()
        return self._gateway

    # ==================== GATEWAY ORDERS ====================

    def _checkout(self, payment: Payment, notes: Dict[str, str], receipt: str) -> GatewayCheckout:
        """Reuse the payment's gateway order if it has one, else create it."""
        details = payment.payment_details or {}
        existing = details.get("razorpay_order_id")
        if existing:
            return GatewayCheckout(
                payment=payment,
                razorpay_order_id=existing,
                amount=to_paise(payment.amount),
                currency=settings.PAYMENT_CURRENCY,
                key_id=self.gateway.key_id,
            )

        razorpay_order = self.gateway.create_order(payment.amount, receipt=receipt, notes=notes)
        payment.payment_method = PAYMENT_METHOD
        payment.transaction_id = razorpay_order["id"]
        payment.gateway_order_id = razorpay_order["id"]
        payment.payment_details = {"razorpay_order_id": razorpay_order["id"]}
        return GatewayCheckout(
            payment=payment,
            razorpay_order_id=razorpay_order["id"],
            amount=razorpay_order.get("amount", to_paise(payment.amount)),
            currency=razorpay_order.get("currency", settings.PAYMENT_CURRENCY),
            key_id=self.gateway.key_id,
        )

    async def _pending_initial_payment(self, order_id: int) -> Optional[Payment]:
        result = await self.db.execute(
            select(Payment)
            .where(
                Payment.order_id == order_id,
                Payment.payment_type == PaymentType.INITIAL.value,
                Payment.status == PaymentStatus.PENDING.value,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def _pending_monthly_payment(
        self, subscription_id: int, razorpay_order_id: Optional[str] = None
    ) -> Optional[Payment]:
        query = select(Payment).where(
            Payment.subscription_id == subscription_id,
            Payment.payment_type == PaymentType.MONTHLY.value,
            Payment.status == PaymentStatus.PENDING.value,
        )
        if razorpay_order_id:
            # Prefer the bill this gateway order was created for, else any open bill
            query = query.where(
                or_(Payment.gateway_order_id == razorpay_order_id, Payment.gateway_order_id.is_(None))
            ).order_by(case((Payment.gateway_order_id == razorpay_order_id, 0), else_=1))
        query = query.order_by(Payment.created_at, Payment.id)
        result = await self.db.execute(
            query.with_for_update().execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def _ensure_not_settled(self, request: PaymentVerificationRequest) -> None:
        """A gateway charge settles at most one payment."""
        settled = await self.db.scalar(
            select(Payment.id).where(
                Payment.status == PaymentStatus.SUCCESS.value,
                or_(
                    Payment.gateway_payment_id == request.razorpay_payment_id,
                    Payment.gateway_order_id == request.razorpay_order_id,
                ),
            ).limit(1)
        )
        if settled is not None:
            raise ConflictError(
                f"Gateway payment {request.razorpay_payment_id} was already applied to payment {settled}"
            )

    async def _new_monthly_payment(self, subscription: Subscription, notes: str) -> Payment:
        count = await self.db.scalar(
            select(func.count(Payment.id)).where(
                Payment.subscription_id == subscription.id,
                Payment.payment_type == PaymentType.MONTHLY.value,
            )
        )
        payment = Payment(
            customer_id=subscription.customer_id,
            subscription_id=subscription.id,
            amount=subscription.monthly_rent,
            payment_type=PaymentType.MONTHLY.value,
            status=PaymentStatus.PENDING.value,
            invoice_number=monthly_invoice_number(subscription.id, utcnow(), (count or 0) + 1),
            notes=notes,
        )
        self.db.add(payment)
        await self.db.flush()
        return payment

    async def generate_order_payment(self, order_id: int, actor: Actor) -> GatewayCheckout:
        """
        Create (or reuse) the gateway order for an order's initial payment.

        The order must belong to the caller and still be pending.
        """
        async with atomic(self.db):
            order = await get_or_404(self.db, Order, order_id, for_update=True, label="Order")
            ensure_allowed(actor, ResourceScope(customer_id=order.customer_id), Action.PAYMENT_INITIATE)
            if order.status != OrderStatus.PENDING.value:
                raise InvalidStateError(
                    f"Order {order.id} is '{order.status}', initial payment is only possible while pending"
                )

            payment = await self._pending_initial_payment(order.id)
            if payment is None:
                raise InvalidStateError(f"Order {order.id} has no pending initial payment")

            checkout = self._checkout(
                payment,
                notes={
                    "customer_id": str(order.customer_id),
                    "order_id": str(order.id),
                    "payment_type": PaymentType.INITIAL.value,
                },
                receipt=f"order_{order.id}",
            )

        return checkout

    async def generate_monthly_payment(self, subscription_id: int, actor: Actor) -> GatewayCheckout:
        """
        Create (or reuse) the gateway order for a subscription's monthly bill.

        The subscription must belong to the caller and be active.
        """
        async with atomic(self.db):
            subscription = await get_or_404(
                self.db, Subscription, subscription_id, for_update=True, label="Subscription"
            )
            ensure_allowed(
                actor, ResourceScope(customer_id=subscription.customer_id), Action.PAYMENT_INITIATE
            )
            if subscription.status != SubscriptionStatus.ACTIVE.value:
                raise InvalidStateError(
                    f"Subscription {subscription.id} is '{subscription.status}', "
                    f"monthly payment needs an active subscription"
                )

            payment = await self._pending_monthly_payment(subscription.id)
            if payment is None:
                payment = await self._new_monthly_payment(subscription, "Monthly payment for subscription")

            checkout = self._checkout(
                payment,
                notes={
                    "customer_id": str(subscription.customer_id),
                    "subscription_id": str(subscription.id),
                    "payment_type": PaymentType.MONTHLY.value,
                },
                receipt=f"subscription_{subscription.id}",
            )

        return checkout

    # ==================== VERIFICATION ====================

    async def verify_payment(self, actor: Actor, request: PaymentVerificationRequest) -> VerificationResult:
        """
        Verify a gateway callback and settle the matching payment.

        Raises:
            InvalidSignatureError: signature mismatch, nothing was read or written
            ConflictError: the order was already settled or moved on, or the gateway
                charge was already applied or was issued for a different payment
        """
        if (request.order_id is None) == (request.subscription_id is None):
            raise ValidationFailedError("Provide exactly one of order_id or subscription_id")

        if not self.gateway.verify_signature(
            request.razorpay_order_id, request.razorpay_payment_id, request.razorpay_signature
        ):
            logger.warning(
                f"Invalid payment signature for gateway order {request.razorpay_order_id}"
            )
            raise InvalidSignatureError("Payment signature verification failed")

        if request.order_id is not None:
            result = await self._settle_initial(actor, request)
        else:
            result = await self._settle_monthly(actor, request)

        logger.info(
            f"Payment {result.payment.id} ({result.payment.payment_type}) settled with "
            f"{request.razorpay_payment_id}"
        )
        return result

    def _mark_settled(self, request: PaymentVerificationRequest) -> Dict[str, Any]:
        return {
            "payment_method": PAYMENT_METHOD,
            "transaction_id": request.razorpay_payment_id,
            "gateway_order_id": request.razorpay_order_id,
            "gateway_payment_id": request.razorpay_payment_id,
            "payment_details": {
                "razorpay_order_id": request.razorpay_order_id,
                "razorpay_payment_id": request.razorpay_payment_id,
                "razorpay_signature": request.razorpay_signature,
            },
            "paid_at": utcnow(),
        }

    async def _settle_initial(self, actor: Actor, request: PaymentVerificationRequest) -> VerificationResult:
        async with atomic(self.db):
            order = await get_or_404(self.db, Order, request.order_id, for_update=True, label="Order")
            ensure_allowed(actor, ResourceScope(customer_id=order.customer_id), Action.PAYMENT_VERIFY)
            if order.status != OrderStatus.PENDING.value:
                raise ConflictError(
                    f"Order {order.id} is already '{order.status}', initial payment cannot be applied"
                )

            await self._ensure_not_settled(request)
            payment = await self._pending_initial_payment(order.id)
            if payment is None:
                raise ConflictError(f"Order {order.id} has no pending initial payment")
            if payment.gateway_order_id != request.razorpay_order_id:
                # No checkout was opened for this order, or it was opened under another gateway order
                raise ConflictError(
                    f"Gateway order {request.razorpay_order_id} was not issued for order {order.id}"
                )

            await guarded_status_update(
                self.db, Payment, payment.id,
                PaymentStatus.PENDING.value, PaymentStatus.SUCCESS.value,
                **self._mark_settled(request),
            )
            subscription = await OrderService(self.db, self.notifications).approval_handoff(order)

            self.notifications.notify(
                order.customer_id,
                "Payment Successful",
                "Initial payment has been processed successfully.",
                NotificationType.PAYMENT,
                related_id=payment.id,
                related_type="payment",
            )

        return VerificationResult(payment=payment, order=order, subscription=subscription)

    async def _settle_monthly(self, actor: Actor, request: PaymentVerificationRequest) -> VerificationResult:
        async with atomic(self.db):
            subscription = await get_or_404(
                self.db, Subscription, request.subscription_id, for_update=True, label="Subscription"
            )
            ensure_allowed(
                actor, ResourceScope(customer_id=subscription.customer_id), Action.PAYMENT_VERIFY
            )

            await self._ensure_not_settled(request)
            payment = await self._pending_monthly_payment(subscription.id, request.razorpay_order_id)
            if payment is None or payment.gateway_order_id != request.razorpay_order_id:
                claimed = await self.db.scalar(
                    select(Payment.id).where(Payment.gateway_order_id == request.razorpay_order_id).limit(1)
                )
                if claimed is not None:
                    raise ConflictError(
                        f"Gateway order {request.razorpay_order_id} belongs to payment {claimed}"
                    )
            if payment is None:
                # Payment initiated outside generate_monthly_payment
                payment = await self._new_monthly_payment(
                    subscription, "Monthly payment recorded from gateway callback"
                )

            await guarded_status_update(
                self.db, Payment, payment.id,
                PaymentStatus.PENDING.value, PaymentStatus.SUCCESS.value,
                **self._mark_settled(request),
            )
            subscription.next_billing_date = subscription.next_billing_date + relativedelta(
                months=settings.BILLING_INTERVAL_MONTHS
            )

            self.notifications.notify(
                subscription.customer_id,
                "Payment Successful",
                "Monthly payment has been processed successfully.",
                NotificationType.PAYMENT,
                related_id=payment.id,
                related_type="payment",
            )

        return VerificationResult(payment=payment, subscription=subscription)

    # ==================== READS ====================

    async def _scope(self, payment: Payment) -> ResourceScope:
        franchise_id = None
        if payment.order_id is not None:
            franchise_id = await self.db.scalar(
                select(Order.franchise_id).where(Order.id == payment.order_id)
            )
        elif payment.subscription_id is not None:
            franchise_id = await self.db.scalar(
                select(Subscription.franchise_id).where(Subscription.id == payment.subscription_id)
            )
        return ResourceScope(
            customer_id=payment.customer_id,
            franchise_owner_id=await franchise_owner_id(self.db, franchise_id),
        )

    async def get_payment(self, payment_id: int, actor: Actor) -> Payment:
        """Get a payment the actor is allowed to see."""
        payment = await get_or_404(self.db, Payment, payment_id, label="Payment")
        ensure_allowed(actor, await self._scope(payment), Action.PAYMENT_VIEW)
        return payment

    async def list_payments(
        self,
        actor: Actor,
        status: Optional[PaymentStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Payment], int]:
        """Get paginated payment history visible to the actor."""
        query = select(Payment)
        if actor.role == UserRole.SERVICE_AGENT:
            raise PermissionDeniedError("Service agents cannot view payments")
        if actor.role == UserRole.CUSTOMER:
            query = query.where(Payment.customer_id == actor.user_id)
        elif actor.role == UserRole.FRANCHISE_OWNER:
            franchises = owned_franchise_ids(actor.user_id)
            query = query.where(
                or_(
                    Payment.order_id.in_(select(Order.id).where(Order.franchise_id.in_(franchises))),
                    Payment.subscription_id.in_(
                        select(Subscription.id).where(Subscription.franchise_id.in_(franchises))
                    ),
                )
            )
        if status:
            query = query.where(Payment.status == status.value)

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))

        query = query.order_by(Payment.created_at.desc(), Payment.id.desc()).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total or 0
