"""
Order Service

Order creation, status transitions and the approval handoff that pairs an
approved order with its subscription. Every write runs inside one atomic
block; the order row is locked before its status is read.
"""
import logging
from datetime import datetime
from typing import Optional, List, Tuple

from dateutil.relativedelta import relativedelta
from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from aquarent.config import settings
from aquarent.core.exceptions import ConflictError, InvalidStateError, ValidationFailedError
from aquarent.core.permissions import Action, Actor, ResourceScope, ensure_allowed
from aquarent.database import atomic, guarded_status_update, utcnow
from aquarent.models.franchise import Franchise
from aquarent.models.notification import NotificationType
from aquarent.models.order import Order, OrderStatus
from aquarent.models.payment import Payment, PaymentStatus, PaymentType
from aquarent.models.product import Product
from aquarent.models.subscription import Subscription, SubscriptionStatus
from aquarent.models.user import UserRole
from aquarent.schemas.order import OrderCreate
from aquarent.services.invoicing import initial_invoice_number
from aquarent.services.lookups import (
    get_or_404, franchise_owner_id, owned_franchise_ids, validate_service_agent, append_note,
)
from aquarent.services.notification_service import NotificationService
from aquarent.services.state_machines import (
    ORDER_TRANSITIONS, CUSTOMER_CANCELLABLE_ORDER_STATUSES, order_status_message,
)

logger = logging.getLogger(__name__)


class OrderService:
    """Service for rental order operations."""

    def __init__(self, db: AsyncSession, notifications: Optional[NotificationService] = None):
        self.db = db
        self.notifications = notifications or NotificationService(db)

    async def _scope(self, order: Order) -> ResourceScope:
        return ResourceScope(
            customer_id=order.customer_id,
            franchise_owner_id=await franchise_owner_id(self.db, order.franchise_id),
            agent_id=order.service_agent_id,
        )

    # ==================== READS ====================

    async def get_order(self, order_id: int, actor: Actor) -> Order:
        """Get an order the actor is allowed to see."""
        order = await get_or_404(self.db, Order, order_id, label="Order")
        ensure_allowed(actor, await self._scope(order), Action.ORDER_VIEW)
        return order

    async def list_orders(
        self,
        actor: Actor,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Order], int]:
        """Get paginated orders visible to the actor."""
        query = select(Order)
        if actor.role == UserRole.FRANCHISE_OWNER:
            query = query.where(Order.franchise_id.in_(owned_franchise_ids(actor.user_id)))
        elif actor.role == UserRole.SERVICE_AGENT:
            query = query.where(Order.service_agent_id == actor.user_id)
        elif actor.role == UserRole.CUSTOMER:
            query = query.where(Order.customer_id == actor.user_id)
        if status:
            query = query.where(Order.status == status.value)

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))

        query = query.order_by(Order.created_at.desc(), Order.id.desc()).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total or 0

    # ==================== CREATE ====================

    async def create_order(self, actor: Actor, data: OrderCreate) -> Tuple[Order, Payment]:
        """
        Place an order with its pending initial payment.

        The order, the payment row and the customer notification commit together.
        Prices are snapshotted from the product's current price card.
        """
        ensure_allowed(actor, ResourceScope(customer_id=actor.user_id), Action.ORDER_CREATE)
        if data.rental_duration < 1:
            raise ValidationFailedError("Rental duration must be at least one month")

        async with atomic(self.db):
            product = await get_or_404(self.db, Product, data.product_id, label="Product")
            franchise = await get_or_404(self.db, Franchise, data.franchise_id, label="Franchise")
            if not product.is_active:
                raise InvalidStateError(f"Product {product.id} is not available for rent")
            if not franchise.is_active:
                raise InvalidStateError(f"Franchise {franchise.id} is not accepting orders")

            now = utcnow()
            total = product.security_deposit + product.installation_fee + product.monthly_rent

            order = Order(
                customer_id=actor.user_id,
                product_id=product.id,
                franchise_id=franchise.id,
                status=OrderStatus.PENDING.value,
                shipping_address=data.shipping_address,
                billing_address=data.billing_address or data.shipping_address,
                rental_start_date=data.rental_start_date or now,
                rental_duration=data.rental_duration,
                monthly_rent=product.monthly_rent,
                security_deposit=product.security_deposit,
                installation_fee=product.installation_fee,
                total_initial_amount=total,
                notes=data.notes or "",
            )
            self.db.add(order)
            await self.db.flush()

            payment = Payment(
                customer_id=actor.user_id,
                order_id=order.id,
                amount=total,
                payment_type=PaymentType.INITIAL.value,
                status=PaymentStatus.PENDING.value,
                invoice_number=initial_invoice_number(order.id, now),
                notes="Initial payment for order",
            )
            self.db.add(payment)

            self.notifications.notify(
                actor.user_id,
                "Order Placed Successfully",
                f"Your order for {product.name} has been placed and is pending approval.",
                NotificationType.ORDER,
                related_id=order.id,
                related_type="order",
            )

        logger.info(
            f"Order {order.id} created by customer {actor.user_id}: "
            f"product {product.id}, total {total}, invoice {payment.invoice_number}"
        )
        return order, payment

    # ==================== TRANSITIONS ====================

    async def approval_handoff(self, order: Order, approved_at: Optional[datetime] = None, **values) -> Subscription:
        """
        Move a locked, pending order to approved and create its subscription.

        Runs inside the caller's transaction and never commits. The caller's
        rollback undoes both the status change and the subscription.
        """
        now = approved_at or utcnow()

        existing = await self.db.scalar(
            select(Subscription.id).where(Subscription.order_id == order.id)
        )
        if existing is not None:
            raise ConflictError(f"Order {order.id} already has subscription {existing}")

        await guarded_status_update(
            self.db, Order, order.id,
            OrderStatus.PENDING.value, OrderStatus.APPROVED.value,
            rental_start_date=now,
            **values,
        )

        subscription = Subscription(
            order_id=order.id,
            customer_id=order.customer_id,
            product_id=order.product_id,
            franchise_id=order.franchise_id,
            service_agent_id=values.get("service_agent_id", order.service_agent_id),
            status=SubscriptionStatus.ACTIVE.value,
            start_date=now,
            end_date=now + relativedelta(months=order.rental_duration),
            next_billing_date=now + relativedelta(months=settings.BILLING_INTERVAL_MONTHS),
            monthly_rent=order.monthly_rent,
            last_maintenance=now,
            next_maintenance=now + relativedelta(months=settings.MAINTENANCE_INTERVAL_MONTHS),
            maintenance_notes="Initial setup complete",
            notes=f"Created from order #{order.id}",
        )
        self.db.add(subscription)
        # Surface a duplicate-subscription race inside this transaction
        await self.db.flush()

        self.notifications.notify(
            order.customer_id,
            "Order Status Updated",
            order_status_message(OrderStatus.APPROVED.value),
            NotificationType.ORDER,
            related_id=order.id,
            related_type="order",
        )

        logger.info(f"Order {order.id} approved, subscription {subscription.id} created")
        return subscription

    async def _void_initial_payment(self, order: Order, reason: str) -> None:
        """Fail the still-pending initial payment of an order that will never be paid."""
        await self.db.execute(
            update(Payment)
            .where(
                Payment.order_id == order.id,
                Payment.payment_type == PaymentType.INITIAL.value,
                Payment.status == PaymentStatus.PENDING.value,
            )
            .values(status=PaymentStatus.FAILED.value, notes=reason, updated_at=utcnow())
        )

    async def update_status(
        self,
        order_id: int,
        actor: Actor,
        new_status: OrderStatus,
        service_agent_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Order:
        """
        Change an order's status as admin or owning franchise owner.

        Approving a pending order runs the approval handoff in the same
        transaction. An optional agent assignment and note are written with
        the status change.
        """
        target = new_status.value if isinstance(new_status, OrderStatus) else new_status

        async with atomic(self.db):
            order = await get_or_404(self.db, Order, order_id, for_update=True, label="Order")
            ensure_allowed(actor, await self._scope(order), Action.ORDER_UPDATE_STATUS)

            previous = order.status
            if target == OrderStatus.APPROVED.value and previous == OrderStatus.APPROVED.value:
                raise ConflictError(f"Order {order.id} is already approved")
            ORDER_TRANSITIONS.validate_transition(previous, target)

            values = {}
            agent = None
            if service_agent_id is not None and service_agent_id != order.service_agent_id:
                agent = await validate_service_agent(self.db, actor, service_agent_id)
                values["service_agent_id"] = agent.id
            if notes:
                values["notes"] = append_note(order.notes, notes)
            if target == OrderStatus.DELIVERED.value:
                values["delivery_date"] = utcnow()

            if target == OrderStatus.APPROVED.value:
                await self.approval_handoff(order, **values)
            else:
                await guarded_status_update(self.db, Order, order.id, previous, target, **values)
                if previous == OrderStatus.PENDING.value:
                    await self._void_initial_payment(order, f"Order {target} before payment")
                self.notifications.notify(
                    order.customer_id,
                    "Order Status Updated",
                    order_status_message(target),
                    NotificationType.ORDER,
                    related_id=order.id,
                    related_type="order",
                )

            if agent is not None:
                self._notify_agent_assigned(order, agent.id)

        logger.info(f"Order {order.id} status {previous} -> {target} by user {actor.user_id}")
        return order

    async def assign_franchise(self, order_id: int, actor: Actor, franchise_id: int) -> Order:
        """Admin back-office correction of an order's franchise before money moves."""
        async with atomic(self.db):
            order = await get_or_404(self.db, Order, order_id, for_update=True, label="Order")
            ensure_allowed(actor, await self._scope(order), Action.ORDER_ASSIGN_FRANCHISE)
            if order.status != OrderStatus.PENDING.value:
                raise InvalidStateError(
                    f"Franchise can only be reassigned while the order is pending, not '{order.status}'"
                )
            franchise = await get_or_404(self.db, Franchise, franchise_id, label="Franchise")
            order.franchise_id = franchise.id

        logger.info(f"Order {order.id} reassigned to franchise {franchise_id} by user {actor.user_id}")
        return order

    async def assign_agent(self, order_id: int, actor: Actor, service_agent_id: int) -> Order:
        """Assign a service agent to an order and its subscription, if any."""
        async with atomic(self.db):
            order = await get_or_404(self.db, Order, order_id, for_update=True, label="Order")
            ensure_allowed(actor, await self._scope(order), Action.ORDER_ASSIGN_AGENT)
            if ORDER_TRANSITIONS.is_terminal(order.status):
                raise InvalidStateError(f"Cannot assign an agent to a {order.status} order")

            agent = await validate_service_agent(self.db, actor, service_agent_id)
            order.service_agent_id = agent.id
            await self.db.execute(
                update(Subscription)
                .where(Subscription.order_id == order.id)
                .values(service_agent_id=agent.id, updated_at=utcnow())
            )

            self.notifications.notify(
                order.customer_id,
                "Service Agent Assigned",
                "A service agent has been assigned to your order.",
                NotificationType.ORDER,
                related_id=order.id,
                related_type="order",
            )
            self._notify_agent_assigned(order, agent.id)

        logger.info(f"Order {order.id} assigned to agent {service_agent_id}")
        return order

    async def cancel_order(self, order_id: int, actor: Actor) -> Order:
        """Customer cancels their own order before fulfillment starts."""
        async with atomic(self.db):
            order = await get_or_404(self.db, Order, order_id, for_update=True, label="Order")
            ensure_allowed(actor, await self._scope(order), Action.ORDER_CANCEL)
            if order.status not in CUSTOMER_CANCELLABLE_ORDER_STATUSES:
                raise InvalidStateError(
                    f"Order in '{order.status}' status can no longer be cancelled"
                )

            await guarded_status_update(
                self.db, Order, order.id, order.status, OrderStatus.CANCELLED.value
            )
            await self._void_initial_payment(order, "Order cancelled by customer")
            self.notifications.notify(
                order.customer_id,
                "Order Status Updated",
                order_status_message(OrderStatus.CANCELLED.value),
                NotificationType.ORDER,
                related_id=order.id,
                related_type="order",
            )

        logger.info(f"Order {order.id} cancelled by customer {actor.user_id}")
        return order

    def _notify_agent_assigned(self, order: Order, agent_id: int) -> None:
        self.notifications.notify(
            agent_id,
            "New Order Assignment",
            f"You have been assigned to order #{order.id}.",
            NotificationType.ORDER,
            related_id=order.id,
            related_type="order",
        )
