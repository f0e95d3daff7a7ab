"""Rental order API endpoints."""
from typing import Optional
from math import ceil

from fastapi import APIRouter, Query, status

from aquarent.api.deps import DB, CurrentActor
from aquarent.models.order import OrderStatus
from aquarent.schemas.order import (
    OrderCreate,
    OrderStatusUpdate,
    OrderFranchiseAssignment,
    OrderAgentAssignment,
    OrderResponse,
    OrderCreateResponse,
    OrderListResponse,
)
from aquarent.services.order_service import OrderService

router = APIRouter(tags=["Orders"])


@router.post("", response_model=OrderCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_order(data: OrderCreate, db: DB, actor: CurrentActor):
    """
    Place a rental order.
    Creates the pending initial payment and returns its invoice number.
    """
    order, payment = await OrderService(db).create_order(actor, data)
    return OrderCreateResponse(
        order=OrderResponse.model_validate(order),
        invoice_number=payment.invoice_number,
        payment_id=payment.id,
    )


@router.get("", response_model=OrderListResponse)
async def list_orders(
    db: DB,
    actor: CurrentActor,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status: Optional[OrderStatus] = Query(None),
):
    """Get paginated orders visible to the caller."""
    orders, total = await OrderService(db).list_orders(
        actor, status=status, skip=(page - 1) * size, limit=size
    )
    return OrderListResponse(
        items=[OrderResponse.model_validate(o) for o in orders],
        total=total,
        page=page,
        size=size,
        pages=ceil(total / size) if total > 0 else 1,
    )


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: int, db: DB, actor: CurrentActor):
    return await OrderService(db).get_order(order_id, actor)


@router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(order_id: int, data: OrderStatusUpdate, db: DB, actor: CurrentActor):
    """
    Change order status (admin or owning franchise owner).
    Approving a pending order creates its subscription.
    """
    return await OrderService(db).update_status(
        order_id, actor, data.status,
        service_agent_id=data.service_agent_id,
        notes=data.notes,
    )


@router.patch("/{order_id}/franchise", response_model=OrderResponse)
async def assign_order_franchise(
    order_id: int, data: OrderFranchiseAssignment, db: DB, actor: CurrentActor
):
    """Reassign a pending order to another franchise (admin only)."""
    return await OrderService(db).assign_franchise(order_id, actor, data.franchise_id)


@router.patch("/{order_id}/agent", response_model=OrderResponse)
async def assign_order_agent(order_id: int, data: OrderAgentAssignment, db: DB, actor: CurrentActor):
    """Assign a service agent to an order."""
    return await OrderService(db).assign_agent(order_id, actor, data.service_agent_id)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(order_id: int, db: DB, actor: CurrentActor):
    """Cancel your own order before it is approved."""
    return await OrderService(db).cancel_order(order_id, actor)
