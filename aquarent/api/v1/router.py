from fastapi import APIRouter

from aquarent.api.v1.endpoints import (
    orders,
    payments,
    subscriptions,
    service_requests,
    notifications,
)

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(orders.router, prefix="/orders")
api_router.include_router(payments.router, prefix="/payments")
api_router.include_router(subscriptions.router, prefix="/subscriptions")
api_router.include_router(service_requests.router, prefix="/service-requests")
api_router.include_router(notifications.router, prefix="/notifications")
