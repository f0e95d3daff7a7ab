# Services module
from aquarent.services.notification_service import NotificationService
from aquarent.services.order_service import OrderService
from aquarent.services.payment_service import PaymentService
from aquarent.services.subscription_service import SubscriptionService
from aquarent.services.service_request_service import ServiceRequestService

__all__ = [
    "NotificationService",
    "OrderService",
    "PaymentService",
    "SubscriptionService",
    "ServiceRequestService",
]
