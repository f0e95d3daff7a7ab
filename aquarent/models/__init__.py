from aquarent.models.user import User, UserRole
from aquarent.models.franchise import Franchise
from aquarent.models.product import Product
from aquarent.models.order import Order, OrderStatus
from aquarent.models.subscription import Subscription, SubscriptionStatus
from aquarent.models.payment import Payment, PaymentStatus, PaymentType
from aquarent.models.service_request import (
    ServiceRequest, ServiceRequestStatus, ServiceRequestType,
)
from aquarent.models.notification import Notification, NotificationType

__all__ = [
    "User", "UserRole",
    "Franchise",
    "Product",
    "Order", "OrderStatus",
    "Subscription", "SubscriptionStatus",
    "Payment", "PaymentStatus", "PaymentType",
    "ServiceRequest", "ServiceRequestStatus", "ServiceRequestType",
    "Notification", "NotificationType",
]
