"""
Rental Lifecycle State Machines

This module is the SINGLE SOURCE OF TRUTH for order, subscription and
service request status transitions. Services read the current status under
a row lock, ask the matching table whether the move is legal, and only then
write.
"""

from typing import Dict, List, Optional

from aquarent.core.exceptions import InvalidStateError, ValidationFailedError
from aquarent.models.order import OrderStatus
from aquarent.models.subscription import SubscriptionStatus
from aquarent.models.service_request import ServiceRequestStatus


class TransitionTable:
    """Allowed next statuses for one entity, with validation helpers."""

    def __init__(self, entity: str, transitions: Dict[str, List[str]]):
        self.entity = entity
        self.transitions = transitions

    def statuses(self) -> List[str]:
        return list(self.transitions)

    def is_known(self, status: str) -> bool:
        return status in self.transitions

    def get_allowed_transitions(self, current_status: str) -> List[str]:
        """Get list of statuses that can be transitioned to from current status."""
        return self.transitions.get(current_status, [])

    def can_transition(self, current_status: str, new_status: str) -> bool:
        """Check if a transition is allowed."""
        return new_status in self.get_allowed_transitions(current_status)

    def is_terminal(self, status: str) -> bool:
        """Is this a terminal (final) state?"""
        return self.is_known(status) and not self.transitions[status]

    def validate_transition(self, current_status: str, new_status: str) -> None:
        """
        Validate a status transition.

        Raises:
            ValidationFailedError: target status is not part of the lifecycle
            InvalidStateError: target is not reachable from the current status
        """
        if not self.is_known(new_status):
            raise ValidationFailedError(
                f"Unknown {self.entity} status '{new_status}'. "
                f"Valid statuses: {', '.join(self.statuses())}"
            )

        if self.can_transition(current_status, new_status):
            return

        allowed = self.get_allowed_transitions(current_status)
        if not allowed:
            raise InvalidStateError(
                f"{self.entity.capitalize()} in '{current_status}' status cannot be modified. "
                f"This is a terminal state."
            )
        raise InvalidStateError(
            f"Cannot change {self.entity} from '{current_status}' to '{new_status}'. "
            f"Allowed transitions: {', '.join(allowed)}"
        )


# =============================================================================
# ORDER
# =============================================================================

ORDER_TRANSITIONS = TransitionTable("order", {
    OrderStatus.PENDING.value: [
        OrderStatus.APPROVED.value,     # Approval handoff, creates the subscription
        OrderStatus.REJECTED.value,
        OrderStatus.CANCELLED.value,
    ],
    OrderStatus.APPROVED.value: [
        OrderStatus.IN_TRANSIT.value,
        OrderStatus.DELIVERED.value,
        OrderStatus.INSTALLED.value,
        OrderStatus.COMPLETED.value,
        OrderStatus.CANCELLED.value,
    ],
    OrderStatus.IN_TRANSIT.value: [
        OrderStatus.DELIVERED.value,
        OrderStatus.INSTALLED.value,
        OrderStatus.COMPLETED.value,
        OrderStatus.CANCELLED.value,
    ],
    OrderStatus.DELIVERED.value: [
        OrderStatus.INSTALLED.value,
        OrderStatus.COMPLETED.value,
        OrderStatus.CANCELLED.value,
    ],
    OrderStatus.INSTALLED.value: [
        OrderStatus.COMPLETED.value,
        OrderStatus.CANCELLED.value,
    ],
    OrderStatus.REJECTED.value: [],     # Terminal
    OrderStatus.CANCELLED.value: [],    # Terminal
    OrderStatus.COMPLETED.value: [],    # Terminal
})

# No physical fulfillment has started
CUSTOMER_CANCELLABLE_ORDER_STATUSES = [OrderStatus.PENDING.value]

ORDER_STATUS_MESSAGES: Dict[str, str] = {
    OrderStatus.APPROVED.value: "Your order has been approved. Your subscription is now active.",
    OrderStatus.REJECTED.value: "Your order has been rejected. Please contact customer support for details.",
    OrderStatus.CANCELLED.value: "Your order has been cancelled.",
    OrderStatus.IN_TRANSIT.value: "Your order is in transit and will be delivered soon.",
    OrderStatus.DELIVERED.value: "Your order has been delivered. Installation will be scheduled soon.",
    OrderStatus.INSTALLED.value: "Your water purifier has been successfully installed.",
}


def order_status_message(status: str) -> str:
    """Customer-facing text for an order status, generic for statuses without one."""
    return ORDER_STATUS_MESSAGES.get(status, f"Your order status has been updated to {status}")


# =============================================================================
# SUBSCRIPTION
# =============================================================================

SUBSCRIPTION_TRANSITIONS = TransitionTable("subscription", {
    SubscriptionStatus.ACTIVE.value: [
        SubscriptionStatus.PAUSED.value,
        SubscriptionStatus.CANCELLED.value,
        SubscriptionStatus.EXPIRED.value,   # Time-driven, owned by the expiry job
    ],
    SubscriptionStatus.PAUSED.value: [
        SubscriptionStatus.ACTIVE.value,
        SubscriptionStatus.CANCELLED.value,
    ],
    SubscriptionStatus.EXPIRED.value: [
        SubscriptionStatus.CANCELLED.value,
    ],
    SubscriptionStatus.CANCELLED.value: [],  # Terminal
})


# =============================================================================
# SERVICE REQUEST
# =============================================================================

SERVICE_REQUEST_TRANSITIONS = TransitionTable("service request", {
    ServiceRequestStatus.PENDING.value: [
        ServiceRequestStatus.ASSIGNED.value,
        ServiceRequestStatus.SCHEDULED.value,
        ServiceRequestStatus.IN_PROGRESS.value,
        ServiceRequestStatus.CANCELLED.value,
    ],
    ServiceRequestStatus.ASSIGNED.value: [
        ServiceRequestStatus.SCHEDULED.value,
        ServiceRequestStatus.IN_PROGRESS.value,
        ServiceRequestStatus.CANCELLED.value,
    ],
    ServiceRequestStatus.SCHEDULED.value: [
        ServiceRequestStatus.IN_PROGRESS.value,
        ServiceRequestStatus.CANCELLED.value,
    ],
    ServiceRequestStatus.IN_PROGRESS.value: [
        ServiceRequestStatus.COMPLETED.value,
    ],
    ServiceRequestStatus.COMPLETED.value: [],  # Terminal
    ServiceRequestStatus.CANCELLED.value: [],  # Terminal
})

CANCELLABLE_SERVICE_REQUEST_STATUSES = [
    ServiceRequestStatus.PENDING.value,
    ServiceRequestStatus.ASSIGNED.value,
    ServiceRequestStatus.SCHEDULED.value,
]


def resolve_service_request_status(
    current_status: str,
    requested_status: Optional[str],
    agent_assigned: bool,
) -> Optional[str]:
    """
    Work out the status a staff update should land on.

    Assigning an agent to a still-pending request promotes it to assigned
    unless the caller asked for a specific status.
    """
    if requested_status and requested_status != current_status:
        return requested_status
    if agent_assigned and current_status == ServiceRequestStatus.PENDING.value:
        return ServiceRequestStatus.ASSIGNED.value
    return None
