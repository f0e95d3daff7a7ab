"""Service Request Service for managing maintenance and repair visits."""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from aquarent.core.exceptions import InvalidStateError, PermissionDeniedError, ValidationFailedError
from aquarent.core.permissions import Action, Actor, ResourceScope, ensure_allowed
from aquarent.database import atomic, guarded_status_update, utcnow
from aquarent.models.notification import NotificationType
from aquarent.models.service_request import ServiceRequest, ServiceRequestStatus
from aquarent.models.subscription import Subscription, SubscriptionStatus
from aquarent.models.user import UserRole
from aquarent.schemas.service_request import ServiceRequestCreate, ServiceRequestUpdate
from aquarent.services.lookups import get_or_404, franchise_owner_id, validate_service_agent, append_note
from aquarent.services.notification_service import NotificationService
from aquarent.services.state_machines import (
    SERVICE_REQUEST_TRANSITIONS, CANCELLABLE_SERVICE_REQUEST_STATUSES, resolve_service_request_status,
)

logger = logging.getLogger(__name__)

RELATED_TYPE = "service_request"


def format_visit_time(value: datetime) -> str:
    return value.strftime("%b %d, %Y at %I:%M %p")


class ServiceRequestService:
    """Service for service request operations."""

    def __init__(self, db: AsyncSession, notifications: Optional[NotificationService] = None):
        self.db = db
        self.notifications = notifications or NotificationService(db)

    async def _scope(self, request: ServiceRequest) -> ResourceScope:
        return ResourceScope(
            customer_id=request.customer_id,
            franchise_owner_id=await franchise_owner_id(self.db, request.franchise_id),
            agent_id=request.service_agent_id,
        )

    async def _load_locked(self, request_id: int) -> ServiceRequest:
        return await get_or_404(
            self.db, ServiceRequest, request_id, for_update=True, label="Service request"
        )

    def _notify(self, user_id: int, title: str, message: str, request: ServiceRequest,
                type: NotificationType = NotificationType.SERVICE_REQUEST) -> None:
        self.notifications.notify(
            user_id, title, message, type, related_id=request.id, related_type=RELATED_TYPE
        )

    async def get_service_request(self, request_id: int, actor: Actor) -> ServiceRequest:
        """Get service request by ID."""
        request = await get_or_404(self.db, ServiceRequest, request_id, label="Service request")
        ensure_allowed(actor, await self._scope(request), Action.SERVICE_REQUEST_VIEW)
        return request

    async def create_service_request(self, actor: Actor, data: ServiceRequestCreate) -> ServiceRequest:
        """
        Open a service request against the customer's active subscription.

        The franchise owner is told after the commit.
        """
        async with atomic(self.db):
            subscription = await get_or_404(
                self.db, Subscription, data.subscription_id, for_update=True, label="Subscription"
            )
            ensure_allowed(
                actor, ResourceScope(customer_id=subscription.customer_id), Action.SERVICE_REQUEST_CREATE
            )
            if subscription.status != SubscriptionStatus.ACTIVE.value:
                raise InvalidStateError(
                    f"Service can only be requested for an active subscription, "
                    f"subscription {subscription.id} is '{subscription.status}'"
                )

            request = ServiceRequest(
                customer_id=subscription.customer_id,
                subscription_id=subscription.id,
                franchise_id=subscription.franchise_id,
                type=data.type.value,
                status=ServiceRequestStatus.PENDING.value,
                description=data.description,
            )
            self.db.add(request)
            await self.db.flush()

            self._notify(
                request.customer_id,
                "Service Request Created",
                "Your service request has been created and is pending assignment.",
                request,
            )
            self.notifications.defer(
                await franchise_owner_id(self.db, subscription.franchise_id),
                "New Service Request",
                "A new service request has been created and needs your attention.",
                NotificationType.SERVICE_REQUEST,
                related_id=request.id,
                related_type=RELATED_TYPE,
            )

        await self.notifications.dispatch_deferred()
        logger.info(
            f"Service request {request.id} ({request.type}) created for subscription {subscription.id}"
        )
        return request

    async def update_service_request(
        self, request_id: int, actor: Actor, data: ServiceRequestUpdate
    ) -> ServiceRequest:
        """
        Update a service request.

        Staff (admin, owning franchise owner, assigned agent) may change status,
        schedule, completion time and notes, and admins or franchise owners may
        assign an agent. A customer may only cancel a still-pending request.
        Each changed field produces its own notification.
        """
        if actor.role == UserRole.CUSTOMER:
            return await self._customer_update(request_id, actor, data)

        async with atomic(self.db):
            request = await self._load_locked(request_id)
            ensure_allowed(actor, await self._scope(request), Action.SERVICE_REQUEST_MANAGE)

            previous = request.status
            values = {}

            agent = None
            if data.service_agent_id is not None and data.service_agent_id != request.service_agent_id:
                if SERVICE_REQUEST_TRANSITIONS.is_terminal(previous):
                    raise InvalidStateError(f"Cannot assign an agent to a {previous} service request")
                agent = await validate_service_agent(self.db, actor, data.service_agent_id)
                values["service_agent_id"] = agent.id

            requested = data.status.value if data.status else None
            new_status = resolve_service_request_status(previous, requested, agent is not None)
            if new_status:
                SERVICE_REQUEST_TRANSITIONS.validate_transition(previous, new_status)

            if data.scheduled_time is not None:
                values["scheduled_time"] = data.scheduled_time
            if data.completion_time is not None:
                values["completion_time"] = data.completion_time
            elif new_status == ServiceRequestStatus.COMPLETED.value and request.completion_time is None:
                values["completion_time"] = utcnow()
            if data.notes:
                values["notes"] = append_note(request.notes, data.notes)

            if new_status:
                await guarded_status_update(
                    self.db, ServiceRequest, request.id, previous, new_status, **values
                )
            else:
                for field, value in values.items():
                    setattr(request, field, value)

            if new_status:
                self._notify(
                    request.customer_id,
                    "Service Request Updated",
                    f"Your service request status has been updated to {new_status}.",
                    request,
                )
            if agent is not None:
                self._notify(
                    request.customer_id,
                    "Service Agent Assigned",
                    "A service agent has been assigned to your service request.",
                    request,
                )
                self._notify(
                    agent.id,
                    "New Service Assignment",
                    f"You have been assigned to service request #{request.id}.",
                    request,
                )
            if data.scheduled_time is not None:
                self._notify(
                    request.customer_id,
                    "Service Visit Scheduled",
                    f"Your service request has been scheduled for {format_visit_time(data.scheduled_time)}.",
                    request,
                )

        logger.info(
            f"Service request {request.id} updated by user {actor.user_id}: "
            f"status {previous} -> {request.status}, fields {sorted(values)}"
        )
        return request

    async def _customer_update(self, request_id: int, actor: Actor, data: ServiceRequestUpdate) -> ServiceRequest:
        touched = data.model_dump(exclude_none=True)
        if set(touched) != {"status"} or data.status != ServiceRequestStatus.CANCELLED:
            raise PermissionDeniedError("Customers can only cancel their service requests")
        return await self.cancel_service_request(
            request_id, actor, allowed_from=[ServiceRequestStatus.PENDING.value]
        )

    async def cancel_service_request(
        self,
        request_id: int,
        actor: Actor,
        allowed_from: Optional[list] = None,
    ) -> ServiceRequest:
        """Customer cancels a request that has not started yet."""
        allowed_from = allowed_from or CANCELLABLE_SERVICE_REQUEST_STATUSES

        async with atomic(self.db):
            request = await self._load_locked(request_id)
            ensure_allowed(actor, await self._scope(request), Action.SERVICE_REQUEST_CANCEL)
            if request.status not in allowed_from:
                raise InvalidStateError(
                    f"Service request in '{request.status}' status cannot be cancelled"
                )

            await guarded_status_update(
                self.db, ServiceRequest, request.id,
                request.status, ServiceRequestStatus.CANCELLED.value,
            )
            self._notify(
                request.customer_id,
                "Service Request Cancelled",
                "Your service request has been cancelled.",
                request,
            )
            if request.service_agent_id:
                self._notify(
                    request.service_agent_id,
                    "Service Request Cancelled",
                    "A service request assigned to you has been cancelled by the customer.",
                    request,
                )

        logger.info(f"Service request {request.id} cancelled by customer {actor.user_id}")
        return request

    async def submit_feedback(
        self,
        request_id: int,
        actor: Actor,
        rating: int,
        feedback: Optional[str] = None,
    ) -> ServiceRequest:
        """Record the customer's rating (1-5) for a completed visit."""
        if not 1 <= rating <= 5:
            raise ValidationFailedError("Rating must be between 1 and 5")

        async with atomic(self.db):
            request = await self._load_locked(request_id)
            ensure_allowed(actor, await self._scope(request), Action.SERVICE_REQUEST_FEEDBACK)
            if request.status != ServiceRequestStatus.COMPLETED.value:
                raise InvalidStateError("Feedback can only be given for completed service requests")
            if request.rating is not None:
                raise InvalidStateError("Feedback has already been submitted for this service request")

            request.rating = rating
            request.feedback = feedback

            if request.service_agent_id:
                self._notify(
                    request.service_agent_id,
                    "Service Feedback Received",
                    f"You received a {rating}-star rating for your service.",
                    request,
                    type=NotificationType.SERVICE_FEEDBACK,
                )

        logger.info(f"Service request {request.id} rated {rating} by customer {actor.user_id}")
        return request
