"""Service visits: creation, staff updates, customer cancellation and feedback."""
from datetime import timedelta

import pytest

from aquarent.core.exceptions import InvalidStateError, PermissionDeniedError, ValidationFailedError
from aquarent.database import utcnow
from aquarent.models import (
    Notification, NotificationType, ServiceRequest, ServiceRequestStatus, ServiceRequestType,
)
from aquarent.schemas.service_request import ServiceRequestCreate, ServiceRequestUpdate
from aquarent.services.service_request_service import ServiceRequestService, format_visit_time
from aquarent.services.subscription_service import SubscriptionService


@pytest.fixture
def open_request(db, world, active_subscription):
    async def _open(type=ServiceRequestType.MAINTENANCE):
        request = await ServiceRequestService(db).create_service_request(
            world.actors.customer,
            ServiceRequestCreate(
                subscription_id=active_subscription.id,
                type=type,
                description="Water tastes metallic after filter change",
            ),
        )
        db.expunge_all()
        return request
    return _open


async def move_to(db, request_id, actor, *statuses):
    service = ServiceRequestService(db)
    for status in statuses:
        await service.update_service_request(request_id, actor, ServiceRequestUpdate(status=status))


class TestCreate:

    async def test_customer_opens_request(self, world, active_subscription, open_request, count):
        request = await open_request()

        assert request.status == ServiceRequestStatus.PENDING.value
        assert request.type == ServiceRequestType.MAINTENANCE.value
        assert request.franchise_id == world.franchise_a.id
        assert request.subscription_id == active_subscription.id
        assert await count(
            Notification,
            Notification.user_id == world.owner_a.id,
            Notification.title == "New Service Request",
            Notification.related_id == request.id,
        ) == 1

    async def test_subscription_must_be_active(self, db, world, active_subscription, count):
        await SubscriptionService(db).pause(
            active_subscription.id, world.actors.owner_a, utcnow() + timedelta(days=10)
        )

        with pytest.raises(InvalidStateError):
            await ServiceRequestService(db).create_service_request(
                world.actors.customer,
                ServiceRequestCreate(
                    subscription_id=active_subscription.id,
                    type=ServiceRequestType.REPAIR,
                    description="Leaking tap",
                ),
            )
        assert await count(ServiceRequest) == 0

    async def test_only_the_subscriber(self, db, world, active_subscription):
        with pytest.raises(PermissionDeniedError):
            await ServiceRequestService(db).create_service_request(
                world.actors.other_customer,
                ServiceRequestCreate(
                    subscription_id=active_subscription.id,
                    type=ServiceRequestType.REPAIR,
                    description="Not my purifier",
                ),
            )


class TestStaffUpdate:

    async def test_owner_of_other_franchise_is_refused(self, db, world, open_request):
        request = await open_request()

        with pytest.raises(PermissionDeniedError):
            await ServiceRequestService(db).update_service_request(
                request.id, world.actors.owner_b, ServiceRequestUpdate(status=ServiceRequestStatus.SCHEDULED)
            )

    async def test_agent_assignment_promotes_to_assigned(self, db, world, open_request, count):
        request = await open_request()

        updated = await ServiceRequestService(db).update_service_request(
            request.id, world.actors.owner_a, ServiceRequestUpdate(service_agent_id=world.agent_a.id)
        )

        assert updated.status == ServiceRequestStatus.ASSIGNED.value
        assert updated.service_agent_id == world.agent_a.id
        assert await count(
            Notification,
            Notification.user_id == world.agent_a.id,
            Notification.title == "New Service Assignment",
        ) == 1
        assert await count(
            Notification,
            Notification.user_id == world.customer.id,
            Notification.title == "Service Agent Assigned",
        ) == 1

    async def test_owner_cannot_assign_foreign_agent(self, db, world, open_request):
        request = await open_request()

        with pytest.raises(PermissionDeniedError):
            await ServiceRequestService(db).update_service_request(
                request.id, world.actors.owner_a, ServiceRequestUpdate(service_agent_id=world.agent_b.id)
            )

    async def test_scheduling_notifies_with_visit_time(self, db, world, open_request, count):
        request = await open_request()
        visit = (utcnow() + timedelta(days=2)).replace(hour=10, minute=30, second=0, microsecond=0)

        updated = await ServiceRequestService(db).update_service_request(
            request.id,
            world.actors.admin,
            ServiceRequestUpdate(status=ServiceRequestStatus.SCHEDULED, scheduled_time=visit),
        )

        assert updated.status == ServiceRequestStatus.SCHEDULED.value
        assert updated.scheduled_time == visit
        assert await count(
            Notification,
            Notification.user_id == world.customer.id,
            Notification.message == f"Your service request has been scheduled for {format_visit_time(visit)}.",
        ) == 1

    async def test_assigned_agent_completes_visit(self, db, world, open_request):
        request = await open_request()
        service = ServiceRequestService(db)
        await service.update_service_request(
            request.id, world.actors.owner_a, ServiceRequestUpdate(service_agent_id=world.agent_a.id)
        )
        await move_to(db, request.id, world.actors.agent_a, ServiceRequestStatus.IN_PROGRESS)

        updated = await service.update_service_request(
            request.id,
            world.actors.agent_a,
            ServiceRequestUpdate(status=ServiceRequestStatus.COMPLETED, notes="Replaced sediment filter"),
        )

        assert updated.status == ServiceRequestStatus.COMPLETED.value
        assert updated.completion_time is not None
        assert updated.notes == "Replaced sediment filter"

    async def test_unassigned_agent_is_refused(self, db, world, open_request):
        request = await open_request()

        with pytest.raises(PermissionDeniedError):
            await move_to(db, request.id, world.actors.agent_a, ServiceRequestStatus.IN_PROGRESS)

    async def test_cannot_complete_before_starting(self, db, world, open_request):
        request = await open_request()

        with pytest.raises(InvalidStateError):
            await move_to(db, request.id, world.actors.admin, ServiceRequestStatus.COMPLETED)

    async def test_completed_request_is_final(self, db, world, open_request):
        request = await open_request()
        await move_to(
            db, request.id, world.actors.admin,
            ServiceRequestStatus.IN_PROGRESS, ServiceRequestStatus.COMPLETED,
        )

        with pytest.raises(InvalidStateError):
            await ServiceRequestService(db).update_service_request(
                request.id, world.actors.admin, ServiceRequestUpdate(service_agent_id=world.agent_a.id)
            )


class TestCustomerCancel:

    async def test_cancel_pending_request(self, db, world, open_request, count):
        request = await open_request()

        cancelled = await ServiceRequestService(db).cancel_service_request(request.id, world.actors.customer)

        assert cancelled.status == ServiceRequestStatus.CANCELLED.value
        assert await count(
            Notification,
            Notification.user_id == world.customer.id,
            Notification.title == "Service Request Cancelled",
        ) == 1

    async def test_in_progress_cannot_be_cancelled(self, db, world, open_request, fetch):
        request = await open_request()
        await move_to(db, request.id, world.actors.admin, ServiceRequestStatus.IN_PROGRESS)

        with pytest.raises(InvalidStateError):
            await ServiceRequestService(db).cancel_service_request(request.id, world.actors.customer)

        assert (await fetch(ServiceRequest, request.id)).status == ServiceRequestStatus.IN_PROGRESS.value

    async def test_update_route_only_cancels_pending(self, db, world, open_request):
        request = await open_request()
        service = ServiceRequestService(db)
        await move_to(db, request.id, world.actors.admin, ServiceRequestStatus.SCHEDULED)

        with pytest.raises(InvalidStateError):
            await service.update_service_request(
                request.id, world.actors.customer, ServiceRequestUpdate(status=ServiceRequestStatus.CANCELLED)
            )

    async def test_customer_cannot_edit_other_fields(self, db, world, open_request):
        request = await open_request()

        with pytest.raises(PermissionDeniedError):
            await ServiceRequestService(db).update_service_request(
                request.id, world.actors.customer, ServiceRequestUpdate(notes="Please come early")
            )

    async def test_assigned_agent_hears_about_cancellation(self, db, world, open_request, count):
        request = await open_request()
        service = ServiceRequestService(db)
        await service.update_service_request(
            request.id, world.actors.owner_a, ServiceRequestUpdate(service_agent_id=world.agent_a.id)
        )

        await service.cancel_service_request(request.id, world.actors.customer)

        assert await count(
            Notification,
            Notification.user_id == world.agent_a.id,
            Notification.title == "Service Request Cancelled",
        ) == 1


class TestFeedback:

    async def test_rating_only_after_completion(self, db, world, open_request):
        request = await open_request()

        with pytest.raises(InvalidStateError):
            await ServiceRequestService(db).submit_feedback(request.id, world.actors.customer, 5)

    async def test_rating_reaches_the_agent(self, db, world, open_request, count):
        request = await open_request()
        service = ServiceRequestService(db)
        await service.update_service_request(
            request.id, world.actors.owner_a, ServiceRequestUpdate(service_agent_id=world.agent_a.id)
        )
        await move_to(
            db, request.id, world.actors.agent_a,
            ServiceRequestStatus.IN_PROGRESS, ServiceRequestStatus.COMPLETED,
        )

        rated = await service.submit_feedback(request.id, world.actors.customer, 4, "Quick and tidy")

        assert rated.rating == 4
        assert rated.feedback == "Quick and tidy"
        assert await count(
            Notification,
            Notification.user_id == world.agent_a.id,
            Notification.type == NotificationType.SERVICE_FEEDBACK.value,
            Notification.message == "You received a 4-star rating for your service.",
        ) == 1

    async def test_rating_is_given_once(self, db, world, open_request):
        request = await open_request()
        service = ServiceRequestService(db)
        await move_to(
            db, request.id, world.actors.admin,
            ServiceRequestStatus.IN_PROGRESS, ServiceRequestStatus.COMPLETED,
        )
        await service.submit_feedback(request.id, world.actors.customer, 5)

        with pytest.raises(InvalidStateError):
            await service.submit_feedback(request.id, world.actors.customer, 3)

    async def test_rating_range(self, db, world, open_request):
        request = await open_request()

        with pytest.raises(ValidationFailedError):
            await ServiceRequestService(db).submit_feedback(request.id, world.actors.customer, 6)
