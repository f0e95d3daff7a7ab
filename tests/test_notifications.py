"""Notification inbox and deferred delivery."""
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from aquarent.core.exceptions import NotFoundError, PermissionDeniedError
from aquarent.models import Notification, NotificationType
from aquarent.services.notification_service import NotificationService


class TestInbox:

    async def test_lists_own_notifications_newest_first(self, db, world, pending_order):
        service = NotificationService(db)
        service.notify(world.customer.id, "Reminder", "Filter check due", NotificationType.SUBSCRIPTION)
        await db.commit()

        items, total = await service.list_notifications(world.actors.customer)

        assert total == 2
        assert [n.title for n in items] == ["Reminder", "Order Placed Successfully"]
        assert all(n.user_id == world.customer.id for n in items)

        _, total = await service.list_notifications(world.actors.other_customer)
        assert total == 0

    async def test_mark_read_and_unread_filter(self, db, world, pending_order):
        service = NotificationService(db)
        items, _ = await service.list_notifications(world.actors.customer)

        read = await service.mark_read(items[0].id, world.actors.customer)

        assert read.is_read is True
        _, unread = await service.list_notifications(world.actors.customer, unread_only=True)
        assert unread == 0

    async def test_cannot_read_someone_elses(self, db, world, pending_order):
        service = NotificationService(db)
        items, _ = await service.list_notifications(world.actors.customer)

        with pytest.raises(PermissionDeniedError):
            await service.mark_read(items[0].id, world.actors.admin)

    async def test_missing_notification(self, db, world):
        with pytest.raises(NotFoundError):
            await NotificationService(db).mark_read(404, world.actors.customer)


class TestDeferred:

    async def test_written_after_commit(self, db, world, count):
        service = NotificationService(db)
        service.defer(world.owner_a.id, "FYI", "Something happened", NotificationType.ORDER, related_id=7)
        service.defer(None, "Nobody", "Dropped: no recipient", NotificationType.ORDER)

        assert await count(Notification) == 0
        assert await service.dispatch_deferred() == 1
        assert await count(Notification, Notification.user_id == world.owner_a.id) == 1
        assert await service.dispatch_deferred() == 0

    async def test_failure_is_swallowed(self, db, world, count, monkeypatch):
        def broken_add_all(self, instances):
            raise RuntimeError("notification store unavailable")

        monkeypatch.setattr(AsyncSession, "add_all", broken_add_all)
        service = NotificationService(db)
        service.defer(world.owner_a.id, "FYI", "Lost", NotificationType.ORDER)

        assert await service.dispatch_deferred() == 0
        assert await count(Notification) == 0
