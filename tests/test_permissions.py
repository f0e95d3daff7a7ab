"""Capability table: role and ownership checks."""
import pytest

from aquarent.core.exceptions import PermissionDeniedError
from aquarent.core.permissions import CAPABILITIES, Action, Actor, ResourceScope, authorize, ensure_allowed
from aquarent.models.user import UserRole

ADMIN = Actor(user_id=1, role=UserRole.ADMIN)
OWNER = Actor(user_id=2, role=UserRole.FRANCHISE_OWNER)
AGENT = Actor(user_id=3, role=UserRole.SERVICE_AGENT, franchise_id=10)
CUSTOMER = Actor(user_id=4, role=UserRole.CUSTOMER)
STRANGER = Actor(user_id=5, role=UserRole.CUSTOMER)

SCOPE = ResourceScope(customer_id=4, franchise_owner_id=2, agent_id=3)
FOREIGN_SCOPE = ResourceScope(customer_id=99, franchise_owner_id=98, agent_id=97)


class TestViewing:

    @pytest.mark.parametrize("actor", [ADMIN, OWNER, AGENT, CUSTOMER])
    def test_parties_to_a_resource_can_view(self, actor):
        assert authorize(actor, SCOPE, Action.ORDER_VIEW)
        assert authorize(actor, SCOPE, Action.SUBSCRIPTION_VIEW)
        assert authorize(actor, SCOPE, Action.SERVICE_REQUEST_VIEW)

    @pytest.mark.parametrize("actor", [OWNER, AGENT, CUSTOMER])
    def test_outsiders_cannot_view(self, actor):
        assert not authorize(actor, FOREIGN_SCOPE, Action.ORDER_VIEW)

    def test_admin_sees_everything(self):
        assert authorize(ADMIN, FOREIGN_SCOPE, Action.ORDER_VIEW)

    def test_agents_never_see_payments(self):
        assert not authorize(AGENT, SCOPE, Action.PAYMENT_VIEW)


class TestMutations:

    def test_only_customers_place_orders(self):
        assert authorize(CUSTOMER, ResourceScope(customer_id=4), Action.ORDER_CREATE)
        for actor in (ADMIN, OWNER, AGENT):
            assert not authorize(actor, ResourceScope(customer_id=actor.user_id), Action.ORDER_CREATE)

    def test_owner_updates_only_own_franchise_orders(self):
        assert authorize(OWNER, SCOPE, Action.ORDER_UPDATE_STATUS)
        assert not authorize(OWNER, FOREIGN_SCOPE, Action.ORDER_UPDATE_STATUS)

    def test_franchise_reassignment_is_admin_only(self):
        assert authorize(ADMIN, SCOPE, Action.ORDER_ASSIGN_FRANCHISE)
        assert not authorize(OWNER, SCOPE, Action.ORDER_ASSIGN_FRANCHISE)

    def test_payment_callbacks_belong_to_the_customer(self):
        assert authorize(CUSTOMER, SCOPE, Action.PAYMENT_VERIFY)
        assert not authorize(STRANGER, SCOPE, Action.PAYMENT_VERIFY)
        assert not authorize(ADMIN, SCOPE, Action.PAYMENT_VERIFY)

    def test_subscription_management_is_staff_only(self):
        assert authorize(OWNER, SCOPE, Action.SUBSCRIPTION_MANAGE)
        assert not authorize(CUSTOMER, SCOPE, Action.SUBSCRIPTION_MANAGE)
        assert not authorize(AGENT, SCOPE, Action.SUBSCRIPTION_MANAGE)

    def test_auto_renew_open_to_any_viewer(self):
        for actor in (ADMIN, OWNER, AGENT, CUSTOMER):
            assert authorize(actor, SCOPE, Action.SUBSCRIPTION_SET_AUTO_RENEW)
        assert not authorize(STRANGER, SCOPE, Action.SUBSCRIPTION_SET_AUTO_RENEW)

    def test_assigned_agent_manages_service_request(self):
        assert authorize(AGENT, SCOPE, Action.SERVICE_REQUEST_MANAGE)
        other_agent = Actor(user_id=30, role=UserRole.SERVICE_AGENT)
        assert not authorize(other_agent, SCOPE, Action.SERVICE_REQUEST_MANAGE)

    def test_feedback_is_customer_only(self):
        assert authorize(CUSTOMER, SCOPE, Action.SERVICE_REQUEST_FEEDBACK)
        assert not authorize(AGENT, SCOPE, Action.SERVICE_REQUEST_FEEDBACK)

    def test_notifications_are_read_by_their_recipient(self):
        for actor in (ADMIN, OWNER, AGENT, CUSTOMER):
            assert authorize(actor, ResourceScope(customer_id=actor.user_id), Action.NOTIFICATION_READ)
        assert not authorize(ADMIN, ResourceScope(customer_id=4), Action.NOTIFICATION_READ)


class TestEnsureAllowed:

    def test_raises_permission_denied(self):
        with pytest.raises(PermissionDeniedError, match="order:cancel"):
            ensure_allowed(STRANGER, SCOPE, Action.ORDER_CANCEL)

    def test_passes_silently(self):
        ensure_allowed(CUSTOMER, SCOPE, Action.ORDER_CANCEL)

    def test_every_action_has_a_rule(self):
        assert set(CAPABILITIES) == set(Action)

    def test_customer_side_service_request_changes_go_through_cancel(self):
        ensure_allowed(CUSTOMER, SCOPE, Action.SERVICE_REQUEST_CANCEL)
        with pytest.raises(PermissionDeniedError):
            ensure_allowed(STRANGER, SCOPE, Action.SERVICE_REQUEST_CANCEL)
        assert not authorize(OWNER, SCOPE, Action.SERVICE_REQUEST_CANCEL)
