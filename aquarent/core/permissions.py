"""
Capability checks for the rental lifecycle.

Every service operation asks one question before it writes anything:
may this actor perform this action on this resource? The answer comes from
the CAPABILITIES table below, keyed by action and then by role. A rule is a
predicate over the actor and the ownership scope of the loaded resource.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from aquarent.core.exceptions import PermissionDeniedError
from aquarent.models.user import User, UserRole


@dataclass(frozen=True)
class Actor:
    """Authenticated caller resolved from the bearer token."""
    user_id: int
    role: UserRole
    franchise_id: Optional[int] = None

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(user_id=user.id, role=UserRole(user.role), franchise_id=user.franchise_id)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


@dataclass(frozen=True)
class ResourceScope:
    """Ownership facts about a resource, filled in from the loaded entity."""
    customer_id: Optional[int] = None
    franchise_owner_id: Optional[int] = None
    agent_id: Optional[int] = None


class Action(str, Enum):
    """Guarded operations."""
    ORDER_CREATE = "order:create"
    ORDER_VIEW = "order:view"
    ORDER_UPDATE_STATUS = "order:update_status"
    ORDER_ASSIGN_FRANCHISE = "order:assign_franchise"
    ORDER_ASSIGN_AGENT = "order:assign_agent"
    ORDER_CANCEL = "order:cancel"

    PAYMENT_INITIATE = "payment:initiate"
    PAYMENT_VERIFY = "payment:verify"
    PAYMENT_VIEW = "payment:view"

    SUBSCRIPTION_VIEW = "subscription:view"
    SUBSCRIPTION_MANAGE = "subscription:manage"
    SUBSCRIPTION_SET_AUTO_RENEW = "subscription:set_auto_renew"
    SUBSCRIPTION_CANCEL = "subscription:cancel"

    SERVICE_REQUEST_CREATE = "service_request:create"
    SERVICE_REQUEST_VIEW = "service_request:view"
    SERVICE_REQUEST_MANAGE = "service_request:manage"
    SERVICE_REQUEST_CANCEL = "service_request:cancel"
    SERVICE_REQUEST_FEEDBACK = "service_request:feedback"

    NOTIFICATION_READ = "notification:read"


Rule = Callable[[Actor, ResourceScope], bool]


def _always(actor: Actor, scope: ResourceScope) -> bool:
    return True


def _owns(actor: Actor, scope: ResourceScope) -> bool:
    return scope.customer_id is not None and scope.customer_id == actor.user_id


def _runs_franchise(actor: Actor, scope: ResourceScope) -> bool:
    return scope.franchise_owner_id is not None and scope.franchise_owner_id == actor.user_id


def _is_assigned(actor: Actor, scope: ResourceScope) -> bool:
    return scope.agent_id is not None and scope.agent_id == actor.user_id


ADMIN = UserRole.ADMIN
OWNER = UserRole.FRANCHISE_OWNER
AGENT = UserRole.SERVICE_AGENT
CUSTOMER = UserRole.CUSTOMER

_VIEWERS: Dict[UserRole, Rule] = {
    ADMIN: _always,
    OWNER: _runs_franchise,
    AGENT: _is_assigned,
    CUSTOMER: _owns,
}

CAPABILITIES: Dict[Action, Dict[UserRole, Rule]] = {
    Action.ORDER_CREATE: {CUSTOMER: _always},
    Action.ORDER_VIEW: _VIEWERS,
    Action.ORDER_UPDATE_STATUS: {ADMIN: _always, OWNER: _runs_franchise},
    Action.ORDER_ASSIGN_FRANCHISE: {ADMIN: _always},
    Action.ORDER_ASSIGN_AGENT: {ADMIN: _always, OWNER: _runs_franchise},
    Action.ORDER_CANCEL: {CUSTOMER: _owns},

    Action.PAYMENT_INITIATE: {CUSTOMER: _owns},
    Action.PAYMENT_VERIFY: {CUSTOMER: _owns},
    Action.PAYMENT_VIEW: {ADMIN: _always, OWNER: _runs_franchise, CUSTOMER: _owns},

    Action.SUBSCRIPTION_VIEW: _VIEWERS,
    Action.SUBSCRIPTION_MANAGE: {ADMIN: _always, OWNER: _runs_franchise},
    Action.SUBSCRIPTION_SET_AUTO_RENEW: _VIEWERS,
    Action.SUBSCRIPTION_CANCEL: {CUSTOMER: _owns},

    Action.SERVICE_REQUEST_CREATE: {CUSTOMER: _owns},
    Action.SERVICE_REQUEST_VIEW: _VIEWERS,
    Action.SERVICE_REQUEST_MANAGE: {ADMIN: _always, OWNER: _runs_franchise, AGENT: _is_assigned},
    Action.SERVICE_REQUEST_CANCEL: {CUSTOMER: _owns},
    Action.SERVICE_REQUEST_FEEDBACK: {CUSTOMER: _owns},

    # The recipient is recorded as the scope's customer_id
    Action.NOTIFICATION_READ: {role: _owns for role in UserRole},
}


def authorize(actor: Actor, scope: ResourceScope, action: Action) -> bool:
    """Return True if the actor may perform the action on the scoped resource."""
    rule = CAPABILITIES.get(action, {}).get(actor.role)
    if rule is None:
        return False
    return rule(actor, scope)


def ensure_allowed(actor: Actor, scope: ResourceScope, action: Action) -> None:
    """
    Raise PermissionDeniedError unless authorize() allows the action.
    """
    if not authorize(actor, scope, action):
        raise PermissionDeniedError(
            f"Role '{actor.role.value}' is not allowed to perform {action.value}"
        )
