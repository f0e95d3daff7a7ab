"""Shared entity loading and scoping helpers for the lifecycle services."""
from typing import Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aquarent.core.exceptions import NotFoundError, PermissionDeniedError, ValidationFailedError
from aquarent.core.permissions import Actor
from aquarent.models.franchise import Franchise
from aquarent.models.user import User, UserRole

ModelT = TypeVar("ModelT")


async def get_or_404(
    db: AsyncSession,
    model: Type[ModelT],
    row_id: int,
    for_update: bool = False,
    label: Optional[str] = None,
) -> ModelT:
    """
    Load a row by primary key or raise NotFoundError.

    With ``for_update`` the row is locked until the surrounding transaction
    ends and the in-session copy is refreshed from the locked read.
    """
    stmt = select(model).where(model.id == row_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    obj = result.scalar_one_or_none()
    if obj is None:
        raise NotFoundError(f"{label or model.__name__} {row_id} not found")
    return obj


async def franchise_owner_id(db: AsyncSession, franchise_id: Optional[int]) -> Optional[int]:
    """Owner user id of a franchise, or None when there is no franchise."""
    if franchise_id is None:
        return None
    return await db.scalar(select(Franchise.owner_id).where(Franchise.id == franchise_id))


def owned_franchise_ids(user_id: int):
    """Subquery of franchise ids owned by the user, for list filters."""
    return select(Franchise.id).where(Franchise.owner_id == user_id).scalar_subquery()


async def validate_service_agent(db: AsyncSession, actor: Actor, agent_id: int) -> User:
    """
    Check that ``agent_id`` may be assigned by ``actor``.

    Admins may assign any active service agent. Franchise owners may only
    assign agents that work for a franchise they own. Nobody else assigns.
    """
    if actor.role not in (UserRole.ADMIN, UserRole.FRANCHISE_OWNER):
        raise PermissionDeniedError("Only admins and franchise owners can assign service agents")

    agent = await db.get(User, agent_id)
    if agent is None:
        raise NotFoundError(f"Service agent {agent_id} not found")
    if agent.role != UserRole.SERVICE_AGENT.value or not agent.is_active:
        raise ValidationFailedError(f"User {agent_id} is not an active service agent")

    if actor.role == UserRole.FRANCHISE_OWNER:
        owner_id = await franchise_owner_id(db, agent.franchise_id)
        if owner_id != actor.user_id:
            raise PermissionDeniedError("Service agent does not belong to your franchise")

    return agent


def append_note(existing: Optional[str], note: str) -> str:
    """Append a note to a running notes field, separated by ' | '."""
    if not existing:
        return note
    return f"{existing} | {note}"
