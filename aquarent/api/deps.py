from typing import Annotated
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from aquarent.database import get_db
from aquarent.core.permissions import Actor
from aquarent.core.security import verify_access_token
from aquarent.models.user import User, UserRole
from aquarent.services.payment_gateway import RazorpayGateway


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer()

DB = Annotated[AsyncSession, Depends(get_db)]


async def get_current_user(
    db: DB,
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> User:
    """
    Dependency to get the current authenticated user.
    Validates the JWT token and returns the user object.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    user_id = verify_access_token(credentials.credentials)
    if user_id is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise credentials_exception

    user = await db.get(User, user_id)
    if user is None:
        logger.warning(f"User {user_id} from token not found")
        raise credentials_exception

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated"
        )

    try:
        UserRole(user.role)
    except ValueError:
        logger.warning(f"User {user_id} has unknown role '{user.role}'")
        raise credentials_exception

    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


async def get_current_actor(user: CurrentUser) -> Actor:
    """Resolve the authenticated user to the actor passed into services."""
    return Actor.from_user(user)


def get_payment_gateway() -> RazorpayGateway:
    """Gateway client dependency; overridden in tests."""
    return RazorpayGateway()


# Type aliases for cleaner dependency injection
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
Gateway = Annotated[RazorpayGateway, Depends(get_payment_gateway)]
