from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Optional
import uuid
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.core.security import verify_access_token
from app.services.notification_service import NotificationService, build_notification_service
from app.services.payment_gateway import PaymentGateway, get_payment_gateway


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer()


class UserRole(str, Enum):
    CUSTOMER = "customer"
    WAREHOUSE_STAFF = "warehouse_staff"
    ADMIN = "admin"


@dataclass
class AuthenticatedUser:
    """Caller identity taken from the access token claims."""
    id: uuid.UUID
    role: UserRole
    name: Optional[str] = None
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_staff(self) -> bool:
        return self.role in (UserRole.ADMIN, UserRole.WAREHOUSE_STAFF)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> AuthenticatedUser:
    """
    Dependency to get the current authenticated user.

    Users live in the identity platform; the token carries id, role, name and email.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = verify_access_token(credentials.credentials)
    if payload is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise credentials_exception

    try:
        user_id = uuid.UUID(payload["sub"])
        role = UserRole(payload.get("role", UserRole.CUSTOMER.value))
    except ValueError:
        logger.warning(f"Invalid subject or role in token: {payload.get('sub')}")
        raise credentials_exception

    return AuthenticatedUser(
        id=user_id,
        role=role,
        name=payload.get("name"),
        email=payload.get("email"),
    )


def require_roles(*roles: UserRole):
    """
    Dependency factory that only lets the given roles through.

    Usage:
        @router.post("/{booking_id}/confirm")
        async def confirm(user: AuthenticatedUser = Depends(require_roles(UserRole.ADMIN))):
            ...
    """
    async def role_dependency(
        user: Annotated[AuthenticatedUser, Depends(get_current_user)],
    ) -> AuthenticatedUser:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"This action requires one of the roles: {', '.join(r.value for r in roles)}",
            )
        return user

    return role_dependency


_notification_service: Optional[NotificationService] = None


def get_notification_service() -> NotificationService:
    global _notification_service
    if _notification_service is None:
        _notification_service = build_notification_service()
    return _notification_service


def get_gateway() -> PaymentGateway:
    return get_payment_gateway()


# Type aliases for cleaner dependency injection
CurrentUser = Annotated[AuthenticatedUser, Depends(get_current_user)]
StaffUser = Annotated[AuthenticatedUser, Depends(require_roles(UserRole.ADMIN, UserRole.WAREHOUSE_STAFF))]
AdminUser = Annotated[AuthenticatedUser, Depends(require_roles(UserRole.ADMIN))]
DB = Annotated[AsyncSession, Depends(get_db)]
Notifier = Annotated[NotificationService, Depends(get_notification_service)]
Gateway = Annotated[PaymentGateway, Depends(get_gateway)]
