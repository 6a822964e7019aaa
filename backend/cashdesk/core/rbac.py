"""Role-Based Access Control (RBAC) utilities."""

from enum import Enum
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status

from cashdesk.core.exceptions import PermissionDeniedError
from cashdesk.core.security import decode_access_token, extract_bearer_token
from cashdesk.db.session import DbSession


class UserRole(str, Enum):
    """User roles for RBAC."""

    ADMIN = "admin"
    MANAGER = "manager"
    SUPERVISOR = "supervisor"
    CASHIER = "cashier"


# Role hierarchy: admin > manager > supervisor > cashier
ROLE_HIERARCHY = {
    UserRole.ADMIN: 4,
    UserRole.MANAGER: 3,
    UserRole.SUPERVISOR: 2,
    UserRole.CASHIER: 1,
}

# Roles that join the monitoring hub as supervisors
MONITORING_ROLES = frozenset({UserRole.ADMIN, UserRole.MANAGER, UserRole.SUPERVISOR})


class TokenData:
    """Decoded token data.

    Attributes:
        user_id: The user's database ID.
        email: The user's email address.
        role: The user's role.
        full_name: The user's display name (defaults to email prefix).
    """

    def __init__(self, user_id: int, email: str, role: UserRole, full_name: str = ""):
        self.user_id = user_id
        self.id = user_id
        self.email = email
        self.role = role
        self.full_name = full_name or email.split("@")[0]

    @property
    def is_supervisor(self) -> bool:
        return self.role in MONITORING_ROLES


def _payload_from_request(request: Request) -> Optional[dict]:
    """Bearer header first, then the ``access_token`` cookie."""
    payload = None
    token = extract_bearer_token(request.headers.get("Authorization"))
    if token:
        payload = decode_access_token(token)
    if payload is None:
        cookie_token = request.cookies.get("access_token")
        if cookie_token:
            payload = decode_access_token(cookie_token)
    return payload


async def get_current_user(request: Request, db: DbSession) -> TokenData:
    """Get the current authenticated user from JWT token."""
    payload = _payload_from_request(request)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    email = payload.get("email")
    role = payload.get("role")

    if user_id is None or email is None or role is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    try:
        user_role = UserRole(role)
        user_id = int(user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    # Verify user is still active in the directory
    from cashdesk.models.user import User
    user = db.query(User).filter(User.id == user_id).first()
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is disabled",
        )

    return TokenData(
        user_id=user_id, email=email, role=user_role,
        full_name=payload.get("full_name") or user.name or "",
    )


def require_role(minimum_role: UserRole):
    """Dependency to require a minimum role level."""

    async def role_checker(
        current_user: Annotated[TokenData, Depends(get_current_user)]
    ) -> TokenData:
        user_level = ROLE_HIERARCHY.get(current_user.role, 0)
        required_level = ROLE_HIERARCHY.get(minimum_role, 0)

        if user_level < required_level:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role {minimum_role.value} or higher",
            )
        return current_user

    return role_checker


def ensure_can_act_for(current_user: TokenData, cashier_id: int) -> None:
    """Cashiers may only act on their own sessions; supervisors on anyone's."""
    if current_user.is_supervisor:
        return
    if current_user.user_id != cashier_id:
        raise PermissionDeniedError("Cashiers can only manage their own session")


# Common role dependencies
RequireManager = Annotated[TokenData, Depends(require_role(UserRole.MANAGER))]
RequireSupervisor = Annotated[TokenData, Depends(require_role(UserRole.SUPERVISOR))]
CurrentUser = Annotated[TokenData, Depends(get_current_user)]
