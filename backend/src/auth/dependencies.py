"""FastAPI dependencies for authentication and authorization.

Usage:
    @router.get("/documents")
    def list_documents(user: CurrentUser):
        ...

    @router.post("/categories")
    def create_category(admin: User = Depends(require_role(UserRole.ADMIN))):
        ...
"""

from typing import Callable, Annotated
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from uuid import UUID
import jwt

from database import get_db
from models.user import User
from .jwt import decode_token
from .roles import UserRole, has_any_role


# HTTP Bearer token security scheme
security = HTTPBearer()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Validate the Bearer token and load the ACTIVE user it names.

    Raises:
        HTTPException 401: If token is missing, invalid, expired, or user not found
        HTTPException 403: If user status is DISABLED
    """
    try:
        payload = decode_token(credentials.credentials)

        user_id_str = payload.get("sub")
        if not user_id_str:
            raise _unauthorized("Invalid token: missing user ID claim")

        user_id = UUID(user_id_str)

    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except jwt.InvalidTokenError as e:
        raise _unauthorized(f"Invalid token: {str(e)}")
    except ValueError as e:
        raise _unauthorized(f"Invalid token claims: {str(e)}")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise _unauthorized("User not found")

    # Disabled users must not authenticate even with an unexpired token
    if user.status != "ACTIVE":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )

    return user


def require_role(*allowed_roles: UserRole) -> Callable:
    """Create a dependency that admits only users holding one of the roles.

    Example:
        @router.post("/documents/{document_id}/review")
        def review(user: User = Depends(require_role(UserRole.MENTOR, UserRole.ADMIN))):
            ...
    """

    def role_dependency(current_user: User = Depends(get_current_user)) -> User:
        if not has_any_role(current_user.role, allowed_roles):
            required = ", ".join(role.value for role in allowed_roles)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required role: {required}",
            )
        return current_user

    return role_dependency


def get_current_admin(current_user: User = Depends(require_role(UserRole.ADMIN))) -> User:
    """Convenience dependency for admin-only endpoints."""
    return current_user


# Type aliases for dependency injection
CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentAdmin = Annotated[User, Depends(get_current_admin)]
