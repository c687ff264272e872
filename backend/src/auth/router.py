"""Authentication endpoints for MentorLink API

Signup, login and the current-user profile.
"""

import logging
from datetime import datetime, timezone
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session

from database import get_db
from models.user import User
from .schemas import SignupRequest, LoginRequest, LoginResponse, MeResponse, UserResponse
from .password import hash_password, verify_password
from .jwt import create_access_token, token_lifetime_minutes
from .dependencies import CurrentUser
from .roles import UserRole
from audit.service import log_from_request
from .rate_limit import check_rate_limit, rate_limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _token_response(user: User) -> LoginResponse:
    access_token = create_access_token(
        user_id=user.id,
        role=user.role,
        email=user.email
    )
    return LoginResponse(
        access_token=access_token,
        token_type="bearer",
        expires_in=token_lifetime_minutes() * 60
    )


@router.post("/signup", response_model=LoginResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    data: SignupRequest,
    request: Request,
    db: Annotated[Session, Depends(get_db)],
    _: None = Depends(check_rate_limit)
):
    """Register a new student account and log it in.

    Raises:
        HTTPException: 409 if the email is already registered
    """
    email = data.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists"
        )

    user = User(
        email=email,
        full_name=data.full_name,
        role=UserRole.STUDENT.value,
        password_hash=hash_password(data.password),
        status="ACTIVE",
        last_login_at=datetime.now(timezone.utc),
    )
    db.add(user)
    db.flush()

    log_from_request(
        db=db,
        request=request,
        action="USER_SIGNED_UP",
        actor_id=user.id,
        entity_type="user",
        entity_id=user.id,
        metadata={"email": email},
    )
    db.commit()
    db.refresh(user)

    logger.info(f"New student account registered: user_id={user.id}")
    return _token_response(user)


@router.post("/login", response_model=LoginResponse)
async def login(
    credentials: LoginRequest,
    request: Request,
    db: Annotated[Session, Depends(get_db)],
    _: None = Depends(check_rate_limit)
):
    """Authenticate user and return JWT access token.

    Security measures:
    - Rate limiting and lockout after repeated failures (Redis)
    - Constant-time password verification
    - Failed logins are written to the audit log
    - Disabled accounts are rejected

    Raises:
        HTTPException: 401 if credentials are invalid or account is disabled
        HTTPException: 429 if rate limit exceeded or account locked out
    """
    email = credentials.email.lower()
    user = db.query(User).filter(User.email == email).first()

    if not user or not verify_password(credentials.password, user.password_hash):
        log_from_request(
            db=db,
            request=request,
            action="LOGIN_FAILED",
            metadata={"email": email, "reason": "invalid_credentials"},
        )
        db.commit()
        rate_limiter.record_failed_login(email, request)

        # Same message for unknown email and wrong password
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )

    if user.status == 'DISABLED':
        log_from_request(
            db=db,
            request=request,
            action="LOGIN_FAILED",
            actor_id=user.id,
            metadata={"email": email, "reason": "account_disabled"},
        )
        db.commit()
        rate_limiter.record_failed_login(email, request)

        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is disabled"
        )

    user.last_login_at = datetime.now(timezone.utc)
    rate_limiter.clear_failed_attempts(email)

    log_from_request(
        db=db,
        request=request,
        action="LOGIN_SUCCESS",
        actor_id=user.id,
        metadata={"email": email},
    )
    db.commit()
    db.refresh(user)

    return _token_response(user)


@router.get("/me", response_model=MeResponse)
async def get_me(current_user: CurrentUser):
    """Profile of the user named by the Bearer token."""
    return MeResponse(
        user=UserResponse.model_validate(current_user)
    )
