"""Authentication API v1 endpoints."""

import re
import time
from collections import defaultdict

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, EmailStr, Field, field_validator

from selliox.api.rate_limit import limiter
from selliox.auth.local import JWT_EXPIRE_HOURS, auth_service
from selliox.auth.models import TokenResponse, User
from selliox.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

# ==================== ACCOUNT LOCKOUT ====================

# Track failed login attempts: key = email, value = list of timestamps
_failed_attempts: dict[str, list[float]] = defaultdict(list)
_LOCKOUT_THRESHOLD = 5       # Max failed attempts before lockout
_LOCKOUT_WINDOW = 900        # 15 minutes window for counting attempts
_LOCKOUT_DURATION = 900      # 15 minutes lockout duration


def _check_lockout(key: str) -> None:
    """Check if an account is locked out. Raises 429 if locked."""
    now = time.time()
    _failed_attempts[key] = [
        t for t in _failed_attempts[key] if now - t < _LOCKOUT_WINDOW
    ]
    if len(_failed_attempts[key]) >= _LOCKOUT_THRESHOLD:
        oldest_in_window = _failed_attempts[key][0]
        remaining = int(_LOCKOUT_DURATION - (now - oldest_in_window))
        if remaining > 0:
            logger.warning("account_locked_out", key=key, remaining_seconds=remaining)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Too many failed login attempts. Try again in {remaining // 60 + 1} minutes.",
            )
        _failed_attempts[key].clear()


def _record_failed_attempt(key: str) -> None:
    """Record a failed login attempt."""
    _failed_attempts[key].append(time.time())


# ==================== MODELS ====================


def validate_password_complexity(password: str) -> str:
    """Validate password meets security requirements."""
    if len(password) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not re.search(r'[A-Za-z]', password):
        raise ValueError("Password must contain at least one letter")
    if not re.search(r'[0-9]', password):
        raise ValueError("Password must contain at least one digit")
    return password


class RegisterRequest(BaseModel):
    """User registration request."""
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=100)
    name: str | None = Field(default=None, max_length=100)
    referral_code: str | None = Field(default=None, max_length=20)

    @field_validator('password')
    @classmethod
    def check_password_complexity(cls, v):
        return validate_password_complexity(v)


class LoginRequest(BaseModel):
    """User login request."""
    email: EmailStr
    password: str


def _token_response(user) -> TokenResponse:
    return TokenResponse(
        access_token=auth_service.create_access_token(user),
        token_type="bearer",
        expires_in=JWT_EXPIRE_HOURS * 3600,
        user=User.model_validate(user),
    )


# ==================== ENDPOINTS ====================


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
async def register(request: Request, body: RegisterRequest):
    """Register a new user account.

    Every new account starts with one draw ticket. A referral code, if
    provided, is recorded as a pending referral for its owner.
    """
    user = auth_service.create_user(
        email=body.email,
        password=body.password,
        name=body.name,
        referral_code=body.referral_code,
    )

    logger.info("user_registered", user_id=user.id, referral_code=body.referral_code)
    return _token_response(user)


@router.post("/login", response_model=TokenResponse)
@limiter.limit("10/minute")
async def login(request: Request, body: LoginRequest):
    """Login with email and password."""
    key = body.email.lower()
    _check_lockout(key)

    user = auth_service.authenticate(body.email, body.password)
    if not user:
        _record_failed_attempt(key)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    _failed_attempts.pop(key, None)
    return _token_response(user)
