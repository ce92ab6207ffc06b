"""Local authentication service (email/password)."""

from datetime import datetime, timedelta
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError

from selliox.auth.models import UserAccount
from selliox.draws.ledger import TicketLedger
from selliox.draws.models import EntrySource
from selliox.errors import Conflict, NotFound
from selliox.logging_config import get_logger
from selliox.settings import settings
from selliox.storage.db import db

logger = get_logger(__name__)

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# JWT settings
JWT_SECRET_KEY = settings.jwt_secret_key
JWT_ALGORITHM = "HS256"
JWT_EXPIRE_HOURS = 2


class LocalAuthService:
    """Authentication service for local (email/password) users."""

    def __init__(self):
        """Initialize auth service."""
        self.logger = get_logger(__name__)

    # ==================== PASSWORD ====================

    def _truncate_password(self, password: str) -> str:
        """Truncate password to 72 bytes (bcrypt limit)."""
        return password.encode('utf-8')[:72].decode('utf-8', errors='ignore')

    def hash_password(self, password: str) -> str:
        """Hash a password.

        Args:
            password: Plain password

        Returns:
            Hashed password
        """
        return pwd_context.hash(self._truncate_password(password))

    def verify_password(self, password: str, hashed: str) -> bool:
        """Verify a password against hash.

        Args:
            password: Plain password
            hashed: Hashed password

        Returns:
            True if matches
        """
        return pwd_context.verify(self._truncate_password(password), hashed)

    # ==================== USER MANAGEMENT ====================

    def create_user(
        self,
        email: str,
        password: str,
        name: str | None = None,
        referral_code: str | None = None,
        is_admin: bool = False,
    ) -> UserAccount:
        """Create a new local user with their sign-up draw ticket.

        A referral code, when given, is validated before the account is
        created and recorded as a pending referral afterwards.

        Args:
            email: User email
            password: Plain password
            name: Optional name
            referral_code: Optional code of the referring user
            is_admin: Grant admin rights (CLI only)

        Returns:
            Created user account

        Raises:
            Conflict: If email already exists
            NotFound: If the referral code is unknown or inactive
        """
        from selliox.referral.codes import code_registry
        from selliox.referral.service import referral_service

        if referral_code:
            code_registry.validate_code(referral_code)

        try:
            with db.session() as session:
                existing = session.query(UserAccount).filter(
                    UserAccount.email == email.lower()
                ).first()
                if existing:
                    raise Conflict("Email already registered")

                user = UserAccount(
                    email=email.lower(),
                    name=name,
                    password_hash=self.hash_password(password),
                    is_admin=is_admin,
                )
                session.add(user)
                session.flush()

                TicketLedger(session).grant(
                    user_id=user.id,
                    tickets=settings.signup_reward_tickets,
                    source=EntrySource.SIGNUP,
                )
                session.refresh(user)
        except IntegrityError:
            raise Conflict("Email already registered")

        self.logger.info("user_created", user_id=user.id, email=user.email)

        if referral_code:
            try:
                referral_service.register_referral(referral_code, user.id)
            except NotFound:
                # Code deactivated after validation; the account stands without a referral
                self.logger.warning("signup_referral_skipped", user_id=user.id, code=referral_code)

        return user

    def authenticate(self, email: str, password: str) -> UserAccount | None:
        """Authenticate a user.

        Args:
            email: User email
            password: Plain password

        Returns:
            User account if valid, None otherwise
        """
        with db.session() as session:
            user = session.query(UserAccount).filter(
                UserAccount.email == email.lower(),
                UserAccount.is_active == True,
            ).first()

            if not user or not user.password_hash:
                return None

            if not self.verify_password(password, user.password_hash):
                return None

            user.last_login_at = datetime.utcnow()

            self.logger.info("user_authenticated", user_id=user.id)
            return user

    def get_user_by_id(self, user_id: int) -> UserAccount | None:
        """Get active user by ID."""
        with db.session() as session:
            return session.query(UserAccount).filter(
                UserAccount.id == user_id,
                UserAccount.is_active == True,
            ).first()

    def get_user_by_email(self, email: str) -> UserAccount | None:
        """Get user by email."""
        with db.session() as session:
            return session.query(UserAccount).filter(
                UserAccount.email == email.lower(),
            ).first()

    # ==================== JWT TOKENS ====================

    def create_access_token(
        self,
        user: UserAccount,
        expires_delta: timedelta | None = None,
    ) -> str:
        """Create JWT access token.

        Args:
            user: User account
            expires_delta: Optional expiration time

        Returns:
            JWT token string
        """
        if expires_delta is None:
            expires_delta = timedelta(hours=JWT_EXPIRE_HOURS)

        expire = datetime.utcnow() + expires_delta

        payload = {
            "sub": str(user.id),
            "email": user.email,
            "admin": bool(user.is_admin),
            "exp": expire,
            "iat": datetime.utcnow(),
        }

        return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)

    def verify_token(self, token: str) -> dict[str, Any] | None:
        """Verify and decode JWT token.

        Args:
            token: JWT token string

        Returns:
            Token payload or None if invalid
        """
        try:
            return jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
        except JWTError as e:
            self.logger.debug("token_verification_failed", error=str(e))
            return None

    def get_user_from_token(self, token: str) -> UserAccount | None:
        """Get user from JWT token.

        Args:
            token: JWT token string

        Returns:
            User account or None
        """
        payload = self.verify_token(token)
        if not payload:
            return None

        user_id = payload.get("sub")
        if not user_id:
            return None

        return self.get_user_by_id(int(user_id))


# Singleton instance
auth_service = LocalAuthService()
