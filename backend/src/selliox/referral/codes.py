"""Referral code registry."""

import secrets
import string
from datetime import datetime
from typing import Any

from sqlalchemy.exc import IntegrityError

from selliox.auth.models import UserAccount
from selliox.errors import Internal, InvalidInput, NotFound, SelfReferral
from selliox.logging_config import get_logger
from selliox.referral.models import ReferralCode
from selliox.settings import settings
from selliox.storage.db import db

logger = get_logger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_GENERATION_ATTEMPTS = 10


def _generate_candidate(length: int | None = None) -> str:
    """Random uppercase alphanumeric code (6 chars by default)."""
    length = length or settings.referral_code_length
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str | None) -> str:
    """Canonical form of a user-supplied code."""
    if not code or not code.strip():
        raise InvalidInput("Referral code is required")
    return code.strip().upper()


class ReferralCodeRegistry:
    """Issues, validates and deactivates referral codes."""

    def __init__(self):
        self.logger = get_logger(__name__)

    def generate_code(self, user_id: int) -> ReferralCode:
        """Get the user's active code, creating one on first request.

        Idempotent. The code is mirrored onto the user profile whenever the
        profile is stale. Concurrent first requests converge on one code.

        Args:
            user_id: Code owner

        Returns:
            The active ReferralCode
        """
        with db.session() as session:
            user = session.get(UserAccount, user_id)
            if not user:
                raise NotFound(f"User {user_id} not found", user_id=user_id)

            existing = session.query(ReferralCode).filter(
                ReferralCode.user_id == user_id,
                ReferralCode.is_active == True,
            ).first()

            if existing:
                if user.referral_code != existing.code or user.referral_code_status != "active":
                    user.referral_code = existing.code
                    user.referral_code_status = "active"
                return existing

        for attempt in range(MAX_GENERATION_ATTEMPTS):
            code = _generate_candidate()
            try:
                with db.session() as session:
                    if session.query(ReferralCode.id).filter(ReferralCode.code == code).first():
                        continue

                    referral_code = ReferralCode(user_id=user_id, code=code)
                    session.add(referral_code)
                    session.flush()
                    session.query(UserAccount).filter(UserAccount.id == user_id).update(
                        {"referral_code": code, "referral_code_status": "active"}
                    )
            except IntegrityError:
                # Either the code is taken or a concurrent request already gave this user a code
                existing = self.get_active_code(user_id)
                if existing:
                    self.logger.info("referral_code_race_lost", user_id=user_id, code=existing.code)
                    return existing
                self.logger.debug("referral_code_collision", code=code, attempt=attempt)
                continue

            self.logger.info("referral_code_created", user_id=user_id, code=code)
            return referral_code

        raise Internal("Could not generate a unique referral code", user_id=user_id)

    def get_active_code(self, user_id: int) -> ReferralCode | None:
        """The user's active code, if any."""
        with db.session() as session:
            return session.query(ReferralCode).filter(
                ReferralCode.user_id == user_id,
                ReferralCode.is_active == True,
            ).first()

    def validate_code(self, code: str, caller_id: int | None = None) -> dict[str, Any]:
        """Check that a code can be redeemed.

        Args:
            code: Code as typed by the user
            caller_id: Authenticated caller, if any

        Returns:
            Public identity of the code owner

        Raises:
            NotFound: Unknown or inactive code, or the owner is gone
            SelfReferral: The caller owns the code
        """
        code = normalize_code(code)

        with db.session() as session:
            referral_code = session.query(ReferralCode).filter(
                ReferralCode.code == code,
                ReferralCode.is_active == True,
            ).first()
            if not referral_code:
                raise NotFound("Invalid or inactive referral code", code=code)

            owner = session.get(UserAccount, referral_code.user_id)
            if not owner:
                raise NotFound("Referrer user not found", code=code)

            if caller_id is not None and owner.id == caller_id:
                raise SelfReferral("You cannot use your own referral code", code=code)

            return {
                "code": referral_code.code,
                "referrer": {"id": owner.id, "name": owner.name},
            }

    def deactivate_code(self, code: str) -> ReferralCode:
        """Turn a code off (admin action)."""
        code = normalize_code(code)

        with db.session() as session:
            referral_code = session.query(ReferralCode).filter(ReferralCode.code == code).first()
            if not referral_code:
                raise NotFound("Referral code not found", code=code)

            referral_code.is_active = False
            referral_code.updated_at = datetime.utcnow()
            session.query(UserAccount).filter(
                UserAccount.id == referral_code.user_id,
                UserAccount.referral_code == code,
            ).update({"referral_code_status": "inactive"})

        self.logger.info("referral_code_deactivated", code=code, user_id=referral_code.user_id)
        return referral_code


# Singleton instance
code_registry = ReferralCodeRegistry()
