"""Referral conversion and reward issuance.

A referral is converted at most once per (referrer, referred, code). The
status flip, the reward and every counter increment happen in one
transaction; notifications go out only after it commits.
"""

from collections import defaultdict
from datetime import datetime
from typing import Any

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from selliox.auth.models import UserAccount
from selliox.draws.ledger import TicketLedger
from selliox.draws.models import DrawEntry, EntrySource
from selliox.errors import AlreadyProcessed, InvalidInput, NotFound, SelfReferral
from selliox.logging_config import get_logger
from selliox.notifications.models import NotificationType
from selliox.referral.codes import normalize_code
from selliox.referral.models import Referral, ReferralCode, ReferralStatus, RewardStatus, RewardType
from selliox.settings import settings
from selliox.storage.db import db

logger = get_logger(__name__)


def parse_reward_type(reward_type: str | RewardType | None) -> RewardType | None:
    """Validate a reward type coming from a request."""
    if reward_type is None or reward_type == "":
        return None
    try:
        return RewardType(reward_type)
    except ValueError:
        raise InvalidInput("Invalid reward type", reward_type=str(reward_type))


def referral_link(code: str) -> str:
    base = (settings.frontend_url or "http://localhost:3000").rstrip("/")
    return f"{base}/referral/{code}"


class ReferralService:
    """Service for redeeming referral codes and rewarding referrers."""

    def __init__(self):
        """Initialize referral service."""
        self.logger = get_logger(__name__)

    # ==================== CODE RESOLUTION ====================

    def _resolve_code(self, session: Session, code: str, redeemer_id: int) -> tuple[ReferralCode, UserAccount]:
        referral_code = session.query(ReferralCode).filter(
            ReferralCode.code == code,
            ReferralCode.is_active == True,
        ).first()
        if not referral_code:
            raise NotFound("Invalid or inactive referral code", code=code)

        owner = session.get(UserAccount, referral_code.user_id)
        if not owner:
            raise NotFound("Referrer user not found", code=code)

        if owner.id == redeemer_id:
            raise SelfReferral("You cannot use your own referral code", code=code)

        return referral_code, owner

    # ==================== REWARDS ====================

    def issue_reward(
        self,
        session: Session,
        referrer_id: int,
        referral_id: int,
        reward_type: RewardType,
        now: datetime | None = None,
    ) -> DrawEntry | None:
        """Grant the referrer's reward inside the caller's transaction.

        Args:
            session: Open session of the conversion
            referrer_id: User receiving the reward
            referral_id: Converted referral
            reward_type: free_month or draw_entries
            now: Grant time

        Returns:
            The ticket entry for draw_entries, None for free_month
        """
        if reward_type == RewardType.FREE_MONTH:
            session.execute(
                update(UserAccount)
                .where(UserAccount.id == referrer_id)
                .values(free_months_used=UserAccount.free_months_used + 1)
            )
            return None

        return TicketLedger(session).grant(
            user_id=referrer_id,
            tickets=settings.referral_reward_tickets,
            source=EntrySource.REFERRAL,
            referral_id=referral_id,
            now=now,
        )

    # ==================== CONVERSION ====================

    def apply_code(
        self,
        code: str,
        redeemer_id: int,
        listing_id: int | None = None,
        reward_type: str | RewardType | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Redeem a referral code and reward its owner.

        Args:
            code: Referral code
            redeemer_id: User redeeming the code
            listing_id: Listing that triggered the redemption, if any
            reward_type: Requested reward (default draw_entries); a reward
                already chosen by the referrer takes precedence
            now: Conversion time

        Returns:
            Dict with the referral, whether it was created, and the reward

        Raises:
            NotFound: Unknown or inactive code
            SelfReferral: Redeemer owns the code
            AlreadyProcessed: The pair already converted this code
        """
        code = normalize_code(code)
        requested = parse_reward_type(reward_type)
        now = now or datetime.utcnow()

        try:
            with db.session() as session:
                referral_code, owner = self._resolve_code(session, code, redeemer_id)

                referral = session.query(Referral).filter(
                    Referral.referrer_id == owner.id,
                    Referral.referred_id == redeemer_id,
                    Referral.code == code,
                ).first()

                created = referral is None
                if referral:
                    if referral.status != ReferralStatus.PENDING.value:
                        raise AlreadyProcessed("This referral has already been processed", referral_id=referral.id)

                    if referral.reward_status == RewardStatus.CLAIMED.value and referral.reward_type:
                        chosen = RewardType(referral.reward_type)
                    else:
                        chosen = requested or RewardType.DRAW_ENTRIES

                    result = session.execute(
                        update(Referral)
                        .where(Referral.id == referral.id, Referral.status == ReferralStatus.PENDING.value)
                        .values(
                            status=ReferralStatus.CONVERTED.value,
                            converted_at=now,
                            reward_type=chosen.value,
                            listing_id=listing_id if listing_id is not None else referral.listing_id,
                            updated_at=now,
                        )
                    )
                    if not result.rowcount:
                        raise AlreadyProcessed("This referral has already been processed", referral_id=referral.id)
                else:
                    chosen = requested or RewardType.DRAW_ENTRIES
                    referral = Referral(
                        referrer_id=owner.id,
                        referred_id=redeemer_id,
                        code=code,
                        status=ReferralStatus.CONVERTED.value,
                        reward_type=chosen.value,
                        listing_id=listing_id,
                        converted_at=now,
                        created_at=now,
                    )
                    session.add(referral)
                    session.flush()

                    session.execute(
                        update(UserAccount)
                        .where(UserAccount.id == redeemer_id, UserAccount.referred_by_id.is_(None))
                        .values(referred_by_id=owner.id)
                    )

                entry = self.issue_reward(session, owner.id, referral.id, chosen, now=now)

                session.execute(
                    update(Referral)
                    .where(Referral.id == referral.id)
                    .values(reward_status=RewardStatus.PROCESSED.value)
                )
                session.execute(
                    update(UserAccount)
                    .where(UserAccount.id == owner.id)
                    .values(
                        referrals_count=UserAccount.referrals_count + (1 if created else 0),
                        successful_conversions=UserAccount.successful_conversions + 1,
                        total_rewards=UserAccount.total_rewards + 1,
                    )
                )
                session.execute(
                    update(ReferralCode)
                    .where(ReferralCode.id == referral_code.id)
                    .values(usage_count=ReferralCode.usage_count + 1)
                )

                session.refresh(referral)
                referrer_id = owner.id
        except IntegrityError:
            # A concurrent redemption of the same pair inserted first
            self.logger.info("referral_insert_race_lost", code=code, redeemer_id=redeemer_id)
            raise AlreadyProcessed("This referral has already been processed", code=code)

        self.logger.info(
            "referral_converted",
            referral_id=referral.id,
            referrer_id=referrer_id,
            redeemer_id=redeemer_id,
            reward_type=chosen.value,
            created=created,
        )

        self._notify_reward(referrer_id, referral.id, chosen, entry)

        return {
            "referral": referral.to_dict(),
            "created": created,
            "reward": {
                "type": chosen.value,
                "tickets": entry.tickets if entry else 0,
                "draw_entry_id": entry.id if entry else None,
            },
        }

    def _notify_reward(
        self,
        referrer_id: int,
        referral_id: int,
        reward_type: RewardType,
        entry: DrawEntry | None,
    ) -> None:
        from selliox.notifications.service import notification_service

        if reward_type == RewardType.FREE_MONTH:
            notification_service.emit(
                referrer_id,
                NotificationType.REFERRAL_USED,
                "Someone used your referral code and you received a free month!",
                {"referral_id": referral_id, "reward_type": reward_type.value},
            )
        else:
            notification_service.emit(
                referrer_id,
                NotificationType.DRAW_ENTRY,
                f"Someone used your referral code and you received {entry.tickets} draw entries!",
                {"tickets": entry.tickets, "draw_entry_id": entry.id},
            )

    def register_referral(self, code: str, referred_id: int, now: datetime | None = None) -> Referral:
        """Record a pending referral when a user signs up with a code.

        Idempotent per (referrer, referred, code).

        Args:
            code: Code entered at sign-up
            referred_id: The new user
            now: Sign-up time

        Returns:
            The pending (or existing) referral
        """
        code = normalize_code(code)
        now = now or datetime.utcnow()

        try:
            with db.session() as session:
                _, owner = self._resolve_code(session, code, referred_id)

                existing = session.query(Referral).filter(
                    Referral.referrer_id == owner.id,
                    Referral.referred_id == referred_id,
                    Referral.code == code,
                ).first()
                if existing:
                    return existing

                referral = Referral(
                    referrer_id=owner.id,
                    referred_id=referred_id,
                    code=code,
                    status=ReferralStatus.PENDING.value,
                    created_at=now,
                )
                session.add(referral)
                session.flush()

                session.execute(
                    update(UserAccount)
                    .where(UserAccount.id == referred_id, UserAccount.referred_by_id.is_(None))
                    .values(referred_by_id=owner.id)
                )
                session.execute(
                    update(UserAccount)
                    .where(UserAccount.id == owner.id)
                    .values(referrals_count=UserAccount.referrals_count + 1)
                )
        except IntegrityError:
            with db.session() as session:
                return session.query(Referral).filter(
                    Referral.referred_id == referred_id,
                    Referral.code == code,
                ).one()

        self.logger.info("referral_registered", referral_id=referral.id, referrer_id=owner.id, referred_id=referred_id)
        return referral

    def choose_reward(self, referrer_id: int, referral_id: int, reward_type: str | RewardType) -> Referral:
        """Let the referrer pick the reward for a pending referral.

        The choice is applied when the referral converts. A referral whose
        reward was already issued cannot be changed.

        Raises:
            InvalidInput: Missing or unknown reward type
            NotFound: No such referral owned by the caller
            AlreadyProcessed: The reward was already issued
        """
        chosen = parse_reward_type(reward_type)
        if chosen is None:
            raise InvalidInput("Referral ID and reward type are required")

        with db.session() as session:
            referral = session.query(Referral).filter(
                Referral.id == referral_id,
                Referral.referrer_id == referrer_id,
            ).first()
            if not referral:
                raise NotFound("Referral not found", referral_id=referral_id)

            result = session.execute(
                update(Referral)
                .where(
                    Referral.id == referral_id,
                    Referral.status == ReferralStatus.PENDING.value,
                )
                .values(
                    reward_type=chosen.value,
                    reward_status=RewardStatus.CLAIMED.value,
                    updated_at=datetime.utcnow(),
                )
            )
            if not result.rowcount:
                raise AlreadyProcessed("Referral reward has already been processed", referral_id=referral_id)

            session.refresh(referral)

        self.logger.info("referral_reward_chosen", referral_id=referral_id, reward_type=chosen.value)
        return referral

    # ==================== DASHBOARD ====================

    def _draw_overview(self, now: datetime) -> dict[str, Any]:
        from selliox.draws.engine import countdown, current_period, get_or_create_draw

        month, year = current_period(now)
        draw = get_or_create_draw(month, year)
        return {
            "month": month,
            "year": year,
            "status": draw.status,
            "prize_amount": draw.prize_amount,
            **countdown(month, year, now),
        }

    def get_user_data(self, user_id: int, now: datetime | None = None) -> dict[str, Any]:
        """Compact referral summary for the signed-in user."""
        from selliox.draws.payouts import check_winner_status

        now = now or datetime.utcnow()

        with db.session() as session:
            user = session.get(UserAccount, user_id)
            if not user:
                raise NotFound("User not found", user_id=user_id)

            referral_code = session.query(ReferralCode).filter(
                ReferralCode.user_id == user_id,
                ReferralCode.is_active == True,
            ).first()

            referrals = (
                session.query(Referral)
                .filter(Referral.referrer_id == user_id, Referral.status == ReferralStatus.CONVERTED.value)
                .order_by(Referral.converted_at.desc())
                .all()
            )
            entries = sorted(
                TicketLedger(session).active_entries(user_id),
                key=lambda e: e.created_at or now,
                reverse=True,
            )
            stats = user.referral_stats

        winner = check_winner_status(user_id, unpaid_only=True)
        return {
            "referral_code": referral_code.code if referral_code else None,
            "referral_stats": stats,
            "referrals": [r.to_dict() for r in referrals],
            "draw_entries": [e.to_dict() for e in entries],
            "total_tickets": sum(e.tickets for e in entries),
            "current_draw": self._draw_overview(now),
            "is_winner": winner["is_winner"],
            "winning_draw": winner["draw"],
        }

    def get_dashboard(self, user_id: int, now: datetime | None = None) -> dict[str, Any]:
        """Full referral dashboard: stats, analytics, entries and draw status."""
        from selliox.draws.payouts import check_winner_status
        from selliox.notifications.service import notification_service

        now = now or datetime.utcnow()

        with db.session() as session:
            user = session.get(UserAccount, user_id)
            if not user:
                raise NotFound("User not found", user_id=user_id)

            referral_code = session.query(ReferralCode).filter(
                ReferralCode.user_id == user_id,
                ReferralCode.is_active == True,
            ).first()

            rows = (
                session.query(Referral, UserAccount)
                .outerjoin(UserAccount, UserAccount.id == Referral.referred_id)
                .filter(Referral.referrer_id == user_id)
                .order_by(Referral.created_at.desc(), Referral.id.desc())
                .all()
            )
            entries = sorted(
                TicketLedger(session).active_entries(user_id),
                key=lambda e: e.created_at or now,
                reverse=True,
            )
            stats = user.referral_stats
            profile = {"id": user.id, "name": user.name, "email": user.email}

        referrals_by_month: dict[str, dict[str, int]] = defaultdict(lambda: {"count": 0, "conversions": 0})
        reward_types = {RewardType.FREE_MONTH.value: 0, RewardType.DRAW_ENTRIES.value: 0}
        referral_list = []
        for referral, referred in rows:
            created = referral.created_at or now
            bucket = referrals_by_month[f"{created.month}/{created.year}"]
            bucket["count"] += 1
            if referral.status == ReferralStatus.CONVERTED.value:
                bucket["conversions"] += 1
                if referral.reward_type in reward_types:
                    reward_types[referral.reward_type] += 1

            item = referral.to_dict()
            item["referred_user"] = {
                "id": referred.id,
                "name": referred.name,
                "email": referred.email,
                "joined_at": referred.created_at.isoformat() if referred.created_at else None,
            } if referred else None
            referral_list.append(item)

        entries_by_source = {source.value: 0 for source in EntrySource}
        for entry in entries:
            entries_by_source[entry.source] = entries_by_source.get(entry.source, 0) + entry.tickets

        total_referrals = len(rows)
        conversions = stats["successful_conversions"]
        conversion_rate = (conversions / total_referrals * 100) if total_referrals else 0.0

        notifications = notification_service.list_unread(
            user_id,
            types=[NotificationType.REFERRAL_USED, NotificationType.DRAW_ENTRY],
            limit=5,
        )
        winner = check_winner_status(user_id, unpaid_only=True)

        return {
            "user": profile,
            "referral_code": referral_code.code if referral_code else None,
            "code_usage_count": referral_code.usage_count if referral_code else 0,
            "referral_link": referral_link(referral_code.code) if referral_code else None,
            "referral_stats": {
                **stats,
                "conversion_rate": round(conversion_rate, 2),
                "pending_referrals": max(total_referrals - conversions, 0),
                "free_months_earned": reward_types[RewardType.FREE_MONTH.value],
                "draw_entries_earned": reward_types[RewardType.DRAW_ENTRIES.value] * settings.referral_reward_tickets,
            },
            "analytics": {
                "referrals_by_month": dict(referrals_by_month),
                "reward_types": reward_types,
                "entries_by_source": entries_by_source,
            },
            "referrals": referral_list,
            "draw_entries": {
                "total": sum(e.tickets for e in entries),
                "entries": [e.to_dict() for e in entries],
                "by_source": entries_by_source,
            },
            "current_draw": self._draw_overview(now),
            "winner_status": {
                "is_winner": winner["is_winner"],
                "winning_draw": winner["draw"],
            },
            "notifications": [n.to_dict() for n in notifications],
            "unread_notifications_count": len(notifications),
        }


# Singleton instance
referral_service = ReferralService()
