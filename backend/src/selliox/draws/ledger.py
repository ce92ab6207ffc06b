"""Ticket ledger for the monthly draw.

Every grant of draw tickets is an append-only ``DrawEntry`` row. A user's
``active_draw_tickets`` counter mirrors the sum of their active rows and is
only touched through SQL-side increments so concurrent grants never lose
updates.
"""

import calendar
from collections import defaultdict
from datetime import datetime
from typing import Any

from sqlalchemy import case, func, update
from sqlalchemy.orm import Session

from selliox.auth.models import UserAccount
from selliox.draws.models import DrawEntry, EntrySource, EntryStatus
from selliox.errors import InvalidInput, NotFound
from selliox.logging_config import get_logger
from selliox.settings import settings
from selliox.storage.db import db

logger = get_logger(__name__)


def add_months(moment: datetime, months: int) -> datetime:
    """Shift a datetime by calendar months, clamping the day to the month end."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


class TicketLedger:
    """Ledger operations bound to a caller-owned session.

    Nothing here commits; callers compose ledger writes with their own state
    changes inside one transaction.
    """

    def __init__(self, session: Session):
        self.session = session

    def grant(
        self,
        user_id: int,
        tickets: int,
        source: EntrySource,
        referral_id: int | None = None,
        now: datetime | None = None,
    ) -> DrawEntry:
        """Append an active entry and raise the owner's ticket counter.

        Args:
            user_id: Ticket owner
            tickets: Number of tickets (>= 1)
            source: Why the tickets were granted
            referral_id: Originating referral, if any
            now: Grant time (defaults to utcnow)

        Returns:
            The new entry
        """
        if tickets < 1:
            raise InvalidInput("Ticket grants must be at least 1 ticket", tickets=tickets)

        now = now or datetime.utcnow()
        entry = DrawEntry(
            user_id=user_id,
            tickets=tickets,
            status=EntryStatus.ACTIVE.value,
            source=EntrySource(source).value,
            referral_id=referral_id,
            expiry_date=add_months(now, settings.entry_expiry_months),
            created_at=now,
        )
        self.session.add(entry)

        updated = self.session.execute(
            update(UserAccount)
            .where(UserAccount.id == user_id)
            .values(active_draw_tickets=UserAccount.active_draw_tickets + tickets)
        )
        if not updated.rowcount:
            raise NotFound(f"User {user_id} not found", user_id=user_id)

        self.session.flush()
        logger.info(
            "tickets_granted",
            user_id=user_id,
            tickets=tickets,
            source=entry.source,
            entry_id=entry.id,
            referral_id=referral_id,
        )
        return entry

    def decrement_counter(self, user_id: int, tickets: int) -> None:
        """Lower a user's ticket counter, never below zero."""
        remaining = UserAccount.active_draw_tickets - tickets
        self.session.execute(
            update(UserAccount)
            .where(UserAccount.id == user_id)
            .values(active_draw_tickets=case((remaining < 0, 0), else_=remaining))
        )

    def active_entries(self, user_id: int | None = None) -> list[DrawEntry]:
        """Active entries, optionally for one user, oldest first."""
        query = self.session.query(DrawEntry).filter(DrawEntry.status == EntryStatus.ACTIVE.value)
        if user_id is not None:
            query = query.filter(DrawEntry.user_id == user_id)
        return query.order_by(DrawEntry.id.asc()).all()

    def active_ticket_count(self, user_id: int) -> int:
        """Sum of the user's active tickets, derived from the ledger."""
        total = self.session.query(func.coalesce(func.sum(DrawEntry.tickets), 0)).filter(
            DrawEntry.user_id == user_id,
            DrawEntry.status == EntryStatus.ACTIVE.value,
        ).scalar()
        return int(total or 0)

    def holders(self) -> dict[int, int]:
        """Active ticket totals per user, for every user holding any."""
        rows = (
            self.session.query(DrawEntry.user_id, func.sum(DrawEntry.tickets))
            .filter(DrawEntry.status == EntryStatus.ACTIVE.value)
            .group_by(DrawEntry.user_id)
            .all()
        )
        return {int(user_id): int(total or 0) for user_id, total in rows}

    def expire_due(self, now: datetime) -> dict[int, int]:
        """Expire every active entry whose expiry date has passed.

        Each entry is flipped with a conditional update, so an entry counts
        toward its owner's decrement only for the caller that actually
        expired it.

        Returns:
            Expired ticket totals per user
        """
        due = (
            self.session.query(DrawEntry.id, DrawEntry.user_id, DrawEntry.tickets)
            .filter(
                DrawEntry.status == EntryStatus.ACTIVE.value,
                DrawEntry.expiry_date < now,
            )
            .all()
        )

        expired: dict[int, int] = defaultdict(int)
        for entry_id, user_id, tickets in due:
            result = self.session.execute(
                update(DrawEntry)
                .where(DrawEntry.id == entry_id, DrawEntry.status == EntryStatus.ACTIVE.value)
                .values(status=EntryStatus.EXPIRED.value, updated_at=now)
            )
            if result.rowcount:
                expired[user_id] += tickets

        for user_id, tickets in expired.items():
            self.decrement_counter(user_id, tickets)

        self.session.flush()
        return dict(expired)


def grant_promotion(user_id: int, tickets: int, now: datetime | None = None) -> DrawEntry:
    """Grant promotional tickets to a user (admin action)."""
    with db.session() as session:
        entry = TicketLedger(session).grant(
            user_id=user_id,
            tickets=tickets,
            source=EntrySource.PROMOTION,
            now=now,
        )

    from selliox.notifications.service import notification_service

    notification_service.emit(
        user_id,
        "draw_entry",
        f"You received {tickets} promotional draw ticket{'s' if tickets != 1 else ''}!",
        {"tickets": tickets, "draw_entry_id": entry.id},
    )
    return entry


def reconcile_ticket_counters(fix: bool = False) -> dict[str, Any]:
    """Compare every user's counter with the ledger and report drift.

    Args:
        fix: Overwrite drifting counters with the ledger value

    Returns:
        Summary with the drifting users
    """
    with db.session() as session:
        totals = TicketLedger(session).holders()
        users = session.query(UserAccount.id, UserAccount.active_draw_tickets).all()

        drift = []
        for user_id, counter in users:
            expected = totals.get(int(user_id), 0)
            if int(counter or 0) != expected:
                drift.append({"user_id": int(user_id), "counter": int(counter or 0), "ledger": expected})
                if fix:
                    session.execute(
                        update(UserAccount)
                        .where(UserAccount.id == user_id)
                        .values(active_draw_tickets=expected)
                    )

    if drift:
        logger.warning("ticket_counter_drift", drift_count=len(drift), fixed=fix)
    return {"users_checked": len(users), "drift_count": len(drift), "drift": drift, "fixed": fix}
