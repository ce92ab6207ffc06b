"""Monthly prize draw.

One draw per (month, year), month 1-12. A draw moves from pending to
completed exactly once; the winner is picked from a pool in which every
active ticket is one slot, so a user's chance is proportional to their
ticket count.
"""

import bisect
import calendar
import secrets
from datetime import datetime
from itertools import accumulate
from typing import Any, Iterable, Protocol

from sqlalchemy import and_, func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from selliox.auth.models import UserAccount
from selliox.draws.ledger import TicketLedger
from selliox.draws.models import Draw, DrawEntry, DrawStatus, EntryStatus, PaymentStatus
from selliox.errors import AlreadyCompleted, InvalidInput, NoEntries
from selliox.logging_config import get_logger
from selliox.settings import settings
from selliox.storage.db import db

logger = get_logger(__name__)

MONTH_NAMES = list(calendar.month_name)


class RandomSource(Protocol):
    def randrange(self, stop: int) -> int: ...


def current_period(now: datetime | None = None) -> tuple[int, int]:
    """(month, year) of the draw period containing ``now``."""
    now = now or datetime.utcnow()
    return now.month, now.year


def previous_period(now: datetime | None = None) -> tuple[int, int]:
    """(month, year) of the period that ended before ``now``'s period."""
    month, year = current_period(now)
    if month == 1:
        return 12, year - 1
    return month - 1, year


def period_end(month: int, year: int) -> datetime:
    """Last day of the period, midnight; the draw date shown to users."""
    return datetime(year, month, calendar.monthrange(year, month)[1])


def countdown(month: int, year: int, now: datetime) -> dict[str, Any]:
    """Days and hours left until the period's draw date."""
    draw_date = period_end(month, year)
    remaining = max((draw_date - now).total_seconds(), 0)
    return {
        "days_until_draw": int(remaining // 86400),
        "hours_until_draw": int(remaining % 86400 // 3600),
        "draw_date": draw_date.isoformat(),
    }


def _validate_period(month: int, year: int) -> None:
    if not 1 <= month <= 12:
        raise InvalidInput("Month must be between 1 and 12", month=month)
    if year < 2000:
        raise InvalidInput("Invalid draw year", year=year)


class TicketPool:
    """Weighted pool of ticket slots.

    Slots are never materialised: each entry contributes a contiguous range
    of ``tickets`` slots and a uniform slot index is mapped back to its
    owner with a binary search over the cumulative totals.
    """

    def __init__(self, entries: Iterable[tuple[int, int]]):
        """Build the pool.

        Args:
            entries: (user_id, tickets) pairs, one per active entry
        """
        self.owners: list[int] = []
        weights: list[int] = []
        self.tickets_by_user: dict[int, int] = {}
        for user_id, tickets in entries:
            if tickets < 1:
                continue
            self.owners.append(user_id)
            weights.append(tickets)
            self.tickets_by_user[user_id] = self.tickets_by_user.get(user_id, 0) + tickets
        self.cumulative = list(accumulate(weights))

    @classmethod
    def from_entries(cls, entries: Iterable[DrawEntry]) -> "TicketPool":
        return cls((entry.user_id, entry.tickets) for entry in entries)

    @property
    def size(self) -> int:
        return self.cumulative[-1] if self.cumulative else 0

    def __len__(self) -> int:
        return self.size

    def tickets_for(self, user_id: int) -> int:
        """Total tickets the user holds in the pool."""
        return self.tickets_by_user.get(user_id, 0)

    def pick(self, rng: RandomSource | None = None) -> int:
        """Pick the owner of one uniformly chosen slot."""
        if not self.size:
            raise NoEntries("No active entries for the draw")
        rng = rng or secrets.SystemRandom()
        slot = rng.randrange(self.size)
        return self.owners[bisect.bisect_right(self.cumulative, slot)]


def get_or_create_draw(month: int, year: int) -> Draw:
    """Fetch the period's draw, creating it pending if absent.

    Concurrent creators race on the (month, year) unique key; the loser
    reads back the winner's row.
    """
    _validate_period(month, year)

    with db.session() as session:
        draw = session.query(Draw).filter(Draw.month == month, Draw.year == year).first()
        if draw:
            return draw

    try:
        with db.session() as session:
            draw = Draw(
                month=month,
                year=year,
                status=DrawStatus.PENDING.value,
                prize_amount=settings.draw_prize_amount,
                payment_status=PaymentStatus.PENDING.value,
            )
            session.add(draw)
        logger.info("draw_created", month=month, year=year, draw_id=draw.id)
        return draw
    except IntegrityError:
        with db.session() as session:
            return session.query(Draw).filter(Draw.month == month, Draw.year == year).one()


def _detach_completed(session: Session, draw: Draw) -> Draw:
    # Keep the draw usable after the failing transaction rolls back
    session.refresh(draw)
    session.expunge(draw)
    return draw


def run_draw(
    month: int,
    year: int,
    rng: RandomSource | None = None,
    now: datetime | None = None,
) -> Draw:
    """Run the draw for a period.

    Args:
        month: 1-12
        year: Four digit year
        rng: Random source (defaults to the OS CSPRNG)
        now: Draw time (defaults to utcnow)

    Returns:
        The completed draw

    Raises:
        AlreadyCompleted: The period already has a winner (attached as ``draw``)
        NoEntries: No active tickets exist
    """
    now = now or datetime.utcnow()
    pending = get_or_create_draw(month, year)

    with db.session() as session:
        draw = session.get(Draw, pending.id)
        if draw.status == DrawStatus.COMPLETED.value:
            raise AlreadyCompleted(
                f"Draw for {month}/{year} has already been completed",
                draw=_detach_completed(session, draw),
                draw_id=draw.id,
            )

        pool = TicketPool.from_entries(TicketLedger(session).active_entries())
        if not pool.size:
            raise NoEntries("No active entries for the draw", month=month, year=year)

        winner_id = pool.pick(rng)
        winner_tickets = pool.tickets_for(winner_id)

        result = session.execute(
            update(Draw)
            .where(Draw.id == draw.id, Draw.status == DrawStatus.PENDING.value)
            .values(
                status=DrawStatus.COMPLETED.value,
                winner_user_id=winner_id,
                winner_tickets=winner_tickets,
                total_entries=pool.size,
                draw_date=now,
                payment_status=PaymentStatus.PENDING.value,
                updated_at=now,
            )
        )
        if not result.rowcount:
            logger.warning("draw_completion_race_lost", draw_id=draw.id, month=month, year=year)
            raise AlreadyCompleted(
                f"Draw for {month}/{year} has already been completed",
                draw=_detach_completed(session, draw),
                draw_id=draw.id,
            )

        session.refresh(draw)

    logger.info(
        "draw_completed",
        draw_id=draw.id,
        month=month,
        year=year,
        winner_user_id=winner_id,
        winner_tickets=winner_tickets,
        total_entries=draw.total_entries,
        participants=len(pool.tickets_by_user),
    )

    from selliox.notifications.service import notification_service

    notification_service.emit(
        winner_id,
        "draw_winner",
        f"Congratulations! You've won ${draw.prize_amount:g} in our monthly draw!",
        {"draw_id": draw.id, "amount": draw.prize_amount},
    )
    return draw


def get_draw_management_summary(now: datetime | None = None, past_limit: int = 10) -> dict[str, Any]:
    """Admin overview: current draw, recent past draws, pool totals and payouts awaiting processing."""
    month, year = current_period(now)

    with db.session() as session:
        current = session.query(Draw).filter(Draw.month == month, Draw.year == year).first()

        past = (
            session.query(Draw)
            .filter(or_(Draw.year < year, and_(Draw.year == year, Draw.month < month)))
            .order_by(Draw.year.desc(), Draw.month.desc())
            .limit(past_limit)
            .all()
        )

        total_entries, participants = session.query(
            func.coalesce(func.sum(DrawEntry.tickets), 0),
            func.count(func.distinct(DrawEntry.user_id)),
        ).filter(DrawEntry.status == EntryStatus.ACTIVE.value).one()

        pending_payments = session.query(func.count(Draw.id)).filter(
            Draw.payment_status == PaymentStatus.CLAIMED.value,
        ).scalar()

        winner_ids = {d.winner_user_id for d in [current, *past] if d and d.winner_user_id}
        winners = {
            user.id: {"id": user.id, "name": user.name, "email": user.email}
            for user in session.query(UserAccount).filter(UserAccount.id.in_(winner_ids)).all()
        } if winner_ids else {}

    def _with_winner(draw: Draw) -> dict[str, Any]:
        data = draw.to_dict()
        data["month_name"] = MONTH_NAMES[draw.month]
        data["winner"]["user"] = winners.get(draw.winner_user_id)
        return data

    return {
        "current_draw": _with_winner(current) if current else None,
        "past_draws": [_with_winner(d) for d in past],
        "total_entries": int(total_entries or 0),
        "total_participants": int(participants or 0),
        "pending_payments": int(pending_payments or 0),
    }
