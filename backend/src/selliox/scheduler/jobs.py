"""Periodic maintenance jobs.

Each job takes only the current time and is safe to trigger more than once:
a job first claims a ``JobRun`` row for its (name, period) key and skips
when another trigger already owns it. A run that failed can be claimed
again.
"""

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from selliox.draws.engine import current_period, get_or_create_draw, period_end, previous_period, run_draw
from selliox.draws.ledger import TicketLedger
from selliox.draws.models import DrawStatus
from selliox.errors import AlreadyCompleted, NoEntries
from selliox.logging_config import get_logger
from selliox.notifications.models import NotificationType
from selliox.notifications.service import notification_service
from selliox.scheduler.models import JobRun
from selliox.settings import settings
from selliox.storage.db import db

logger = get_logger(__name__)

MONTHLY_DRAW = "monthly_draw"
DRAW_REMINDERS = "draw_reminders"
EXPIRE_ENTRIES = "expire_entries"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


def claim_run(job_name: str, run_key: str, now: datetime) -> int | None:
    """Claim a job run.

    Returns:
        JobRun id, or None if the run is already claimed
    """
    try:
        with db.session() as session:
            run = JobRun(job_name=job_name, run_key=run_key, started_at=now)
            session.add(run)
            session.flush()
            return run.id
    except IntegrityError:
        pass

    # Retry a run whose previous attempt failed
    with db.session() as session:
        result = session.execute(
            update(JobRun)
            .where(JobRun.job_name == job_name, JobRun.run_key == run_key, JobRun.ok == False)  # noqa: E712
            .values(started_at=now, finished_at=None, ok=None, detail=None)
        )
        if result.rowcount:
            run_id = session.query(JobRun.id).filter(
                JobRun.job_name == job_name,
                JobRun.run_key == run_key,
            ).scalar()
            logger.info("job_run_reclaimed", job=job_name, run_key=run_key)
            return run_id

    logger.info("job_run_skipped", job=job_name, run_key=run_key, reason="already_claimed")
    return None


def finish_run(run_id: int, ok: bool, detail: str | None = None) -> None:
    """Record the outcome of a claimed run."""
    with db.session() as session:
        session.execute(
            update(JobRun)
            .where(JobRun.id == run_id)
            .values(finished_at=datetime.utcnow(), ok=ok, detail=detail)
        )


def _period_key(month: int, year: int) -> str:
    return f"{year}-{month:02d}"


def run_monthly_draw_job(now: datetime | None = None, rng=None) -> dict[str, Any]:
    """Draw the winner of the period that just ended.

    Meant to fire shortly after midnight on the first day of a month.
    """
    now = now or datetime.utcnow()
    month, year = previous_period(now)
    run_key = _period_key(month, year)

    run_id = claim_run(MONTHLY_DRAW, run_key, now)
    if run_id is None:
        return {"status": "skipped", "run_key": run_key}

    try:
        draw = run_draw(month, year, rng=rng, now=now)
    except AlreadyCompleted as e:
        finish_run(run_id, ok=True, detail="already completed")
        return {"status": "already_completed", "run_key": run_key, "draw": e.draw.to_dict() if e.draw else None}
    except NoEntries:
        finish_run(run_id, ok=True, detail="no active entries")
        logger.warning("monthly_draw_no_entries", month=month, year=year)
        return {"status": "no_entries", "run_key": run_key}
    except Exception as e:
        finish_run(run_id, ok=False, detail=str(e)[:500])
        logger.error("monthly_draw_failed", month=month, year=year, error=str(e))
        raise

    finish_run(run_id, ok=True, detail=f"winner {draw.winner_user_id}")
    return {"status": "completed", "run_key": run_key, "draw": draw.to_dict()}


def send_draw_reminders_job(now: datetime | None = None) -> dict[str, Any]:
    """Remind every ticket holder that the current period's draw is close.

    Does nothing until the configured number of days before the draw, and
    nothing once the period's draw is completed.
    """
    now = now or datetime.utcnow()
    month, year = current_period(now)
    run_key = _period_key(month, year)

    draw_moment = period_end(month, year) + timedelta(days=1)
    days_left = max((draw_moment - now).days, 0)
    if days_left > settings.draw_reminder_days:
        return {"status": "too_early", "run_key": run_key, "days_left": days_left}

    draw = get_or_create_draw(month, year)
    if draw.status == DrawStatus.COMPLETED.value:
        return {"status": "draw_completed", "run_key": run_key}

    run_id = claim_run(DRAW_REMINDERS, run_key, now)
    if run_id is None:
        return {"status": "skipped", "run_key": run_key}

    try:
        with db.session() as session:
            holders = TicketLedger(session).holders()

        when = "tomorrow" if days_left <= 1 else f"in {days_left} days"
        sent = 0
        for user_id, tickets in holders.items():
            notification = notification_service.emit(
                user_id,
                NotificationType.DRAW_REMINDER,
                f"The monthly draw worth ${draw.prize_amount:g} is happening {when}! "
                f"You have {_plural(tickets, 'ticket')} entered.",
                {"draw_id": draw.id, "ticket_count": tickets, "draw_date": draw_moment.isoformat()},
                title="Upcoming Draw Reminder",
            )
            if notification:
                sent += 1
    except Exception as e:
        finish_run(run_id, ok=False, detail=str(e)[:500])
        raise

    finish_run(run_id, ok=True, detail=f"{sent} reminders")
    logger.info("draw_reminders_sent", month=month, year=year, holders=len(holders), sent=sent)
    return {"status": "sent", "run_key": run_key, "holders": len(holders), "sent": sent}


def expire_entries_job(now: datetime | None = None) -> dict[str, Any]:
    """Expire draw entries past their expiry date and tell their owners.

    Keyed per day, so it can run daily.
    """
    now = now or datetime.utcnow()
    run_key = now.date().isoformat()

    run_id = claim_run(EXPIRE_ENTRIES, run_key, now)
    if run_id is None:
        return {"status": "skipped", "run_key": run_key}

    try:
        with db.session() as session:
            expired = TicketLedger(session).expire_due(now)
    except Exception as e:
        finish_run(run_id, ok=False, detail=str(e)[:500])
        raise

    for user_id, tickets in expired.items():
        notification_service.emit(
            user_id,
            NotificationType.DRAW_ENTRY,
            f"{_plural(tickets, 'draw ticket')} {'have' if tickets != 1 else 'has'} expired.",
            {"expired_tickets": tickets},
            title="Draw Entries Expired",
        )

    total = sum(expired.values())
    finish_run(run_id, ok=True, detail=f"{total} tickets expired for {len(expired)} users")
    logger.info("entries_expired", users=len(expired), tickets=total)
    return {"status": "expired", "run_key": run_key, "users": len(expired), "tickets": total}
