"""Tests for the scheduled maintenance jobs."""

from datetime import datetime

from selliox.draws.engine import run_draw
from selliox.draws.ledger import TicketLedger
from selliox.draws.models import Draw, EntrySource
from selliox.notifications.models import Notification
from selliox.scheduler.jobs import (
    EXPIRE_ENTRIES,
    claim_run,
    expire_entries_job,
    finish_run,
    run_monthly_draw_job,
    send_draw_reminders_job,
)
from selliox.scheduler.models import JobRun
from selliox.storage.db import db


def _grant(user_id, tickets, now):
    with db.session() as session:
        TicketLedger(session).grant(user_id, tickets, EntrySource.REFERRAL, now=now)


def _notifications(user_id, type):
    with db.session() as session:
        return session.query(Notification).filter_by(user_id=user_id, type=type).all()


def test_claim_run_is_exclusive_until_failure():
    now = datetime(2026, 3, 1)

    run_id = claim_run(EXPIRE_ENTRIES, "2026-03-01", now)
    assert run_id is not None
    assert claim_run(EXPIRE_ENTRIES, "2026-03-01", now) is None

    finish_run(run_id, ok=False, detail="boom")
    assert claim_run(EXPIRE_ENTRIES, "2026-03-01", now) == run_id
    finish_run(run_id, ok=True)
    assert claim_run(EXPIRE_ENTRIES, "2026-03-01", now) is None


def test_expire_entries_job_runs_once_per_day(make_user, reload_user):
    user = make_user()
    _grant(user.id, 5, datetime(2026, 1, 10))
    _grant(user.id, 1, datetime(2026, 3, 10))

    result = expire_entries_job(now=datetime(2026, 4, 11, 2, 0))

    assert result == {"status": "expired", "run_key": "2026-04-11", "users": 1, "tickets": 5}
    assert reload_user(user.id).active_draw_tickets == 1
    [notification] = _notifications(user.id, "draw_entry")
    assert notification.message == "5 draw tickets have expired."
    assert notification.title == "Draw Entries Expired"

    again = expire_entries_job(now=datetime(2026, 4, 11, 14, 0))
    assert again["status"] == "skipped"
    assert reload_user(user.id).active_draw_tickets == 1

    next_day = expire_entries_job(now=datetime(2026, 4, 12, 2, 0))
    assert next_day["tickets"] == 0
    assert len(_notifications(user.id, "draw_entry")) == 1


def test_monthly_draw_job_draws_previous_month(make_user):
    user = make_user()
    _grant(user.id, 2, datetime(2026, 2, 10))

    result = run_monthly_draw_job(now=datetime(2026, 3, 1, 0, 5))

    assert result["status"] == "completed"
    assert result["run_key"] == "2026-02"
    assert result["draw"]["month"] == 2
    assert result["draw"]["winner"] == {"user_id": user.id, "tickets": 2}

    assert run_monthly_draw_job(now=datetime(2026, 3, 1, 0, 6))["status"] == "skipped"
    with db.session() as session:
        assert session.query(Draw).filter_by(status="completed").count() == 1
        run = session.query(JobRun).one()
    assert run.ok is True
    assert run.detail == f"winner {user.id}"


def test_monthly_draw_job_with_no_entries():
    result = run_monthly_draw_job(now=datetime(2026, 3, 1))

    assert result == {"status": "no_entries", "run_key": "2026-02"}
    with db.session() as session:
        assert session.query(JobRun).one().ok is True


def test_monthly_draw_job_after_manual_draw(make_user):
    user = make_user()
    _grant(user.id, 1, datetime(2026, 2, 10))
    run_draw(2, 2026, now=datetime(2026, 2, 28, 18, 0))

    result = run_monthly_draw_job(now=datetime(2026, 3, 1))

    assert result["status"] == "already_completed"
    assert result["draw"]["winner"]["user_id"] == user.id


def test_reminders_wait_until_draw_is_close(make_user):
    user = make_user()
    _grant(user.id, 3, datetime(2026, 3, 2))

    result = send_draw_reminders_job(now=datetime(2026, 3, 10))

    assert result["status"] == "too_early"
    assert _notifications(user.id, "draw_reminder") == []


def test_reminders_reach_every_holder_once(make_user):
    alice, bob, carol = make_user(), make_user(), make_user()
    _grant(alice.id, 3, datetime(2026, 3, 2))
    _grant(alice.id, 5, datetime(2026, 3, 5))
    _grant(bob.id, 1, datetime(2026, 3, 6))

    result = send_draw_reminders_job(now=datetime(2026, 3, 28, 10, 0))

    assert result == {"status": "sent", "run_key": "2026-03", "holders": 2, "sent": 2}
    [reminder] = _notifications(alice.id, "draw_reminder")
    assert reminder.message == (
        "The monthly draw worth $250 is happening in 3 days! You have 8 tickets entered."
    )
    assert reminder.title == "Upcoming Draw Reminder"
    assert _notifications(carol.id, "draw_reminder") == []

    assert send_draw_reminders_job(now=datetime(2026, 3, 29))["status"] == "skipped"
    assert len(_notifications(bob.id, "draw_reminder")) == 1


def test_no_reminders_after_draw(make_user):
    user = make_user()
    _grant(user.id, 1, datetime(2026, 3, 2))
    run_draw(3, 2026, now=datetime(2026, 3, 27))

    result = send_draw_reminders_job(now=datetime(2026, 3, 30))

    assert result["status"] == "draw_completed"
    assert _notifications(user.id, "draw_reminder") == []
