"""Tests for the monthly draw."""

import random
from datetime import datetime

import pytest

from selliox.draws.engine import (
    TicketPool,
    countdown,
    current_period,
    get_draw_management_summary,
    get_or_create_draw,
    previous_period,
    run_draw,
)
from selliox.draws.ledger import TicketLedger
from selliox.draws.models import Draw, EntrySource
from selliox.errors import AlreadyCompleted, InvalidInput, NoEntries
from selliox.notifications.models import Notification
from selliox.storage.db import db

NOW = datetime(2026, 5, 20, 9, 0)


class FixedSlot:
    """Random source that always returns the same slot."""

    def __init__(self, slot):
        self.slot = slot

    def randrange(self, stop):
        assert 0 <= self.slot < stop
        return self.slot


def _grant(user_id, tickets, source=EntrySource.REFERRAL):
    with db.session() as session:
        TicketLedger(session).grant(user_id, tickets, source, now=NOW)


def test_periods():
    assert current_period(datetime(2026, 1, 5)) == (1, 2026)
    assert previous_period(datetime(2026, 1, 1, 0, 5)) == (12, 2025)
    assert previous_period(datetime(2026, 7, 1)) == (6, 2026)


def test_countdown_to_last_day_of_month():
    result = countdown(2, 2026, datetime(2026, 2, 25, 12, 0))
    assert result == {"days_until_draw": 2, "hours_until_draw": 12, "draw_date": "2026-02-28T00:00:00"}
    assert countdown(2, 2026, datetime(2026, 3, 2))["days_until_draw"] == 0


def test_pool_maps_slots_to_owners():
    pool = TicketPool([(1, 3), (2, 1), (1, 2)])

    assert pool.size == 6
    assert pool.tickets_for(1) == 5
    assert [pool.pick(FixedSlot(slot)) for slot in range(6)] == [1, 1, 1, 2, 1, 1]


def test_empty_pool_raises():
    with pytest.raises(NoEntries):
        TicketPool([]).pick()


def test_pick_is_proportional_to_tickets():
    pool = TicketPool([(1, 3), (2, 1)])
    rng = random.Random(20261019)
    trials = 4000

    wins = sum(1 for _ in range(trials) if pool.pick(rng) == 1)

    assert abs(wins / trials - 0.75) < 0.03


def test_get_or_create_draw_is_idempotent():
    first = get_or_create_draw(5, 2026)
    second = get_or_create_draw(5, 2026)

    assert first.id == second.id
    assert first.status == "pending"
    assert first.prize_amount == 250.0
    with pytest.raises(InvalidInput):
        get_or_create_draw(13, 2026)


def test_run_draw_completes_with_winner(make_user):
    alice, bob = make_user(), make_user()
    _grant(alice.id, 1, EntrySource.SIGNUP)
    _grant(alice.id, 5)
    _grant(bob.id, 2)

    # Slot 0 belongs to Alice's first entry
    draw = run_draw(5, 2026, rng=FixedSlot(0), now=NOW)

    assert draw.status == "completed"
    assert draw.winner_user_id == alice.id
    assert draw.winner_tickets == 6
    assert draw.total_entries == 8
    assert draw.payment_status == "pending"
    assert draw.draw_date == NOW

    with db.session() as session:
        notification = session.query(Notification).filter_by(user_id=alice.id).one()
    assert notification.type == "draw_winner"
    assert notification.message == "Congratulations! You've won $250 in our monthly draw!"


def test_rerun_returns_existing_result(make_user):
    alice, bob = make_user(), make_user()
    _grant(alice.id, 1)
    _grant(bob.id, 1)
    first = run_draw(5, 2026, rng=FixedSlot(1), now=NOW)

    with pytest.raises(AlreadyCompleted) as excinfo:
        run_draw(5, 2026, rng=FixedSlot(0), now=NOW)

    assert excinfo.value.draw.id == first.id
    assert excinfo.value.draw.winner_user_id == bob.id
    with db.session() as session:
        stored = session.query(Draw).one()
    assert stored.winner_user_id == bob.id
    assert stored.draw_date == NOW


def test_run_draw_without_entries_stays_pending():
    with pytest.raises(NoEntries):
        run_draw(5, 2026, now=NOW)

    with db.session() as session:
        assert session.query(Draw).one().status == "pending"


def test_management_summary(make_user):
    alice, bob = make_user(email="alice@example.com"), make_user()
    _grant(alice.id, 3)
    _grant(bob.id, 2)
    run_draw(4, 2026, rng=FixedSlot(0), now=NOW)
    get_or_create_draw(5, 2026)

    summary = get_draw_management_summary(now=NOW)

    assert summary["current_draw"]["month"] == 5
    assert summary["current_draw"]["status"] == "pending"
    assert [d["month_name"] for d in summary["past_draws"]] == ["April"]
    assert summary["past_draws"][0]["winner"]["user"]["email"] == "alice@example.com"
    assert summary["total_entries"] == 5
    assert summary["total_participants"] == 2
    assert summary["pending_payments"] == 0


def test_concurrent_draw_keeps_first_winner(make_user, interleave):
    alice, bob = make_user(), make_user()
    _grant(alice.id, 1)
    _grant(bob.id, 1)
    get_or_create_draw(5, 2026)
    interleave("UPDATE draws", lambda: run_draw(5, 2026, rng=FixedSlot(1), now=NOW))

    with pytest.raises(AlreadyCompleted) as excinfo:
        run_draw(5, 2026, rng=FixedSlot(0), now=NOW)

    assert excinfo.value.draw.winner_user_id == bob.id
    with db.session() as session:
        stored = session.query(Draw).one()
        winner_notices = session.query(Notification).filter_by(type="draw_winner").all()
    assert stored.winner_user_id == bob.id
    assert stored.total_entries == 2
    assert [n.user_id for n in winner_notices] == [bob.id]
