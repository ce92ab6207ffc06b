"""Tests for the winner payout workflow and payout field encryption."""

from datetime import datetime

import pytest

from selliox.draws.crypto import decrypt_field, encrypt_field, is_encrypted
from selliox.draws.engine import run_draw
from selliox.draws.ledger import TicketLedger
from selliox.draws.models import Draw, EntrySource, PaymentDetail
from selliox.draws.payouts import (
    check_winner_status,
    get_payout_context,
    process_payment,
    submit_payment_details,
)
from selliox.errors import InvalidInput, NotClaimed, NotEligible, NotFound, PayoutDecryptionError
from selliox.notifications.models import Notification
from selliox.storage.db import db

NOW = datetime(2026, 6, 1, 0, 5)
OTHER_KEY = "22" * 32


@pytest.fixture
def won_draw(make_user):
    """A completed May 2026 draw with a single ticket holder as winner."""
    winner = make_user(name="Winner", email="winner@example.com")
    with db.session() as session:
        TicketLedger(session).grant(winner.id, 1, EntrySource.SIGNUP, now=datetime(2026, 5, 2))
    draw = run_draw(5, 2026, now=NOW)
    return winner, draw


def _submit(user_id):
    return submit_payment_details(user_id, "First Bank", "Winner Person", "NL91ABNA0417164300", now=NOW)


def test_only_the_winner_can_submit(won_draw, make_user):
    stranger = make_user()

    with pytest.raises(NotEligible):
        _submit(stranger.id)


def test_submit_moves_draw_to_claimed(won_draw, make_user):
    winner, draw = won_draw
    admin = make_user(is_admin=True)

    detail = _submit(winner.id)

    assert detail.draw_id == draw.id
    assert detail.masked_account_number == "****4300"
    assert is_encrypted(detail.account_number_encrypted)
    assert "NL91ABNA0417164300" not in detail.account_number_encrypted

    with db.session() as session:
        stored = session.get(Draw, draw.id)
        assert stored.payment_status == "claimed"
        assert stored.payment_detail_id == detail.id
        assert session.get(PaymentDetail, detail.id).account_number == "NL91ABNA0417164300"
        notification = session.query(Notification).filter_by(user_id=admin.id).one()
    assert notification.type == "payment_claimed"


def test_second_submission_is_rejected(won_draw):
    winner, _ = won_draw
    _submit(winner.id)

    with pytest.raises(NotEligible):
        _submit(winner.id)

    with db.session() as session:
        assert session.query(PaymentDetail).count() == 1


def test_blank_fields_are_rejected(won_draw):
    winner, _ = won_draw

    with pytest.raises(InvalidInput):
        submit_payment_details(winner.id, "First Bank", "  ", "123456")


def test_process_payment_requires_claim(won_draw):
    _, draw = won_draw

    with pytest.raises(NotClaimed):
        process_payment(draw.id, now=NOW)
    with pytest.raises(NotFound):
        process_payment(9999, now=NOW)


def test_process_payment_marks_paid(won_draw):
    winner, draw = won_draw
    detail = _submit(winner.id)

    paid = process_payment(draw.id, now=NOW)

    assert paid.payment_status == "paid"
    assert paid.paid_date == NOW
    with db.session() as session:
        stored_detail = session.get(PaymentDetail, detail.id)
        assert stored_detail.status == "paid"
        assert stored_detail.paid_at == NOW
        types = [t for (t,) in session.query(Notification.type).filter_by(user_id=winner.id)]
    assert "payment_processed" in types

    with pytest.raises(NotClaimed):
        process_payment(draw.id, now=NOW)


def test_check_winner_status(won_draw, make_user):
    winner, draw = won_draw

    status = check_winner_status(winner.id)
    assert status["is_winner"] is True
    assert status["draw"]["id"] == draw.id
    assert check_winner_status(make_user().id) == {"is_winner": False, "draw": None}

    _submit(winner.id)
    process_payment(draw.id, now=NOW)
    assert check_winner_status(winner.id, unpaid_only=True)["is_winner"] is False


def test_payout_context_masks_account(won_draw):
    winner, draw = won_draw
    _submit(winner.id)

    context = get_payout_context(draw.id)

    assert context["winner_email"] == "winner@example.com"
    assert context["masked_account_number"] == "****4300"
    assert "NL91ABNA0417164300" not in str(context)


def test_encryption_round_trip():
    sealed = encrypt_field("12345678")

    assert sealed.startswith("v1:")
    assert len(sealed.split(":")) == 4
    assert decrypt_field(sealed) == "12345678"
    assert encrypt_field("12345678") != sealed


def test_legacy_plaintext_is_returned_as_is():
    assert decrypt_field("12345678") == "12345678"
    assert decrypt_field(None) is None


def test_tampered_or_foreign_values_fail_closed():
    sealed = encrypt_field("12345678")
    prefix, iv, ciphertext, tag = sealed.split(":")
    flipped = ("0" if ciphertext[0] != "0" else "1") + ciphertext[1:]

    with pytest.raises(PayoutDecryptionError):
        decrypt_field(":".join([prefix, iv, flipped, tag]))
    with pytest.raises(PayoutDecryptionError):
        decrypt_field(sealed, key_hex=OTHER_KEY)
    with pytest.raises(PayoutDecryptionError):
        decrypt_field("v1:not-hex")


def test_concurrent_submission_claims_once(won_draw, interleave):
    winner, draw = won_draw
    competing = interleave("INSERT INTO payment_details", lambda: _submit(winner.id))

    with pytest.raises(NotEligible):
        _submit(winner.id)

    with db.session() as session:
        details = session.query(PaymentDetail).all()
        stored = session.get(Draw, draw.id)
    assert [d.id for d in details] == [competing["result"].id]
    assert stored.payment_status == "claimed"
    assert stored.payment_detail_id == competing["result"].id
