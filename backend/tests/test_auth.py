"""Tests for local account creation."""

from selliox.auth.local import auth_service
from selliox.referral.codes import code_registry
from selliox.referral.models import Referral
from selliox.storage.db import db


def test_signup_grants_one_ticket(reload_user):
    user = auth_service.create_user("new@example.com", "Sellio123", name="New")

    assert reload_user(user.id).active_draw_tickets == 1
    assert auth_service.authenticate("NEW@example.com", "Sellio123").id == user.id
    assert auth_service.authenticate("new@example.com", "wrong-pass1") is None


def test_signup_with_code_records_pending_referral(make_user):
    owner = make_user()
    code = code_registry.generate_code(owner.id).code

    user = auth_service.create_user("friend@example.com", "Sellio123", referral_code=code.lower())

    with db.session() as session:
        referral = session.query(Referral).one()
    assert (referral.referrer_id, referral.referred_id, referral.status) == (owner.id, user.id, "pending")


def test_code_deactivated_during_signup_keeps_account(make_user, reload_user, monkeypatch):
    owner = make_user()
    code = code_registry.generate_code(owner.id).code
    validate = code_registry.validate_code

    def validate_then_deactivate(value, caller_id=None):
        result = validate(value, caller_id=caller_id)
        code_registry.deactivate_code(value)
        return result

    monkeypatch.setattr(code_registry, "validate_code", validate_then_deactivate)

    user = auth_service.create_user("late@example.com", "Sellio123", referral_code=code)

    profile = reload_user(user.id)
    assert profile.active_draw_tickets == 1
    assert profile.referred_by_id is None
    with db.session() as session:
        assert session.query(Referral).count() == 0
    assert reload_user(owner.id).referrals_count == 0
