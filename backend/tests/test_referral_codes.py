"""Tests for the referral code registry."""

import pytest

from selliox.auth.models import UserAccount
from selliox.errors import InvalidInput, NotFound, SelfReferral
from selliox.referral.codes import CODE_ALPHABET, code_registry, normalize_code
from selliox.referral.models import ReferralCode
from selliox.storage.db import db


def test_generate_code_is_idempotent(make_user, reload_user):
    user = make_user()

    first = code_registry.generate_code(user.id)
    second = code_registry.generate_code(user.id)

    assert first.code == second.code
    assert len(first.code) == 6
    assert set(first.code) <= set(CODE_ALPHABET)

    profile = reload_user(user.id)
    assert profile.referral_code == first.code
    assert profile.referral_code_status == "active"

    with db.session() as session:
        assert session.query(ReferralCode).filter_by(user_id=user.id).count() == 1


def test_generate_code_repairs_stale_profile(make_user, reload_user):
    user = make_user()
    code = code_registry.generate_code(user.id).code
    with db.session() as session:
        session.query(UserAccount).filter_by(id=user.id).update({"referral_code": None})

    assert code_registry.generate_code(user.id).code == code
    assert reload_user(user.id).referral_code == code


def test_generate_code_for_unknown_user():
    with pytest.raises(NotFound):
        code_registry.generate_code(4242)


def test_codes_are_unique_across_users(make_user):
    codes = {code_registry.generate_code(make_user().id).code for _ in range(20)}
    assert len(codes) == 20


def test_validate_code_returns_owner(make_user):
    owner = make_user(name="Alice")
    caller = make_user()
    code = code_registry.generate_code(owner.id).code

    result = code_registry.validate_code(f"  {code.lower()} ", caller_id=caller.id)

    assert result == {"code": code, "referrer": {"id": owner.id, "name": "Alice"}}


def test_validate_code_rejects_owner(make_user):
    owner = make_user()
    code = code_registry.generate_code(owner.id).code

    with pytest.raises(SelfReferral):
        code_registry.validate_code(code, caller_id=owner.id)


def test_validate_unknown_or_blank_code():
    with pytest.raises(NotFound):
        code_registry.validate_code("NOPE42")
    with pytest.raises(InvalidInput):
        code_registry.validate_code("   ")


def test_deactivated_code_no_longer_validates(make_user, reload_user):
    owner = make_user()
    code = code_registry.generate_code(owner.id).code

    deactivated = code_registry.deactivate_code(code)

    assert deactivated.is_active is False
    assert reload_user(owner.id).referral_code_status == "inactive"
    with pytest.raises(NotFound):
        code_registry.validate_code(code)
    assert code_registry.get_active_code(owner.id) is None


def test_normalize_code():
    assert normalize_code(" ab12cd ") == "AB12CD"


def test_concurrent_first_requests_share_one_code(make_user, reload_user, interleave):
    user = make_user()
    competing = interleave("INSERT INTO referral_codes", lambda: code_registry.generate_code(user.id))

    returned = code_registry.generate_code(user.id)

    assert competing["fired"] is True
    assert returned.code == competing["result"].code
    with db.session() as session:
        active = session.query(ReferralCode.code).filter_by(user_id=user.id, is_active=True).all()
    assert [code for (code,) in active] == [returned.code]
    assert reload_user(user.id).referral_code == returned.code


def test_new_code_after_deactivation(make_user):
    user = make_user()
    old = code_registry.generate_code(user.id).code
    code_registry.deactivate_code(old)

    new = code_registry.generate_code(user.id).code

    assert new != old
    with db.session() as session:
        assert session.query(ReferralCode).filter_by(user_id=user.id).count() == 2
        assert session.query(ReferralCode).filter_by(user_id=user.id, is_active=True).count() == 1
