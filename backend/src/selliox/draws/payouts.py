"""Winner payment workflow: pending -> claimed -> paid."""

from datetime import datetime
from typing import Any

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from selliox.auth.models import UserAccount
from selliox.draws.models import Draw, DrawStatus, PaymentDetail, PaymentDetailStatus, PaymentStatus
from selliox.errors import InvalidInput, NotClaimed, NotEligible, NotFound
from selliox.logging_config import get_logger
from selliox.storage.db import db

logger = get_logger(__name__)


def _require(value: str | None, field: str) -> str:
    if value is None or not str(value).strip():
        raise InvalidInput("All payment details are required", field=field)
    return str(value).strip()


def submit_payment_details(
    user_id: int,
    bank_name: str,
    account_holder: str,
    account_number: str,
    now: datetime | None = None,
) -> PaymentDetail:
    """Record a winner's bank details and move their prize to claimed.

    Args:
        user_id: Submitting user, must be the winner of a pending payout
        bank_name: Bank name
        account_holder: Account holder name
        account_number: Account number (stored encrypted)
        now: Submission time

    Returns:
        The stored payment detail

    Raises:
        InvalidInput: A field is blank
        NotEligible: The user has no completed draw awaiting payment details
    """
    bank_name = _require(bank_name, "bank_name")
    account_holder = _require(account_holder, "account_holder")
    account_number = _require(account_number, "account_number")
    now = now or datetime.utcnow()

    try:
        with db.session() as session:
            draw = (
                session.query(Draw)
                .filter(
                    Draw.winner_user_id == user_id,
                    Draw.status == DrawStatus.COMPLETED.value,
                    Draw.payment_status == PaymentStatus.PENDING.value,
                )
                .order_by(Draw.draw_date.desc())
                .first()
            )
            if not draw:
                raise NotEligible("You are not eligible to submit payment details", user_id=user_id)

            detail = PaymentDetail(
                user_id=user_id,
                draw_id=draw.id,
                bank_name=bank_name,
                account_holder=account_holder,
                status=PaymentDetailStatus.PENDING.value,
            )
            detail.account_number = account_number
            session.add(detail)
            session.flush()

            result = session.execute(
                update(Draw)
                .where(Draw.id == draw.id, Draw.payment_status == PaymentStatus.PENDING.value)
                .values(
                    payment_status=PaymentStatus.CLAIMED.value,
                    payment_detail_id=detail.id,
                    updated_at=now,
                )
            )
            if not result.rowcount:
                raise NotEligible("Payment details were already submitted for this draw", draw_id=draw.id)

            draw_id, period = draw.id, f"{draw.month}/{draw.year}"
    except IntegrityError:
        # payment_details.draw_id is unique; a concurrent submission won
        raise NotEligible("Payment details were already submitted for this draw", user_id=user_id)

    logger.info("payment_details_submitted", user_id=user_id, draw_id=draw_id, payment_detail_id=detail.id)

    from selliox.notifications.service import notification_service

    notification_service.emit_to_admins(
        "payment_claimed",
        f"A draw winner has submitted payment details for the {period} draw",
        {"draw_id": draw_id, "payment_detail_id": detail.id},
    )
    return detail


def process_payment(draw_id: int, now: datetime | None = None) -> Draw:
    """Mark a claimed prize as paid (admin action).

    Raises:
        NotFound: Unknown draw or missing payment detail
        NotClaimed: The winner has not submitted payment details yet
    """
    now = now or datetime.utcnow()

    with db.session() as session:
        draw = session.get(Draw, draw_id)
        if not draw:
            raise NotFound("Draw not found", draw_id=draw_id)

        if draw.payment_status != PaymentStatus.CLAIMED.value:
            raise NotClaimed("Payment details not yet claimed by winner", draw_id=draw_id)

        detail = session.get(PaymentDetail, draw.payment_detail_id) if draw.payment_detail_id else None
        if not detail:
            raise NotFound("Payment details not found", draw_id=draw_id)

        result = session.execute(
            update(Draw)
            .where(Draw.id == draw_id, Draw.payment_status == PaymentStatus.CLAIMED.value)
            .values(payment_status=PaymentStatus.PAID.value, paid_date=now, updated_at=now)
        )
        if not result.rowcount:
            raise NotClaimed("Payment was already processed", draw_id=draw_id)

        detail.status = PaymentDetailStatus.PAID.value
        detail.paid_at = now
        session.flush()
        session.refresh(draw)

    logger.info("payment_processed", draw_id=draw_id, winner_user_id=draw.winner_user_id, amount=draw.prize_amount)

    from selliox.notifications.service import notification_service

    notification_service.emit(
        draw.winner_user_id,
        "payment_processed",
        f"Your prize payment of ${draw.prize_amount:g} has been processed!",
        {"draw_id": draw.id, "amount": draw.prize_amount},
    )
    return draw


def check_winner_status(user_id: int, unpaid_only: bool = False) -> dict[str, Any]:
    """The user's most recent completed winning draw, if any.

    Args:
        user_id: User to check
        unpaid_only: Ignore draws whose prize was already paid

    Returns:
        Dict with ``is_winner`` and ``draw``
    """
    with db.session() as session:
        query = session.query(Draw).filter(
            Draw.winner_user_id == user_id,
            Draw.status == DrawStatus.COMPLETED.value,
        )
        if unpaid_only:
            query = query.filter(Draw.payment_status != PaymentStatus.PAID.value)
        draw = query.order_by(Draw.year.desc(), Draw.month.desc()).first()

        return {
            "is_winner": draw is not None,
            "draw": draw.to_dict() if draw else None,
        }


def get_payout_context(draw_id: int) -> dict[str, Any]:
    """Winner contact and masked bank details for the payout emails."""
    with db.session() as session:
        draw = session.get(Draw, draw_id)
        if not draw:
            raise NotFound("Draw not found", draw_id=draw_id)
        winner = session.get(UserAccount, draw.winner_user_id) if draw.winner_user_id else None
        detail = session.get(PaymentDetail, draw.payment_detail_id) if draw.payment_detail_id else None

        return {
            "draw": draw.to_dict(),
            "winner_email": winner.email if winner else None,
            "winner_name": winner.name if winner else None,
            "bank_name": detail.bank_name if detail else None,
            "account_holder": detail.account_holder if detail else None,
            "masked_account_number": detail.masked_account_number if detail else None,
        }
