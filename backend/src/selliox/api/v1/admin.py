"""Admin API v1 endpoints: draw management, payouts and promotions."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from selliox.auth.middleware import require_admin
from selliox.auth.models import UserAccount
from selliox.draws.engine import current_period, get_draw_management_summary, run_draw
from selliox.draws.ledger import grant_promotion
from selliox.draws.payouts import process_payment
from selliox.email.service import send_payment_processed_email, send_winner_email
from selliox.logging_config import get_logger
from selliox.referral.codes import code_registry

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class RunDrawRequest(BaseModel):
    """Optional period override; defaults to the current month."""
    month: int | None = Field(default=None, ge=1, le=12)
    year: int | None = Field(default=None, ge=2000)


class PromotionRequest(BaseModel):
    """Promotional ticket grant."""
    user_id: int
    tickets: int = Field(..., ge=1, le=1000)


@router.get("/draw-management")
async def draw_management(admin: UserAccount = Depends(require_admin)):
    """Current draw, recent draws, pool totals and pending payouts."""
    return {"success": True, **get_draw_management_summary()}


@router.post("/run-draw")
async def run_monthly_draw(
    body: RunDrawRequest | None = None,
    admin: UserAccount = Depends(require_admin),
):
    """Run the draw now (current month unless a period is given)."""
    month, year = current_period()
    if body and body.month:
        month = body.month
    if body and body.year:
        year = body.year

    draw = run_draw(month, year)
    logger.info("admin_draw_run", admin_id=admin.id, draw_id=draw.id, month=month, year=year)

    await send_winner_email(draw.id)
    return {"success": True, "draw": draw.to_dict(), "message": "Draw completed successfully"}


@router.post("/process-payment/{draw_id}")
async def process_winner_payment(draw_id: int, admin: UserAccount = Depends(require_admin)):
    """Mark a claimed prize as paid."""
    draw = process_payment(draw_id)
    logger.info("admin_payment_processed", admin_id=admin.id, draw_id=draw_id)

    await send_payment_processed_email(draw.id)
    return {"success": True, "draw": draw.to_dict(), "message": "Payment marked as processed"}


@router.post("/promotions")
async def grant_promotion_tickets(body: PromotionRequest, admin: UserAccount = Depends(require_admin)):
    """Grant promotional draw tickets to a user."""
    entry = grant_promotion(body.user_id, body.tickets)
    logger.info("admin_promotion_granted", admin_id=admin.id, user_id=body.user_id, tickets=body.tickets)
    return {"success": True, "draw_entry": entry.to_dict()}


@router.post("/referral-codes/{code}/deactivate")
async def deactivate_referral_code(code: str, admin: UserAccount = Depends(require_admin)):
    """Deactivate a referral code."""
    referral_code = code_registry.deactivate_code(code)
    logger.info("admin_code_deactivated", admin_id=admin.id, code=referral_code.code)
    return {"success": True, "code": referral_code.code, "is_active": referral_code.is_active}
