"""Referral API v1 endpoints."""

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field

from selliox.api.rate_limit import limiter
from selliox.auth.middleware import get_current_user, require_auth
from selliox.auth.models import UserAccount
from selliox.draws.payouts import check_winner_status, submit_payment_details
from selliox.errors import NotFound
from selliox.logging_config import get_logger
from selliox.notifications.service import notification_service
from selliox.referral.codes import code_registry
from selliox.referral.service import referral_link, referral_service

logger = get_logger(__name__)

router = APIRouter(prefix="/referral", tags=["referral"])


# ==================== MODELS ====================


class ReferralCodeResponse(BaseModel):
    """Response with user's referral code."""
    code: str
    link: str
    message: str


class ApplyCodeRequest(BaseModel):
    """Request to redeem a referral code."""
    code: str = Field(..., min_length=1, max_length=20)
    listing_id: int | None = None
    reward_type: str | None = None


class ChooseRewardRequest(BaseModel):
    """Request to choose the reward of a pending referral."""
    referral_id: int
    reward_type: str


class PaymentDetailsRequest(BaseModel):
    """Winner bank details."""
    bank_name: str = Field(..., max_length=255)
    account_holder: str = Field(..., max_length=255)
    account_number: str = Field(..., max_length=64)


# ==================== CODES ====================


@router.post("/generate-code", response_model=ReferralCodeResponse)
async def generate_code(user: UserAccount = Depends(require_auth)):
    """Get the current user's referral code, creating it on first request."""
    referral_code = code_registry.generate_code(user.id)
    fresh = user.referral_code != referral_code.code

    return ReferralCodeResponse(
        code=referral_code.code,
        link=referral_link(referral_code.code),
        message="Referral code generated successfully" if fresh else "Existing referral code retrieved",
    )


@router.get("/validate-code/{code}")
@limiter.limit("30/minute")
async def validate_code(
    request: Request,
    code: str,
    user: UserAccount | None = Depends(get_current_user),
):
    """Check a referral code before sign-up or redemption."""
    result = code_registry.validate_code(code, caller_id=user.id if user else None)
    return {"success": True, **result, "message": "Valid referral code"}


@router.post("/apply-code", status_code=status.HTTP_200_OK)
async def apply_code(body: ApplyCodeRequest, user: UserAccount = Depends(require_auth)):
    """Redeem a referral code and reward its owner."""
    result = referral_service.apply_code(
        code=body.code,
        redeemer_id=user.id,
        listing_id=body.listing_id,
        reward_type=body.reward_type,
    )
    return {
        "success": True,
        **result,
        "message": "Referral created and processed successfully" if result["created"] else "Referral converted successfully",
    }


@router.post("/choose-reward")
async def choose_reward(body: ChooseRewardRequest, user: UserAccount = Depends(require_auth)):
    """Choose between a free month and draw entries for a pending referral."""
    referral = referral_service.choose_reward(user.id, body.referral_id, body.reward_type)
    return {
        "success": True,
        "referral": referral.to_dict(),
        "message": "Reward choice saved; it is applied when the referral converts",
    }


# ==================== DASHBOARD ====================


@router.get("/user-data")
async def user_data(user: UserAccount = Depends(require_auth)):
    """Referral summary for the current user."""
    return {"success": True, **referral_service.get_user_data(user.id)}


@router.get("/dashboard")
async def dashboard(user: UserAccount = Depends(require_auth)):
    """Detailed referral dashboard for the current user."""
    return {"success": True, **referral_service.get_dashboard(user.id)}


# ==================== DRAW PAYOUT ====================


@router.post("/payment-details", status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def payment_details(
    request: Request,
    body: PaymentDetailsRequest,
    user: UserAccount = Depends(require_auth),
):
    """Submit bank details to claim a draw prize."""
    detail = submit_payment_details(
        user_id=user.id,
        bank_name=body.bank_name,
        account_holder=body.account_holder,
        account_number=body.account_number,
    )
    return {
        "success": True,
        "payment_detail_id": detail.id,
        "account_number": detail.masked_account_number,
        "message": "Payment details submitted successfully",
    }


@router.get("/check-winner")
async def check_winner(user: UserAccount = Depends(require_auth)):
    """Whether the current user has won a draw."""
    return {"success": True, **check_winner_status(user.id)}


# ==================== NOTIFICATIONS ====================


@router.get("/notifications")
async def notifications(user: UserAccount = Depends(require_auth)):
    """Unread notifications, newest first."""
    items = notification_service.list_unread(user.id)
    return {"success": True, "notifications": [n.to_dict() for n in items]}


@router.post("/notifications/read/{notification_id}")
async def mark_notification_read(notification_id: int, user: UserAccount = Depends(require_auth)):
    """Mark one notification as read."""
    if not notification_service.mark_read(user.id, notification_id):
        raise NotFound("Notification not found", notification_id=notification_id)
    return {"success": True, "message": "Notification marked as read"}


@router.post("/notifications/read-all")
async def mark_all_notifications_read(user: UserAccount = Depends(require_auth)):
    """Mark every notification as read."""
    updated = notification_service.mark_all_read(user.id)
    return {"success": True, "updated": updated, "message": "All notifications marked as read"}
