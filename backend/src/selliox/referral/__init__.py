"""Referral program.

- Every user can request one shareable code
- Signing up with a code records a pending referral
- Redeeming a code converts the referral and rewards the referrer with
  5 draw tickets or a free subscription month
"""

from selliox.referral.codes import ReferralCodeRegistry, code_registry
from selliox.referral.models import Referral, ReferralCode, ReferralStatus, RewardStatus, RewardType
from selliox.referral.service import ReferralService, referral_service

__all__ = [
    "Referral",
    "ReferralCode",
    "ReferralCodeRegistry",
    "ReferralService",
    "ReferralStatus",
    "RewardStatus",
    "RewardType",
    "code_registry",
    "referral_service",
]
