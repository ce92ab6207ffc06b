"""All ORM models, imported together so they register on ``Base.metadata``."""

from selliox.auth.models import UserAccount
from selliox.draws.models import Draw, DrawEntry, PaymentDetail
from selliox.notifications.models import Notification
from selliox.referral.models import Referral, ReferralCode
from selliox.scheduler.models import JobRun

__all__ = [
    "Draw",
    "DrawEntry",
    "JobRun",
    "Notification",
    "PaymentDetail",
    "Referral",
    "ReferralCode",
    "UserAccount",
]
