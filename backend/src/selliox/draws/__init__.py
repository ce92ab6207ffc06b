"""Monthly prize draw: ticket ledger, winner selection and payouts."""

from selliox.draws.models import Draw, DrawEntry, DrawStatus, EntrySource, EntryStatus, PaymentDetail, PaymentStatus

__all__ = [
    "Draw",
    "DrawEntry",
    "DrawStatus",
    "EntrySource",
    "EntryStatus",
    "PaymentDetail",
    "PaymentStatus",
]
