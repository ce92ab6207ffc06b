"""Error taxonomy for the reward engine.

Services raise these; the API maps them to JSON responses and the CLI
prints them. Every error carries an HTTP status and a stable machine code.
"""


class RewardError(Exception):
    """Base class for reward engine errors."""

    status_code = 400
    code = "REWARD_ERROR"

    def __init__(self, message: str, **context):
        self.message = message
        self.context = context
        super().__init__(message)


class InvalidInput(RewardError):
    """Missing or malformed fields."""
    status_code = 400
    code = "INVALID_INPUT"


class NotFound(RewardError):
    """Code, draw, referral or payment detail absent."""
    status_code = 404
    code = "NOT_FOUND"


class Conflict(RewardError):
    """Operation conflicts with the current state."""
    status_code = 409
    code = "CONFLICT"


class SelfReferral(Conflict):
    code = "SELF_REFERRAL"


class AlreadyProcessed(Conflict):
    code = "ALREADY_PROCESSED"


class AlreadyCompleted(Conflict):
    """The draw for the period is already completed.

    The completed draw is attached so callers can report the existing result.
    """
    code = "ALREADY_COMPLETED"

    def __init__(self, message: str, draw=None, **context):
        self.draw = draw
        super().__init__(message, **context)


class NoEntries(Conflict):
    code = "NO_ENTRIES"


class NotEligible(Conflict):
    code = "NOT_ELIGIBLE"


class NotClaimed(Conflict):
    code = "NOT_CLAIMED"


class Unauthorized(RewardError):
    """Role or ownership check failed."""
    status_code = 403
    code = "UNAUTHORIZED"


class DependencyFailure(RewardError):
    """Email provider rejected or could not take a message."""
    status_code = 502
    code = "DEPENDENCY_FAILURE"


class Internal(RewardError):
    """Unexpected store failure."""
    status_code = 500
    code = "INTERNAL"


class PayoutDecryptionError(Internal):
    code = "PAYOUT_DECRYPTION_FAILED"
