"""
Domain errors.

Every failure a payment can end in has its own class here.
Each class carries the HTTP status the API layer answers with,
so routers only translate, they never decide.
"""


class LedgerError(Exception):
    """Base class for all business and infrastructure failures."""

    status_code: int = 400
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(LedgerError):
    status_code = 401
    default_message = "Unauthorized"


class NotFound(LedgerError):
    status_code = 404
    default_message = "Sender profile not found"


class InvalidAmount(LedgerError):
    default_message = "Invalid payment details"


class InsufficientBalance(LedgerError):
    default_message = "Insufficient balance"


class ReceiverNotFound(LedgerError):
    status_code = 404
    default_message = "Receiver not found"


class SelfTransfer(LedgerError):
    default_message = "Cannot send money to yourself"


class ProfileExists(LedgerError):
    status_code = 409
    default_message = "Profile already exists"


class Conflict(LedgerError):
    """
    A balance changed between read and write.

    Nothing was persisted, so the whole operation
    can be retried from the beginning.
    """

    status_code = 409
    default_message = "Balance changed during payment, please retry"


class PersistenceFailure(LedgerError):
    status_code = 503
    default_message = "Ledger store unavailable"


class CompensationFailure(LedgerError):
    """
    A partially applied transfer could not be reversed.

    The ledger is inconsistent until an operator reconciles it.
    The message shown to the client is deliberately generic;
    the full context travels in `context` and in the logs.
    """

    status_code = 500
    default_message = (
        "Payment could not be completed and has been flagged "
        "for manual review"
    )

    def __init__(self, context: dict, message: str | None = None):
        self.context = context
        super().__init__(message)


class AdviceUnavailable(LedgerError):
    status_code = 502
    default_message = "AI service unavailable"
