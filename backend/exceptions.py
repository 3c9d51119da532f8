"""Error taxonomy for the wager ledger.

Every error carries a stable machine-readable ``code`` and a human-readable
message. The HTTP layer maps ``status_code`` onto the response.
"""


class LedgerError(Exception):
    """Base exception for all ledger errors."""

    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(LedgerError):
    """Missing, malformed or out-of-range input. Not retryable."""

    status_code = 400
    default_code = "VALIDATION_ERROR"


class NotFoundError(LedgerError):
    """A referenced market, user, wager or stats row does not exist."""

    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(LedgerError):
    """The request conflicts with the current ledger state."""

    status_code = 409
    default_code = "CONFLICT"


class AlreadyResolvedError(ConflictError):
    default_code = "MARKET_ALREADY_RESOLVED"


class MarketNotActiveError(ConflictError):
    default_code = "MARKET_NOT_ACTIVE"


class StoreError(LedgerError):
    """The underlying record store failed."""

    status_code = 503
    default_code = "STORE_ERROR"
