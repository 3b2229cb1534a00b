"""
Typed failures raised by the ledger.

Every error carries the HTTP status the request layer answers with, so the
FastAPI exception handler in main.py needs no per-type branching.
"""


class LedgerError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError):
    """Malformed or inconsistent input, rejected before any write"""
    status_code = 400


class InvalidAmountError(LedgerError):
    """Settlement amount is non-positive or exceeds the outstanding debt"""
    status_code = 400


class AuthorizationError(LedgerError):
    status_code = 403


class NotFoundError(LedgerError):
    status_code = 404


class ContentionError(LedgerError):
    """Lock or serialization conflict; the transaction was rolled back and may be retried"""
    status_code = 409
