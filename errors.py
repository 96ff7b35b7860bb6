"""
Business-rule errors raised by the claim workflow.

Each error carries the HTTP status and message the API layer renders;
see the handler registered in main.py.
"""
from typing import Optional


class ClaimError(Exception):
    status_code = 400
    detail = "Request could not be completed"

    def __init__(self, detail: Optional[str] = None):
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class NotFound(ClaimError):
    status_code = 404
    detail = "Resource not found"


class Forbidden(ClaimError):
    status_code = 403
    detail = "Unauthorized"


class AlreadyClaimed(ClaimError):
    status_code = 409
    detail = "Donation is no longer available"


class InvalidCredential(ClaimError):
    status_code = 422
    detail = "Invalid pickup code"


class InvalidState(ClaimError):
    status_code = 409
    detail = "Claim cannot be changed in its current state"


class WorkflowViolation(ClaimError):
    status_code = 409
    detail = "Donation must be picked up first"


class DonationLocked(ClaimError):
    """Donor edit or delete attempted after the donation left `available`."""

    status_code = 409
    detail = "Donation can no longer be changed"


class TransientStorageFailure(ClaimError):
    """Lock timeout or failed write. Nothing was committed; safe to retry."""

    status_code = 503
    detail = "Storage temporarily unavailable, retry"
