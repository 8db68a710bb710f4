"""
Errors
======
Domain exceptions raised by the lifecycle engine and its guards.

Every error carries:
    code        — machine-readable constant (see below)
    category    — what the client should do about it
    status_code — HTTP status the API layer renders
    message     — human-readable reason
    hint        — optional remediation hint
    details     — extra structured fields merged into the response body

Categories:
    retry_later       — rate limit, lost claim race
    will_not_succeed  — policy rejection, invalid state, bad input, missing bounty
    contact_operator  — row store or payment executor unreachable
"""
from typing import Any, Dict, Optional


# ---------------------------------------------------------------------------
# Error Code Constants
# ---------------------------------------------------------------------------
NOT_FOUND = "NOT_FOUND"
INVALID_STATE = "INVALID_STATE"
UNAUTHORIZED = "UNAUTHORIZED"
CONFLICT = "CONFLICT"
RATE_LIMITED = "RATE_LIMITED"
POLICY_REJECTED = "POLICY_REJECTED"
UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
INVALID_INPUT = "INVALID_INPUT"
PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
PAYMENT_REQUIRED = "PAYMENT_REQUIRED"

ALL_ERROR_CODES = frozenset({
    NOT_FOUND,
    INVALID_STATE,
    UNAUTHORIZED,
    CONFLICT,
    RATE_LIMITED,
    POLICY_REJECTED,
    UPSTREAM_UNAVAILABLE,
    INVALID_INPUT,
    PAYLOAD_TOO_LARGE,
    PAYMENT_REQUIRED,
})

# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------
RETRY_LATER = "retry_later"
WILL_NOT_SUCCEED = "will_not_succeed"
CONTACT_OPERATOR = "contact_operator"


class BountyBoardError(Exception):
    """Base class for every error surfaced to a client."""

    status_code: int = 400
    code: str = INVALID_INPUT
    category: str = WILL_NOT_SUCCEED

    def __init__(
        self,
        message: str,
        hint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "error": self.message,
            "code": self.code,
            "category": self.category,
        }
        if self.hint:
            body["hint"] = self.hint
        body.update(self.details)
        return body


class NotFound(BountyBoardError):
    status_code = 404
    code = NOT_FOUND


class InvalidState(BountyBoardError):
    status_code = 400
    code = INVALID_STATE


class Unauthorized(BountyBoardError):
    status_code = 403
    code = UNAUTHORIZED


class Conflict(BountyBoardError):
    status_code = 409
    code = CONFLICT
    category = RETRY_LATER


class RateLimited(BountyBoardError):
    status_code = 429
    code = RATE_LIMITED
    category = RETRY_LATER

    def __init__(self, message: str, retry_after: int) -> None:
        super().__init__(message, details={"retryAfter": retry_after})
        self.retry_after = retry_after


class PolicyRejected(BountyBoardError):
    status_code = 422
    code = POLICY_REJECTED


class UpstreamUnavailable(BountyBoardError):
    status_code = 503
    code = UPSTREAM_UNAVAILABLE
    category = CONTACT_OPERATOR


class InvalidInput(BountyBoardError):
    status_code = 400
    code = INVALID_INPUT


class PayloadTooLarge(BountyBoardError):
    status_code = 413
    code = PAYLOAD_TOO_LARGE


class PaymentRequired(BountyBoardError):
    status_code = 402
    code = PAYMENT_REQUIRED
