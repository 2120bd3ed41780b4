# paygate/x402/exceptions.py
"""
Error taxonomy for the payment-gated request pipeline.

Every error raised by the pipeline derives from X402Error and carries a
machine-readable ``code`` that is passed to ``on_error`` callbacks:

- DecodeError: the X-PAYMENT value could not be turned into a record.
  MalformedHeaderError covers bad base64/JSON, ValidationError (and its
  UnsupportedScheme/UnsupportedVersion subtypes) covers schema failures.
- RequirementMismatch: a well-formed payload does not satisfy the
  requirement it was presented against.
- SettlementError: the facilitator declined, timed out or answered with
  something unusable.
- ConfigurationError: the pipeline cannot start.

All but ConfigurationError and PaymentProcessingError end the current request
with a 402.
"""
from typing import Optional

from paygate.x402.constants import (
    ERROR_EXPIRED,
    ERROR_INSUFFICIENT_FUNDS,
    ERROR_INTERNAL,
    ERROR_INVALID_PAYLOAD,
    ERROR_NETWORK,
    ERROR_SETTLEMENT_FAILED,
)


class X402Error(Exception):
    """Base class for payment pipeline errors."""

    code = ERROR_INVALID_PAYLOAD

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class ConfigurationError(X402Error):
    """Invalid pipeline configuration. Raised at startup, never per request."""

    code = ERROR_INTERNAL


class InvalidPrice(X402Error, ValueError):
    """A USD price string is not a non-negative decimal number."""


# --- Decoding ---

class DecodeError(X402Error):
    """A wire value could not be decoded into a valid record."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class MalformedHeaderError(DecodeError):
    """The value is not valid base64, UTF-8 or JSON."""


class ValidationError(DecodeError):
    """The decoded JSON does not satisfy the record schema."""


class UnsupportedScheme(ValidationError):
    def __init__(self, message: str = 'Only "exact" scheme is supported'):
        super().__init__(message, field="scheme")


class UnsupportedVersion(ValidationError):
    def __init__(self, message: str = "Invalid x402Version"):
        super().__init__(message, field="x402Version")


# --- Requirement cross-checks ---

class RequirementMismatch(X402Error):
    """A decoded payload does not satisfy its payment requirement."""


class NetworkMismatch(RequirementMismatch):
    pass


class RecipientMismatch(RequirementMismatch):
    pass


class InsufficientAmount(RequirementMismatch):
    code = ERROR_INSUFFICIENT_FUNDS


class NotYetValid(RequirementMismatch):
    pass


class Expired(RequirementMismatch):
    code = ERROR_EXPIRED


# --- Settlement ---

class SettlementError(X402Error):
    """The facilitator did not settle the payment."""

    code = ERROR_SETTLEMENT_FAILED


class FacilitatorError(SettlementError):
    """
    Transport-level failure talking to the facilitator.

    ``status_code`` is the upstream HTTP status, 408 for a timeout and 0 when
    no response was received at all.
    """

    code = ERROR_NETWORK

    def __init__(self, message: str, status_code: int = 0, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class PaymentProcessingError(X402Error):
    """Wraps an unexpected fault for on_error callbacks."""

    code = ERROR_INTERNAL
