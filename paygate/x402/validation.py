# paygate/x402/validation.py
"""
Cross-checks a decoded payment against the requirement it claims to pay.

These checks are cheap and run before the facilitator is contacted. They run
in a fixed order and the first failure is raised:

1. network
2. recipient (case-insensitive)
3. amount
4. validity window

The validity window ordering (validAfter < validBefore) and nonce reuse are
left to the facilitator, which owns replay protection.
"""
import time
from typing import Optional

from paygate.x402.exceptions import (
    Expired,
    InsufficientAmount,
    NetworkMismatch,
    NotYetValid,
    RecipientMismatch,
)
from paygate.x402.schemas import PaymentPayload, PaymentRequirements


def _amount_covers(value: str, required: str) -> bool:
    # Compared as digit strings so no length limit applies
    value = value.lstrip("0") or "0"
    required = required.lstrip("0") or "0"
    return (len(value), value) >= (len(required), required)


def validate_payment(
    payload: PaymentPayload,
    requirements: PaymentRequirements,
    now: Optional[int] = None,
) -> None:
    """
    Raise the first RequirementMismatch found, or return None if the payment
    satisfies the requirement at time ``now`` (unix seconds).
    """
    authorization = payload.authorization

    if payload.network != requirements.network:
        raise NetworkMismatch(
            f"Network mismatch: expected {requirements.network}, got {payload.network}"
        )

    if authorization.to.lower() != requirements.pay_to.lower():
        raise RecipientMismatch(
            f"Recipient mismatch: expected {requirements.pay_to}, got {authorization.to}"
        )

    if not _amount_covers(authorization.value, requirements.max_amount_required):
        raise InsufficientAmount(
            f"Insufficient amount: required {requirements.max_amount_required}, "
            f"got {authorization.value}"
        )

    if now is None:
        now = int(time.time())

    if authorization.valid_after > now:
        raise NotYetValid(f"Payment not yet valid (validAfter: {authorization.valid_after})")

    if authorization.valid_before < now:
        raise Expired(f"Payment expired (validBefore: {authorization.valid_before})")
