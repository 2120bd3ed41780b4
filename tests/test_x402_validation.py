# tests/test_x402_validation.py
"""
Unit tests for payment/requirement cross-checks.
"""
import pytest

from paygate.x402.exceptions import (
    Expired,
    InsufficientAmount,
    NetworkMismatch,
    NotYetValid,
    RecipientMismatch,
    RequirementMismatch,
)
from paygate.x402.schemas import PaymentPayload, PaymentRequirements
from paygate.x402.validation import validate_payment

from conftest import NOW, build_payload_dict


@pytest.fixture
def requirements(requirement_dict):
    return PaymentRequirements.model_validate(requirement_dict)


def payload(**kwargs) -> PaymentPayload:
    return PaymentPayload.model_validate(build_payload_dict(**kwargs))


class TestValidatePayment:

    def test_valid_payment(self, requirements):
        assert validate_payment(payload(), requirements, now=NOW) is None

    def test_overpayment_is_accepted(self, requirements):
        validate_payment(payload(value="20000"), requirements, now=NOW)

    def test_network_mismatch(self, requirements):
        with pytest.raises(NetworkMismatch, match="expected eip155:8453, got eip155:84532"):
            validate_payment(payload(network="eip155:84532"), requirements, now=NOW)

    def test_recipient_mismatch(self, requirements):
        with pytest.raises(RecipientMismatch, match="Recipient mismatch"):
            validate_payment(payload(to="0x" + "9" * 40), requirements, now=NOW)

    def test_recipient_compared_case_insensitively(self, requirement_dict):
        requirement_dict["payTo"] = "0xABCDEF1234567890ABCDEF1234567890ABCDEF12"
        requirements = PaymentRequirements.model_validate(requirement_dict)

        validate_payment(payload(to="0xabcdef1234567890abcdef1234567890abcdef12"), requirements, now=NOW)

    def test_insufficient_amount(self, requirements):
        with pytest.raises(InsufficientAmount) as exc_info:
            validate_payment(payload(value="5000"), requirements, now=NOW)

        assert exc_info.value.message == "Insufficient amount: required 10000, got 5000"
        assert exc_info.value.code == "INSUFFICIENT_FUNDS"

    def test_amounts_compared_as_integers(self, requirements):
        """'9999' sorts after '10000' as a string but is still too little."""
        with pytest.raises(InsufficientAmount):
            validate_payment(payload(value="9999"), requirements, now=NOW)

    def test_amounts_beyond_int_conversion_limit(self, requirements):
        """Amount comparison has no digit limit."""
        validate_payment(payload(value="9" * 5000), requirements, now=NOW)

    def test_leading_zeros_ignored(self, requirements):
        validate_payment(payload(value="0000010000"), requirements, now=NOW)
        with pytest.raises(InsufficientAmount):
            validate_payment(payload(value="000009999"), requirements, now=NOW)

    def test_not_yet_valid(self, requirements):
        with pytest.raises(NotYetValid, match=f"validAfter: {NOW + 10}"):
            validate_payment(payload(valid_after=NOW + 10), requirements, now=NOW)

    def test_expired(self, requirements):
        with pytest.raises(Expired, match=f"validBefore: {NOW - 1}"):
            validate_payment(payload(valid_before=NOW - 1), requirements, now=NOW)

    def test_window_boundaries_are_inclusive(self, requirements):
        validate_payment(payload(valid_after=NOW, valid_before=NOW), requirements, now=NOW)


class TestCheckOrder:
    """The first failing check in network, recipient, amount, time order is reported."""

    def test_network_reported_before_amount(self, requirements):
        with pytest.raises(NetworkMismatch):
            validate_payment(payload(network="eip155:84532", value="1"), requirements, now=NOW)

    def test_recipient_reported_before_amount(self, requirements):
        with pytest.raises(RecipientMismatch):
            validate_payment(payload(to="0x" + "9" * 40, value="1"), requirements, now=NOW)

    def test_amount_reported_before_expiry(self, requirements):
        with pytest.raises(InsufficientAmount):
            validate_payment(payload(value="1", valid_before=NOW - 100), requirements, now=NOW)

    def test_all_failures_are_requirement_mismatches(self, requirements):
        with pytest.raises(RequirementMismatch):
            validate_payment(payload(valid_before=NOW - 100), requirements, now=NOW)


def test_defaults_to_current_time(requirements):
    """Without ``now`` an authorization from 2023 is expired."""
    with pytest.raises(Expired):
        validate_payment(payload(), requirements)
