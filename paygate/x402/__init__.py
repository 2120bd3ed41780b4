# paygate/x402/__init__.py
"""
x402 Payment Protocol Integration Module.

This module turns ordinary HTTP endpoints into pay-per-call resources using
the x402 "exact" scheme: a signed, time-bounded USDC transfer authorization
carried in the X-PAYMENT header and settled through a facilitator.

Key components:
- codec: Encode/decode and validate the x402 header values
- routes: Match requests against configured price rules
- pricing: Build payment requirements for a matched rule
- validation: Cross-check a payment against its requirement
- facilitator: HTTP client for the settlement service
- middleware: FastAPI middleware running the payment flow
- audit: Payment audit logging

Configuration is an immutable X402Config, usually built from environment
variables via paygate.core.config.
"""
from paygate.x402.codec import (
    base_units_to_usd,
    decode_payment_payload,
    decode_payment_requirements,
    decode_settlement_response,
    encode_payment_payload,
    encode_payment_requirements,
    encode_settlement_response,
    usd_to_base_units,
)
from paygate.x402.config import FacilitatorConfig, RouteConfig, X402Config
from paygate.x402.facilitator import FacilitatorClient
from paygate.x402.middleware import X402Middleware, get_payment_receipt
from paygate.x402.schemas import (
    PaymentPayload,
    PaymentReceipt,
    PaymentRequirements,
    SettlementResponse,
    TransferAuthorization,
    VerificationResponse,
)

__version__ = "0.1.0"
