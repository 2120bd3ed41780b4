# tests/conftest.py
"""
Shared fixtures for the x402 test suite.

All payments here are synthetic: addresses, signatures and nonces only have to
be well-formed, nothing is ever sent to a real facilitator.
"""
import json
from base64 import b64encode
from typing import Any, Dict

import pytest

RECIPIENT = "0x1234567890123456789012345678901234567890"
PAYER = "0xabcdefabcdefabcdefabcdefabcdefabcdefabcd"
NETWORK = "eip155:8453"
USDC_BASE = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
TX_HASH = "0x" + "a" * 64
NOW = 1_700_000_000


def build_payload_dict(
    value: str = "10000",
    to: str = RECIPIENT,
    network: str = NETWORK,
    x402_version: Any = "1",
    valid_after: Any = NOW - 60,
    valid_before: Any = NOW + 300,
    **overrides: Any,
) -> Dict[str, Any]:
    """Wire-format payment payload; ``overrides`` replace top-level keys."""
    payload = {
        "x402Version": x402_version,
        "scheme": "exact",
        "network": network,
        "payload": {
            "signature": "0x" + "ab" * 65,
            "authorization": {
                "from": PAYER,
                "to": to,
                "value": value,
                "validAfter": valid_after,
                "validBefore": valid_before,
                "nonce": "0x" + "00" * 32,
            },
        },
    }
    payload.update(overrides)
    return payload


def encode_json(data: Any) -> str:
    return b64encode(json.dumps(data).encode("utf-8")).decode()


@pytest.fixture
def make_payload_dict():
    return build_payload_dict


@pytest.fixture
def make_payment_header():
    def _make(**kwargs: Any) -> str:
        return encode_json(build_payload_dict(**kwargs))
    return _make


@pytest.fixture
def requirement_dict() -> Dict[str, Any]:
    return {
        "scheme": "exact",
        "network": NETWORK,
        "asset": USDC_BASE,
        "maxAmountRequired": "10000",
        "payTo": RECIPIENT,
        "description": "Weather data",
        "resource": "/api/weather",
    }
