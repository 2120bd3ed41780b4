# paygate/x402/constants.py
"""
Protocol constants for the x402 "exact" payment scheme.
"""

# x402 protocol version used on facilitator requests and in 402 bodies
X402_VERSION = 1

# Versions accepted in an inbound X-PAYMENT payload
SUPPORTED_X402_VERSIONS = ("1", "2.0")

# The only defined payment scheme
EXACT_SCHEME = "exact"

# HTTP header names
X_PAYMENT_HEADER = "X-PAYMENT"
X_PAYMENT_REQUIRED_HEADER = "X-PAYMENT-REQUIRED"
X_PAYMENT_RESPONSE_HEADER = "X-PAYMENT-RESPONSE"

# USDC contract addresses by CAIP-2 network id
USDC_ADDRESSES = {
    "eip155:8453": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",  # Base Mainnet
    "eip155:84532": "0x036CbD53842c5426634e7929541eC2318f3dCF7e",  # Base Sepolia
    "eip155:137": "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359",  # Polygon Mainnet
    "eip155:1": "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",  # Ethereum Mainnet
    "eip155:42161": "0xaf88d065e77c8cC2239327C5EDb3A432268e5831",  # Arbitrum One
    "eip155:10": "0x0b2C639c533813f4Aa9D7837CAf62653d097Ff85",  # Optimism
}

DEFAULT_NETWORK = "eip155:8453"

# USDC has 6 decimals, so $1.00 = 1,000,000 base units
USDC_DECIMALS = 6

DEFAULT_FACILITATOR_URL = "https://x402.org/facilitator"
DEFAULT_FACILITATOR_TIMEOUT = 30.0

# Methods a route protects when it does not list its own
DEFAULT_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH")

# Error codes handed to on_error callbacks
ERROR_INVALID_PAYLOAD = "INVALID_PAYLOAD"
ERROR_INVALID_SIGNATURE = "INVALID_SIGNATURE"
ERROR_EXPIRED = "EXPIRED"
ERROR_INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
ERROR_SETTLEMENT_FAILED = "SETTLEMENT_FAILED"
ERROR_NETWORK = "NETWORK_ERROR"
ERROR_INTERNAL = "INTERNAL_ERROR"
