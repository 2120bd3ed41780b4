"""Pay-per-call gating for FastAPI endpoints using the x402 protocol."""
