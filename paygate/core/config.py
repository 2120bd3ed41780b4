# paygate/core/config.py
from typing import Any, Dict, List, Optional

from pydantic_settings import BaseSettings
from functools import lru_cache
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

class Settings(BaseSettings):
    PROJECT_NAME: str = "x402 Payment Gateway"
    LOG_LEVEL: str = "INFO"

    # Payment gate on/off for the bundled application
    X402_ENABLED: bool = False

    # Wallet receiving payments
    X402_PAY_TO_ADDRESS: Optional[str] = None

    # Either a blanket price for every request...
    X402_PRICE_USD: Optional[str] = None
    # ...or a JSON list of {"path", "price", "description", "methods"} rules
    X402_ROUTES: Optional[List[Dict[str, Any]]] = None
    X402_DESCRIPTION: Optional[str] = None

    # CAIP-2 network id; X402_ASSET_ADDRESS overrides the USDC contract lookup
    X402_NETWORK: str = "eip155:8453"  # Base Mainnet
    X402_ASSET_ADDRESS: Optional[str] = None

    X402_FACILITATOR_URL: str = "https://x402.org/facilitator"
    X402_FACILITATOR_API_KEY: Optional[str] = None
    X402_FACILITATOR_TIMEOUT: float = 30.0  # seconds
    X402_VERIFY_BEFORE_SETTLE: bool = False

    # JSON-lines audit trail; disabled when unset
    X402_AUDIT_LOG_PATH: Optional[str] = None
    # Serve the audit log read-only at /payment/audit
    X402_AUDIT_API_ENABLED: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields from .env

@lru_cache() # Cache the settings object for performance
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
