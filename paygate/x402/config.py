# paygate/x402/config.py
"""
Immutable configuration of the payment pipeline.

An X402Config is built once at startup, validated on construction and then
shared read-only by every request. Anything wrong with it raises
ConfigurationError before the first request is served.
"""
import logging
from typing import Any, Callable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from paygate.x402.codec import is_valid_address, usd_to_base_units
from paygate.x402.constants import (
    DEFAULT_FACILITATOR_TIMEOUT,
    DEFAULT_FACILITATOR_URL,
    DEFAULT_NETWORK,
    USDC_ADDRESSES,
)
from paygate.x402.exceptions import ConfigurationError, InvalidPrice

logger = logging.getLogger(__name__)


def _is_positive_price(price: Optional[str]) -> bool:
    try:
        return int(usd_to_base_units(price)) > 0
    except InvalidPrice:
        return False


class RouteConfig(BaseModel):
    """
    Pricing rule for a path pattern.

    ``path`` supports literals, ``*`` (any suffix) and ``:name`` (exactly one
    segment). ``methods`` defaults to GET, POST, PUT, DELETE and PATCH.
    """
    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Route pattern, e.g. /api/weather or /api/*")
    price: str = Field(..., description="Price in USD, e.g. '0.01'")
    description: Optional[str] = Field(None, description="Human-readable description of the resource")
    methods: Optional[Tuple[str, ...]] = Field(None, description="HTTP methods to protect")

    @field_validator("methods")
    @classmethod
    def normalize_methods(cls, v):
        if v is None:
            return v
        return tuple(m.upper() for m in v)


class FacilitatorConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str = DEFAULT_FACILITATOR_URL
    api_key: Optional[str] = None
    timeout: float = Field(DEFAULT_FACILITATOR_TIMEOUT, description="Request timeout in seconds")


class X402Config(BaseModel):
    """
    Payment pipeline configuration.

    Either ``price`` (protect everything the middleware sees) or ``routes``
    (protect matching paths only) must be given. ``asset`` defaults to the
    USDC contract of ``network``; networks outside that table need an explicit
    asset address.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    recipient: str = ""
    price: Optional[str] = None
    routes: Tuple[RouteConfig, ...] = ()
    description: Optional[str] = None
    network: str = DEFAULT_NETWORK
    asset: Optional[str] = None
    mime_type: Optional[str] = None
    facilitator: FacilitatorConfig = Field(default_factory=FacilitatorConfig)
    verify_before_settle: bool = False
    audit_log_path: Optional[str] = None
    on_payment: Optional[Callable[..., Any]] = None
    on_error: Optional[Callable[..., Any]] = None

    def __init__(self, **data: Any):
        try:
            super().__init__(**data)
        except PydanticValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first.get("loc", ()))
            raise ConfigurationError(f"Invalid x402 configuration ({location}): {first.get('msg')}") from e

    @model_validator(mode="after")
    def check_config(self):
        if not self.recipient:
            raise ConfigurationError("recipient is required")

        if not is_valid_address(self.recipient):
            raise ConfigurationError("recipient must be a valid Ethereum address")

        if not self.price and not self.routes:
            raise ConfigurationError("Either price or routes must be specified")

        if self.price and not _is_positive_price(self.price):
            raise ConfigurationError("price must be a positive number")

        for route in self.routes:
            if not route.path:
                raise ConfigurationError("Each route must have a path")
            if not _is_positive_price(route.price):
                raise ConfigurationError(f"Invalid price for route {route.path}")
            if route.methods is not None and not all(route.methods):
                raise ConfigurationError(f"Invalid methods for route {route.path}")

        if not self.network:
            raise ConfigurationError("network is required")

        if self.asset is not None:
            if not is_valid_address(self.asset):
                raise ConfigurationError("asset must be a valid token contract address")
        elif self.network not in USDC_ADDRESSES:
            raise ConfigurationError(
                f"Unsupported network: {self.network}. "
                f"Supported: {', '.join(USDC_ADDRESSES)}"
            )

        if not self.facilitator.url:
            raise ConfigurationError("facilitator url is required")
        if self.facilitator.timeout <= 0:
            raise ConfigurationError("facilitator timeout must be positive")

        return self

    @property
    def asset_address(self) -> str:
        """Token contract the requirements ask for."""
        return self.asset or USDC_ADDRESSES[self.network]

    @classmethod
    def from_settings(cls, settings, **overrides: Any) -> "X402Config":
        """
        Build the pipeline configuration from environment settings.

        Args:
            settings: a paygate.core.config.Settings instance
            **overrides: values taking precedence over settings (callbacks etc.)

        Raises:
            ConfigurationError: if the settings do not form a valid configuration
        """
        routes: List[dict] = settings.X402_ROUTES or []
        values = {
            "recipient": settings.X402_PAY_TO_ADDRESS or "",
            "price": settings.X402_PRICE_USD,
            "routes": tuple(routes),
            "description": settings.X402_DESCRIPTION,
            "network": settings.X402_NETWORK,
            "asset": settings.X402_ASSET_ADDRESS,
            "facilitator": {
                "url": settings.X402_FACILITATOR_URL,
                "api_key": settings.X402_FACILITATOR_API_KEY,
                "timeout": settings.X402_FACILITATOR_TIMEOUT,
            },
            "verify_before_settle": settings.X402_VERIFY_BEFORE_SETTLE,
            "audit_log_path": settings.X402_AUDIT_LOG_PATH,
        }
        values.update(overrides)
        config = cls(**values)
        logger.info(
            f"x402 configured: network={config.network}, recipient={config.recipient}, "
            f"routes={len(config.routes)}, blanket_price={config.price}"
        )
        return config
