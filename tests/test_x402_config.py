# tests/test_x402_config.py
"""
Unit tests for payment pipeline configuration.
"""
from unittest.mock import MagicMock

import pytest

from paygate.core.config import Settings
from paygate.x402.config import FacilitatorConfig, RouteConfig, X402Config
from paygate.x402.constants import DEFAULT_FACILITATOR_URL, DEFAULT_NETWORK, USDC_ADDRESSES
from paygate.x402.exceptions import ConfigurationError

from conftest import RECIPIENT


class TestConfigValidation:
    """Configuration errors are raised on construction."""

    def test_missing_recipient(self):
        with pytest.raises(ConfigurationError, match="recipient is required"):
            X402Config(recipient="", price="0.01")

    def test_invalid_recipient(self):
        with pytest.raises(ConfigurationError, match="valid Ethereum address"):
            X402Config(recipient="not-an-address", price="0.01")

    def test_neither_price_nor_routes(self):
        with pytest.raises(ConfigurationError, match="Either price or routes"):
            X402Config(recipient=RECIPIENT)

    @pytest.mark.parametrize("price", ["-1", "abc", "0", "0.0000001"])
    def test_price_must_be_positive(self, price):
        with pytest.raises(ConfigurationError, match="positive number"):
            X402Config(recipient=RECIPIENT, price=price)

    def test_invalid_route_price(self):
        with pytest.raises(ConfigurationError, match="Invalid price for route /api/test"):
            X402Config(recipient=RECIPIENT, routes=[{"path": "/api/test", "price": "-1"}])

    def test_route_without_path(self):
        with pytest.raises(ConfigurationError, match="must have a path"):
            X402Config(recipient=RECIPIENT, routes=[{"path": "", "price": "0.01"}])

    def test_route_with_wrong_type(self):
        """Type errors in nested values are reported as configuration errors too."""
        with pytest.raises(ConfigurationError, match="routes"):
            X402Config(recipient=RECIPIENT, routes=[{"path": "/api/test"}])

    def test_unsupported_network(self):
        with pytest.raises(ConfigurationError, match="Unsupported network"):
            X402Config(recipient=RECIPIENT, price="0.01", network="unsupported:chain")

    def test_custom_network_with_asset(self):
        """Networks outside the USDC table work with an explicit asset."""
        asset = "0x" + "1" * 40
        config = X402Config(recipient=RECIPIENT, price="0.01", network="eip155:999", asset=asset)
        assert config.asset_address == asset

    def test_invalid_asset(self):
        with pytest.raises(ConfigurationError, match="asset"):
            X402Config(recipient=RECIPIENT, price="0.01", asset="0x12")

    def test_invalid_facilitator_timeout(self):
        with pytest.raises(ConfigurationError, match="timeout"):
            X402Config(recipient=RECIPIENT, price="0.01", facilitator=FacilitatorConfig(timeout=0))


class TestConfigDefaults:

    def test_valid_blanket_config(self):
        config = X402Config(recipient=RECIPIENT, price="0.01")

        assert config.network == DEFAULT_NETWORK
        assert config.asset_address == USDC_ADDRESSES[DEFAULT_NETWORK]
        assert config.facilitator.url == DEFAULT_FACILITATOR_URL
        assert config.verify_before_settle is False
        assert config.routes == ()

    def test_routes_are_parsed(self):
        config = X402Config(recipient=RECIPIENT, routes=[
            {"path": "/api/test", "price": "0.01", "methods": ["post", "get"]},
            RouteConfig(path="/api/other", price="1.00"),
        ])

        assert config.routes[0].methods == ("POST", "GET")
        assert config.routes[1].price == "1.00"

    def test_config_is_immutable(self):
        config = X402Config(recipient=RECIPIENT, price="0.01")

        with pytest.raises(Exception):
            config.price = "100.00"

    def test_accepts_callbacks(self):
        on_payment = MagicMock()
        config = X402Config(recipient=RECIPIENT, price="0.01", on_payment=on_payment)
        assert config.on_payment is on_payment


class TestFromSettings:
    """Test building the configuration from environment settings."""

    def test_blanket_price_from_settings(self):
        settings = Settings(
            X402_PAY_TO_ADDRESS=RECIPIENT,
            X402_PRICE_USD="0.05",
            X402_NETWORK="eip155:84532",
            X402_FACILITATOR_URL="https://facilitator.example.com",
            X402_FACILITATOR_API_KEY="secret",
            X402_FACILITATOR_TIMEOUT=5.0,
        )

        config = X402Config.from_settings(settings)

        assert config.recipient == RECIPIENT
        assert config.price == "0.05"
        assert config.network == "eip155:84532"
        assert config.facilitator.url == "https://facilitator.example.com"
        assert config.facilitator.api_key == "secret"
        assert config.facilitator.timeout == 5.0

    def test_routes_from_settings(self):
        settings = Settings(
            X402_PAY_TO_ADDRESS=RECIPIENT,
            X402_ROUTES=[{"path": "/api/*", "price": "0.01", "description": "API"}],
        )

        config = X402Config.from_settings(settings)

        assert config.routes[0].path == "/api/*"
        assert config.routes[0].description == "API"

    def test_routes_from_environment_json(self, monkeypatch):
        monkeypatch.setenv("X402_PAY_TO_ADDRESS", RECIPIENT)
        monkeypatch.setenv("X402_ROUTES", '[{"path": "/api/weather", "price": "0.001", "methods": ["GET"]}]')

        config = X402Config.from_settings(Settings())

        assert config.routes[0].path == "/api/weather"
        assert config.routes[0].methods == ("GET",)

    def test_missing_recipient_in_settings(self):
        settings = Settings(X402_PAY_TO_ADDRESS=None, X402_PRICE_USD="0.01")

        with pytest.raises(ConfigurationError, match="recipient is required"):
            X402Config.from_settings(settings)

    def test_overrides_take_precedence(self):
        settings = Settings(X402_PAY_TO_ADDRESS=RECIPIENT, X402_PRICE_USD="0.01")
        on_error = MagicMock()

        config = X402Config.from_settings(settings, price="0.02", on_error=on_error)

        assert config.price == "0.02"
        assert config.on_error is on_error
