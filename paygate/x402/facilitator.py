# paygate/x402/facilitator.py
"""
HTTP client for an x402 facilitator.

The facilitator verifies payment authorizations and settles them on-chain.
Every failure to get a usable answer from it (timeout, connection error,
non-2xx status, body that is not the expected JSON) is raised as a
FacilitatorError so the middleware can treat them all as a failed settlement.
"""
import logging
from typing import Any, Dict, Optional, Type, TypeVar

import requests
from pydantic import ValidationError as PydanticValidationError
from requests.exceptions import RequestException, Timeout

from paygate.x402.config import FacilitatorConfig
from paygate.x402.constants import DEFAULT_FACILITATOR_URL, X402_VERSION
from paygate.x402.exceptions import FacilitatorError
from paygate.x402.schemas import (
    PaymentPayload,
    PaymentRequirements,
    SettlementResponse,
    SettlementStatus,
    VerificationResponse,
    WireModel,
)

logger = logging.getLogger(__name__)

ResponseModel = TypeVar("ResponseModel", bound=WireModel)


class FacilitatorClient:
    """
    Client for the facilitator's /verify, /settle and /status endpoints.

    Calls are synchronous and bounded by ``config.timeout``; the middleware
    runs them in a worker thread.
    """

    def __init__(self, config: Optional[FacilitatorConfig] = None, session: Optional[requests.Session] = None):
        self.config = config or FacilitatorConfig()
        self.base_url = self.config.url.rstrip("/")
        self.session = session or requests.Session()

    def verify(self, payload: PaymentPayload, requirements: PaymentRequirements) -> VerificationResponse:
        """Check a payment's signature and authorization without settling it."""
        return self._request(
            "/verify",
            VerificationResponse,
            body=self._payment_body(payload, requirements),
        )

    def settle(self, payload: PaymentPayload, requirements: PaymentRequirements) -> SettlementResponse:
        """Verify and settle a payment on-chain."""
        return self._request(
            "/settle",
            SettlementResponse,
            body=self._payment_body(payload, requirements),
        )

    def get_status(self, transaction_hash: str) -> SettlementStatus:
        """Look up the confirmation status of a settlement transaction."""
        return self._request(f"/status/{transaction_hash}", SettlementStatus, method="GET")

    @staticmethod
    def _payment_body(payload: PaymentPayload, requirements: PaymentRequirements) -> Dict[str, Any]:
        return {
            "x402Version": X402_VERSION,
            "paymentPayload": payload.to_wire(),
            "paymentRequirements": requirements.to_wire(),
        }

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def _request(
        self,
        endpoint: str,
        model: Type[ResponseModel],
        body: Optional[Dict[str, Any]] = None,
        method: str = "POST",
    ) -> ResponseModel:
        url = f"{self.base_url}{endpoint}"

        try:
            response = self.session.request(
                method,
                url,
                json=body,
                headers=self._headers(),
                timeout=self.config.timeout,
            )
        except Timeout as e:
            logger.error(f"Facilitator request to {url} timed out after {self.config.timeout}s")
            raise FacilitatorError("Request timeout", 408, "Request timed out") from e
        except RequestException as e:
            logger.error(f"Network error calling facilitator ({url}): {e}")
            raise FacilitatorError(f"Network error: {e}", 0, str(e)) from e

        if not response.ok:
            logger.error(f"Facilitator request failed ({url}): {response.status_code} {response.text}")
            raise FacilitatorError(
                f"Facilitator request failed: {response.status_code} {response.reason}",
                response.status_code,
                response.text,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise FacilitatorError(
                f"Malformed facilitator response from {endpoint}: not JSON",
                response.status_code,
                response.text,
            ) from e

        if not isinstance(data, dict):
            raise FacilitatorError(
                f"Malformed facilitator response from {endpoint}: expected an object",
                response.status_code,
                response.text,
            )

        try:
            return model.model_validate({key: value for key, value in data.items() if value is not None})
        except PydanticValidationError as e:
            raise FacilitatorError(
                f"Malformed facilitator response from {endpoint}: {e.errors()[0].get('msg')}",
                response.status_code,
                response.text,
            ) from e


def create_coinbase_facilitator() -> FacilitatorClient:
    """Client for the public facilitator at x402.org."""
    return FacilitatorClient(FacilitatorConfig(url=DEFAULT_FACILITATOR_URL))


def create_facilitator(config: FacilitatorConfig) -> FacilitatorClient:
    return FacilitatorClient(config)
