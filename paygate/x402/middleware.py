# paygate/x402/middleware.py
"""
FastAPI middleware for x402 payment gating.

This module provides HTTP middleware that:
1. Matches requests against the configured price rules
2. Returns 402 Payment Required with the requirements when unpaid
3. Decodes and validates the X-PAYMENT header
4. Checks the payment against the requirement it claims to satisfy
5. Settles the payment via the facilitator
6. Lets the request through with an X-PAYMENT-RESPONSE header and a
   PaymentReceipt on ``request.state``

Each request walks these steps forward exactly once; nothing is retried.
"""
import inspect
import logging
import time
from typing import Any, Callable, Optional, Union

from fastapi import Request, Response
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from paygate.core.config import settings
from paygate.x402 import audit
from paygate.x402.codec import (
    decode_payment_payload,
    encode_payment_requirements,
    encode_settlement_response,
)
from paygate.x402.config import RouteConfig, X402Config
from paygate.x402.constants import (
    X402_VERSION,
    X_PAYMENT_HEADER,
    X_PAYMENT_REQUIRED_HEADER,
    X_PAYMENT_RESPONSE_HEADER,
)
from paygate.x402.exceptions import (
    DecodeError,
    PaymentProcessingError,
    RequirementMismatch,
    SettlementError,
    X402Error,
)
from paygate.x402.facilitator import FacilitatorClient
from paygate.x402.pricing import build_payment_requirements
from paygate.x402.routes import RouteResolver
from paygate.x402.schemas import PaymentPayload, PaymentReceipt, PaymentRequirements
from paygate.x402.validation import validate_payment

logger = logging.getLogger(__name__)

RECEIPT_STATE_KEY = "payment_receipt"


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, handling proxies."""
    # Check for forwarded headers first
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take the first IP in the chain
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"


def get_route_path(request: Request) -> str:
    """Request path relative to the mount point the middleware sits under."""
    path = request.scope.get("path", "/")
    root_path = request.scope.get("root_path", "")
    if root_path and path.startswith(root_path):
        return path[len(root_path):] or "/"
    return path


def get_payment_receipt(request: Request) -> Optional[PaymentReceipt]:
    """Receipt of the payment that unlocked this request, if any."""
    return getattr(request.state, RECEIPT_STATE_KEY, None)


def create_402_response(
    payment_requirements: PaymentRequirements,
    error: str = "Payment Required",
    message: str = "Payment required"
) -> JSONResponse:
    """
    Create an HTTP 402 Payment Required response.

    The requirements travel both in the body and base64 encoded in the
    X-PAYMENT-REQUIRED header, so a client can always retry with a payment.
    """
    response_body = {
        "x402Version": X402_VERSION,
        "error": error,
        "message": message,
        "accepts": [payment_requirements.to_wire()],
    }

    return JSONResponse(
        status_code=402,
        content=response_body,
        headers={X_PAYMENT_REQUIRED_HEADER: encode_payment_requirements([payment_requirements])},
    )


def create_500_response() -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Error",
            "message": "An error occurred while processing the payment",
        },
    )


async def invoke_callback(callback: Optional[Callable[..., Any]], argument: Any, name: str) -> None:
    """
    Run a user callback without letting it affect the response.

    Coroutine functions are awaited; plain callables run in the threadpool.
    """
    if callback is None:
        return
    try:
        if inspect.iscoroutinefunction(callback):
            await callback(argument)
        else:
            result = await run_in_threadpool(callback, argument)
            if inspect.isawaitable(result):
                await result
    except Exception:
        logger.exception(f"x402: {name} callback error")


class X402Middleware(BaseHTTPMiddleware):
    """
    x402 payment gate for FastAPI/Starlette applications.

    Requests that match no price rule pass through untouched. Protected
    requests must carry a valid, settled X-PAYMENT header to reach the
    endpoint; everything else gets a 402 (or a 500 for unexpected faults).

    Build the X402Config before adding the middleware so configuration errors
    surface at startup:

        config = X402Config(recipient="0x...", price="0.01")
        app.add_middleware(X402Middleware, config=config)
    """

    def __init__(
        self,
        app,
        config: Optional[X402Config] = None,
        facilitator_client: Optional[FacilitatorClient] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        super().__init__(app)
        self.config = config if config is not None else X402Config.from_settings(settings)
        self.resolver = RouteResolver(self.config)
        self._facilitator_client = facilitator_client
        self._clock = clock or time.time

    @property
    def facilitator_client(self) -> FacilitatorClient:
        """Lazy initialization of facilitator client."""
        if self._facilitator_client is None:
            self._facilitator_client = FacilitatorClient(self.config.facilitator)
        return self._facilitator_client

    async def dispatch(self, request: Request, call_next) -> Response:
        path = get_route_path(request)
        route = self.resolver.resolve(path, request.method)

        if route is None:
            return await call_next(request)

        client_ip = get_client_ip(request)
        logger.info(f"x402: Processing protected request from {client_ip}: {request.method} {path}")

        try:
            outcome = await self._process_payment(request, route, path, client_ip)
        except Exception as e:
            logger.exception(f"x402: Unexpected error processing payment for {request.method} {path}")
            audit.log_error(
                self.config.audit_log_path,
                client_ip=client_ip,
                error_type=type(e).__name__,
                error_message=str(e),
                context={"method": request.method, "path": path},
            )
            error = PaymentProcessingError(str(e) or "Unexpected error processing payment")
            error.__cause__ = e
            await invoke_callback(self.config.on_error, error, "onError")
            return create_500_response()

        if isinstance(outcome, Response):
            return outcome

        response = await call_next(request)
        response.headers[X_PAYMENT_RESPONSE_HEADER] = outcome
        return response

    async def _process_payment(
        self,
        request: Request,
        route: RouteConfig,
        path: str,
        client_ip: str,
    ) -> Union[Response, str]:
        """
        Take a protected request as far as it can go.

        Returns the 402 response that ends the request, or the encoded
        X-PAYMENT-RESPONSE value once the payment is settled.
        """
        config = self.config
        requirements = build_payment_requirements(
            network=config.network,
            asset=config.asset_address,
            route=route,
            resource=path,
            recipient=config.recipient,
            description=config.description,
            mime_type=config.mime_type,
        )

        payment_header = request.headers.get(X_PAYMENT_HEADER)
        if not payment_header:
            logger.info(f"x402: No X-PAYMENT header, returning 402 for ${route.price}")
            audit.log_payment_required_sent(
                config.audit_log_path,
                client_ip=client_ip,
                resource=path,
                amount=requirements.max_amount_required,
                network=requirements.network,
                pay_to=requirements.pay_to,
            )
            return create_402_response(
                requirements,
                error="Payment Required",
                message=f"This endpoint requires a payment of ${route.price} USD",
            )

        try:
            payload = decode_payment_payload(payment_header)
        except DecodeError as e:
            logger.warning(f"x402: Invalid X-PAYMENT header from {client_ip}: {e}")
            return await self._reject(
                requirements, e, client_ip,
                error="Invalid Payment",
                message=f"Invalid payment payload format: {e.message}",
                stage="decode",
            )

        payer = payload.authorization.from_
        audit.log_payment_received(
            config.audit_log_path,
            client_ip=client_ip,
            payer=payer,
            amount=payload.authorization.value,
            network=payload.network,
        )

        try:
            validate_payment(payload, requirements, now=int(self._clock()))
        except RequirementMismatch as e:
            logger.warning(f"x402: Payment from {payer} rejected: {e}")
            return await self._reject(
                requirements, e, client_ip,
                error="Invalid Payment",
                message=e.message,
                stage="validate",
                payer=payer,
            )

        if config.verify_before_settle:
            rejection = await self._verify(payload, requirements, client_ip, payer)
            if rejection is not None:
                return rejection

        try:
            settlement = await run_in_threadpool(self.facilitator_client.settle, payload, requirements)
        except SettlementError as e:
            logger.error(f"x402: Facilitator settlement failed for {payer}: {e}")
            return await self._reject(
                requirements, e, client_ip,
                error="Settlement Failed",
                message=e.message,
                stage="settle",
                payer=payer,
            )

        if not settlement.success:
            reason = settlement.error_reason or "Payment settlement failed"
            logger.warning(f"x402: Settlement declined for {payer}: {reason}")
            return await self._reject(
                requirements, SettlementError(reason), client_ip,
                error="Settlement Failed",
                message=settlement.error_reason or "Payment could not be settled on-chain",
                stage="settle",
                payer=payer,
            )

        receipt = self._build_receipt(settlement, payload, route, path)
        logger.info(
            f"x402: Payment settled: {receipt.payer} paid ${receipt.amount} "
            f"for {path} (tx {receipt.transaction_hash})"
        )
        audit.log_payment_settled(
            config.audit_log_path,
            client_ip=client_ip,
            payer=receipt.payer,
            transaction_hash=settlement.transaction,
            network=receipt.network,
            amount_usd=receipt.amount,
            resource=path,
        )

        setattr(request.state, RECEIPT_STATE_KEY, receipt)
        await invoke_callback(config.on_payment, receipt, "onPayment")

        return encode_settlement_response(settlement)

    async def _verify(
        self,
        payload: PaymentPayload,
        requirements: PaymentRequirements,
        client_ip: str,
        payer: str,
    ) -> Optional[Response]:
        """Ask the facilitator to verify before settling. Returns a 402 on rejection."""
        try:
            verification = await run_in_threadpool(self.facilitator_client.verify, payload, requirements)
        except SettlementError as e:
            logger.error(f"x402: Facilitator verification failed for {payer}: {e}")
            return await self._reject(
                requirements, e, client_ip,
                error="Settlement Failed",
                message=e.message,
                stage="verify",
                payer=payer,
            )

        audit.log_payment_verified(
            self.config.audit_log_path,
            client_ip=client_ip,
            payer=verification.payer or payer,
            is_valid=verification.is_valid,
            invalid_reason=verification.invalid_reason,
        )

        if not verification.is_valid:
            reason = verification.invalid_reason or "Unknown reason"
            logger.warning(f"x402: Payment verification failed for {payer}: {reason}")
            return await self._reject(
                requirements, RequirementMismatch(f"Payment verification failed: {reason}"), client_ip,
                error="Invalid Payment",
                message=f"Payment verification failed: {reason}",
                stage="verify",
                payer=payer,
            )

        logger.info(f"x402: Payment verified for payer {verification.payer or payer}")
        return None

    async def _reject(
        self,
        requirements: PaymentRequirements,
        failure: X402Error,
        client_ip: str,
        error: str,
        message: str,
        stage: str,
        payer: Optional[str] = None,
    ) -> JSONResponse:
        """End the request with a 402 after reporting ``failure``."""
        audit.log_payment_failed(
            self.config.audit_log_path,
            client_ip=client_ip,
            reason=failure.message,
            stage=stage,
            code=failure.code,
            wallet_address=payer,
        )
        await invoke_callback(self.config.on_error, failure, "onError")
        return create_402_response(requirements, error=error, message=message)

    def _build_receipt(self, settlement, payload: PaymentPayload, route: RouteConfig, path: str) -> PaymentReceipt:
        return PaymentReceipt(
            payer=settlement.payer or payload.authorization.from_,
            amount=route.price,
            transaction_hash=settlement.transaction or "",
            network=settlement.network or self.config.network,
            timestamp=settlement.timestamp or int(self._clock()),
            resource=path,
        )
