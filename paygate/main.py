# paygate/main.py
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from paygate.core.config import settings
from paygate.x402.audit import AuditEventType, get_audit_stats, read_audit_log
from paygate.x402.config import X402Config
from paygate.x402.facilitator import FacilitatorClient
from paygate.x402.middleware import X402Middleware, get_payment_receipt
import logging

# Configure basic logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def create_app(
    config: Optional[X402Config] = None,
    facilitator_client: Optional[FacilitatorClient] = None,
    expose_audit: Optional[bool] = None,
) -> FastAPI:
    """
    Build the gateway application.

    The payment middleware is installed when a config is passed or when
    X402_ENABLED is set, in which case the config is read from the
    environment. Configuration errors are raised here, before serving.

    The audit log is served read-only at /payment/audit when ``expose_audit``
    (default X402_AUDIT_API_ENABLED) is set and an audit log path is configured.
    """
    app = FastAPI(title=settings.PROJECT_NAME)

    if config is None and settings.X402_ENABLED:
        config = X402Config.from_settings(settings)

    if config is not None:
        app.add_middleware(X402Middleware, config=config, facilitator_client=facilitator_client)
        logger.info("x402 payment middleware enabled")
    else:
        logger.info("x402 payment middleware disabled")

    @app.get("/", summary="Health Check", tags=["default"])
    def read_root():
        """ Basic health check endpoint. """
        logger.info("Root endpoint '/' accessed.")
        return {"status": "ok", "message": f"Welcome to {settings.PROJECT_NAME}"}

    @app.get("/payment/receipt", summary="Current payment receipt", tags=["x402"])
    def read_receipt(request: Request):
        """ Echo the receipt of the payment that unlocked this request, if any. """
        receipt = get_payment_receipt(request)
        return {"receipt": receipt.to_wire() if receipt else None}

    if expose_audit is None:
        expose_audit = settings.X402_AUDIT_API_ENABLED
    audit_log_path = config.audit_log_path if config is not None else None

    if expose_audit and audit_log_path:
        @app.get("/payment/audit", summary="Payment audit log", tags=["x402"])
        def read_audit(
            limit: int = Query(100, ge=1, le=1000),
            event_type: Optional[str] = None,
            wallet: Optional[str] = None,
        ):
            """ Most recent audit events first, with counts over the whole log. """
            try:
                event_filter = AuditEventType(event_type) if event_type else None
            except ValueError:
                raise HTTPException(status_code=400, detail=f"Unknown event type: {event_type}")
            return {
                "events": read_audit_log(
                    audit_log_path, max_entries=limit, event_type=event_filter, wallet_address=wallet
                ),
                "stats": get_audit_stats(audit_log_path),
            }
        logger.info(f"x402 audit log served at /payment/audit ({audit_log_path})")

    return app


def get_app() -> FastAPI:
    """Factory entry point: uvicorn paygate.main:get_app --factory"""
    return create_app()
