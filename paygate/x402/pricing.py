# paygate/x402/pricing.py
"""
Builds the payment requirements for a priced route.

The amount is always derived from the route's USD price with the exact
conversion in paygate.x402.codec, since it ends up in a signed, binding
authorization.
"""
from typing import Optional

from paygate.x402.codec import usd_to_base_units
from paygate.x402.config import RouteConfig
from paygate.x402.constants import EXACT_SCHEME
from paygate.x402.schemas import PaymentRequirements


def build_payment_requirements(
    network: str,
    asset: str,
    route: RouteConfig,
    resource: str,
    recipient: str,
    description: Optional[str] = None,
    mime_type: Optional[str] = None,
) -> PaymentRequirements:
    """
    Create PaymentRequirements for a protected request.

    Args:
        network: CAIP-2 network id
        asset: Token contract address
        route: The matched route (its price is in USD)
        resource: Path of the requested resource
        recipient: Address receiving the payment
        description: Fallback description when the route has none
        mime_type: Optional MIME type of the protected response

    Returns:
        PaymentRequirements for the 402 response and for validation
    """
    return PaymentRequirements(
        scheme=EXACT_SCHEME,
        network=network,
        asset=asset,
        max_amount_required=usd_to_base_units(route.price),
        pay_to=recipient,
        description=route.description or description,
        resource=resource,
        mime_type=mime_type,
    )
