# paygate/x402/schemas.py
"""
Pydantic records exchanged over the x402 headers and with the facilitator.

Attribute names are snake_case; the camelCase wire names are aliases, so
records accept either form on construction and always serialize with the
wire names via ``to_wire()``.
"""
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    """Base for records that cross the wire."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_wire(self) -> Dict[str, Any]:
        """Dump with wire names, leaving out optional fields that are unset."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PaymentRequirements(WireModel):
    """
    What a client must pay for a protected resource.

    Sent (as a one-element array) in the X-PAYMENT-REQUIRED header of every 402.
    """
    scheme: Literal["exact"] = Field("exact", description="Payment scheme (only 'exact').")
    network: str = Field(..., description="CAIP-2 network id, e.g. eip155:8453.")
    asset: str = Field(..., description="Token contract address.")
    max_amount_required: str = Field(..., alias="maxAmountRequired", description="Amount in token base units.")
    pay_to: str = Field(..., alias="payTo", description="Address receiving the payment.")
    description: Optional[str] = Field(None, description="Human-readable description of the resource.")
    resource: Optional[str] = Field(None, description="Path of the protected resource.")
    mime_type: Optional[str] = Field(None, alias="mimeType", description="MIME type of the response.")
    output_schema: Optional[Dict[str, Any]] = Field(None, alias="outputSchema", description="JSON schema of the response.")


class TransferAuthorization(WireModel):
    """EIP-3009 transferWithAuthorization parameters signed by the payer."""
    from_: str = Field(..., alias="from")
    to: str
    value: str
    valid_after: int = Field(..., alias="validAfter")
    valid_before: int = Field(..., alias="validBefore")
    nonce: str


class ExactPaymentData(WireModel):
    signature: str
    authorization: TransferAuthorization


class PaymentPayload(WireModel):
    """Payment sent by the client in the X-PAYMENT header."""
    x402_version: Literal["1", "2.0"] = Field(..., alias="x402Version")
    scheme: Literal["exact"] = "exact"
    network: str
    payload: ExactPaymentData

    @property
    def authorization(self) -> TransferAuthorization:
        return self.payload.authorization


class SettlementResponse(WireModel):
    """Outcome of a settlement attempt, echoed in X-PAYMENT-RESPONSE."""
    success: bool
    transaction: Optional[str] = Field(None, description="On-chain transaction hash.")
    # Facilitators omit network and payer on some declines; decoding accepts that
    network: str = ""
    payer: str = ""
    timestamp: Optional[int] = Field(None, description="Unix timestamp of settlement.")
    error_reason: Optional[str] = Field(None, alias="errorReason")


class VerificationResponse(WireModel):
    """Facilitator answer to /verify."""
    is_valid: bool = Field(..., alias="isValid")
    payer: Optional[str] = None
    invalid_reason: Optional[str] = Field(None, alias="invalidReason")


class SettlementStatus(WireModel):
    """Facilitator answer to /status/{transaction}."""
    confirmed: bool
    block_number: Optional[int] = Field(None, alias="blockNumber")
    timestamp: Optional[int] = None


class PaymentReceipt(WireModel):
    """
    Proof of a settled payment, attached to the request for downstream
    handlers and passed to ``on_payment``.
    """
    payer: str
    amount: str = Field(..., description="Amount paid in USD.")
    transaction_hash: str = Field(..., alias="transactionHash")
    network: str
    timestamp: int
    resource: str
