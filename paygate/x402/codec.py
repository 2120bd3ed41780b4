# paygate/x402/codec.py
"""
Encoding and decoding of the x402 header values.

Each header carries a record serialized as compact JSON and then base64
encoded. Encoding trusts its input. Decoding is where untrusted input enters
the pipeline, so every decoded value is checked field by field before a typed
record is built; the first offending field is reported.

Also home to the exact USD <-> base-unit conversions used to price
requirements.
"""
import base64
import binascii
import json
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Any, Dict, List, Sequence, Type, TypeVar, Union

from pydantic import ValidationError as PydanticValidationError

from paygate.x402.constants import EXACT_SCHEME, SUPPORTED_X402_VERSIONS, USDC_DECIMALS
from paygate.x402.exceptions import (
    InvalidPrice,
    MalformedHeaderError,
    UnsupportedScheme,
    UnsupportedVersion,
    ValidationError,
)
from paygate.x402.schemas import (
    PaymentPayload,
    PaymentRequirements,
    SettlementResponse,
    WireModel,
)

Record = TypeVar("Record", bound=WireModel)

ADDRESS_PATTERN = re.compile(r"0x[a-fA-F0-9]{40}")
# uint256 fits in 78 decimal digits
MAX_UINT_DIGITS = 78
MAX_UINT = 2 ** 256 - 1
AMOUNT_PATTERN = re.compile(r"[0-9]{1,%d}" % MAX_UINT_DIGITS)
SIGNATURE_PATTERN = re.compile(r"0x[a-fA-F0-9]{130}")  # 65 bytes
NONCE_PATTERN = re.compile(r"0x[a-fA-F0-9]{64}")  # 32 bytes
PRICE_PATTERN = re.compile(r"[0-9]+(?:\.[0-9]*)?|\.[0-9]+")


def is_valid_address(value: Any) -> bool:
    return isinstance(value, str) and ADDRESS_PATTERN.fullmatch(value) is not None


def is_valid_amount(value: Any) -> bool:
    return isinstance(value, str) and AMOUNT_PATTERN.fullmatch(value) is not None


def is_valid_signature(value: Any) -> bool:
    return isinstance(value, str) and SIGNATURE_PATTERN.fullmatch(value) is not None


def is_valid_nonce(value: Any) -> bool:
    return isinstance(value, str) and NONCE_PATTERN.fullmatch(value) is not None


def _is_unsigned_int(value: Any) -> bool:
    # Clients send validAfter/validBefore either as JSON numbers or as strings
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return 0 <= value <= MAX_UINT
    return is_valid_amount(value)


# --- Wire helpers ---

def _to_wire(record: Union[WireModel, Dict[str, Any]]) -> Dict[str, Any]:
    return record.to_wire() if isinstance(record, WireModel) else record


def _encode(data: Any) -> str:
    text = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def _decode(encoded: str, what: str) -> Any:
    if not isinstance(encoded, str) or not encoded.strip():
        raise MalformedHeaderError(f"Empty or missing {what}")
    try:
        raw = base64.b64decode(encoded.strip(), validate=True)
        return json.loads(raw.decode("utf-8"))
    except (binascii.Error, ValueError) as e:
        # JSONDecodeError and UnicodeDecodeError are both ValueErrors
        raise MalformedHeaderError(f"Invalid Base64 or JSON in {what}") from e
    except RecursionError as e:
        raise MalformedHeaderError(f"JSON nested too deeply in {what}") from e


def _build(model: Type[Record], data: Any) -> Record:
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = str(first["loc"][-1]) if first.get("loc") else None
        raise ValidationError(f"Invalid {field or model.__name__}", field=field) from e


# --- Validation ---

def _check_optional(obj: Dict[str, Any], key: str, expected: type) -> None:
    value = obj.get(key)
    if value is not None and not isinstance(value, expected):
        raise ValidationError(f"Invalid {key}", field=key)


def validate_payment_requirement(obj: Any) -> None:
    """Check a decoded requirement object. Raises ValidationError."""
    if not isinstance(obj, dict):
        raise ValidationError("Payment requirement must be an object")

    if obj.get("scheme") != EXACT_SCHEME:
        raise UnsupportedScheme()

    network = obj.get("network")
    if not isinstance(network, str) or not network:
        raise ValidationError("Invalid or missing network", field="network")

    if not is_valid_address(obj.get("asset")):
        raise ValidationError("Invalid or missing asset address", field="asset")

    if not is_valid_amount(obj.get("maxAmountRequired")):
        raise ValidationError("Invalid or missing maxAmountRequired", field="maxAmountRequired")

    if not is_valid_address(obj.get("payTo")):
        raise ValidationError("Invalid or missing payTo address", field="payTo")

    for key in ("description", "resource", "mimeType"):
        _check_optional(obj, key, str)
    _check_optional(obj, "outputSchema", dict)


def validate_authorization(obj: Any) -> None:
    if not isinstance(obj, dict):
        raise ValidationError("Authorization must be an object", field="authorization")

    if not is_valid_address(obj.get("from")):
        raise ValidationError("Invalid or missing from address", field="from")

    if not is_valid_address(obj.get("to")):
        raise ValidationError("Invalid or missing to address", field="to")

    if not is_valid_amount(obj.get("value")):
        raise ValidationError("Invalid or missing value", field="value")

    if not _is_unsigned_int(obj.get("validAfter")):
        raise ValidationError("Invalid or missing validAfter", field="validAfter")

    if not _is_unsigned_int(obj.get("validBefore")):
        raise ValidationError("Invalid or missing validBefore", field="validBefore")

    if not is_valid_nonce(obj.get("nonce")):
        raise ValidationError("Invalid or missing nonce", field="nonce")


def validate_payment_payload(obj: Any) -> None:
    """Check a decoded payment payload object. Raises ValidationError."""
    if not isinstance(obj, dict):
        raise ValidationError("Payment payload must be an object")

    version = obj.get("x402Version")
    if not isinstance(version, str) or version not in SUPPORTED_X402_VERSIONS:
        raise UnsupportedVersion()

    if obj.get("scheme") != EXACT_SCHEME:
        raise UnsupportedScheme()

    network = obj.get("network")
    if not isinstance(network, str) or not network:
        raise ValidationError("Invalid or missing network", field="network")

    inner = obj.get("payload")
    if not isinstance(inner, dict):
        raise ValidationError("Invalid or missing payload object", field="payload")

    if not is_valid_signature(inner.get("signature")):
        raise ValidationError("Invalid or missing signature", field="signature")

    if not isinstance(inner.get("authorization"), dict):
        raise ValidationError("Invalid or missing authorization", field="authorization")

    validate_authorization(inner["authorization"])


def validate_settlement_response(obj: Any) -> None:
    if not isinstance(obj, dict):
        raise ValidationError("Settlement response must be an object")

    if not isinstance(obj.get("success"), bool):
        raise ValidationError("Invalid or missing success flag", field="success")

    for key in ("transaction", "network", "payer", "errorReason"):
        _check_optional(obj, key, str)

    timestamp = obj.get("timestamp")
    if timestamp is not None and not _is_unsigned_int(timestamp):
        raise ValidationError("Invalid timestamp", field="timestamp")


# --- Payment requirements (X-PAYMENT-REQUIRED) ---

def encode_payment_requirements(requirements: Sequence[PaymentRequirements]) -> str:
    """Encode requirements for the X-PAYMENT-REQUIRED header."""
    return _encode([_to_wire(r) for r in requirements])


def decode_payment_requirements(encoded: str) -> List[PaymentRequirements]:
    """
    Decode an X-PAYMENT-REQUIRED value.

    Raises:
        MalformedHeaderError: not base64 encoded JSON
        ValidationError: not an array of valid requirements
    """
    parsed = _decode(encoded, "payment requirements")
    if not isinstance(parsed, list):
        raise ValidationError("Payment requirements must be an array")

    for item in parsed:
        validate_payment_requirement(item)

    return [_build(PaymentRequirements, item) for item in parsed]


# --- Payment payload (X-PAYMENT) ---

def encode_payment_payload(payload: PaymentPayload) -> str:
    """Encode a payment payload for the X-PAYMENT header."""
    return _encode(_to_wire(payload))


def decode_payment_payload(encoded: str) -> PaymentPayload:
    """
    Decode an X-PAYMENT value.

    Raises:
        MalformedHeaderError: not base64 encoded JSON
        ValidationError: the payload fails schema validation
    """
    parsed = _decode(encoded, "payment payload")
    validate_payment_payload(parsed)
    return _build(PaymentPayload, parsed)


# --- Settlement response (X-PAYMENT-RESPONSE) ---

def encode_settlement_response(response: SettlementResponse) -> str:
    """Encode a settlement result for the X-PAYMENT-RESPONSE header."""
    return _encode(_to_wire(response))


def decode_settlement_response(encoded: str) -> SettlementResponse:
    parsed = _decode(encoded, "settlement response")
    validate_settlement_response(parsed)
    return _build(
        SettlementResponse,
        {key: value for key, value in parsed.items() if value is not None},
    )


# --- Amount conversion ---

def usd_to_base_units(usd_price: str, decimals: int = USDC_DECIMALS) -> str:
    """
    Convert a USD price string to token base units.

    Uses exact decimal arithmetic; fractions of a base unit are rounded half
    away from zero.

        >>> usd_to_base_units("0.01")
        '10000'

    Raises:
        InvalidPrice: the price is not a non-negative decimal number
    """
    text = usd_price.strip() if isinstance(usd_price, str) else ""
    if not PRICE_PATTERN.fullmatch(text):
        raise InvalidPrice(f"Invalid USD price: {usd_price}")

    try:
        with localcontext() as ctx:
            ctx.prec = len(text) + decimals + 1
            units = Decimal(text).scaleb(decimals).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    except InvalidOperation as e:
        raise InvalidPrice(f"Invalid USD price: {usd_price}") from e

    return format(units, "f")


def base_units_to_usd(base_units: str, decimals: int = USDC_DECIMALS) -> str:
    """
    Convert token base units to a USD string.

    The fraction keeps every significant digit but never fewer than two
    places: "1" -> "0.000001", "1500000" -> "1.50", "100000000" -> "100.00".
    """
    if not is_valid_amount(base_units):
        raise InvalidPrice(f"Invalid base units: {base_units}")

    whole, fraction = divmod(int(base_units), 10 ** decimals)
    fraction_str = str(fraction).zfill(decimals)

    trimmed = fraction_str.rstrip("0")
    if len(trimmed) < 2:
        trimmed = fraction_str[:2].ljust(2, "0")

    return f"{whole}.{trimmed}"
