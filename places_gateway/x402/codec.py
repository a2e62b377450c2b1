# places_gateway/x402/codec.py
"""
Encoding and decoding of the X-Payment and X-Payment-Response headers.

X-Payment carries base64(JSON(AuthorizationPayload)). Anything that cannot be
decoded into a complete payload, or that does not match the requirement it is
answering, is rejected with HTTP 400: the payer tried and got it wrong.
"""
import json
import logging
import time
from typing import Optional

from pydantic import ValidationError as PydanticValidationError
from x402.encoding import safe_base64_decode, safe_base64_encode

from places_gateway.core.errors import PaymentRejected
from places_gateway.x402.types import (
    X402_VERSION,
    AuthorizationPayload,
    PaymentRequirement,
    SettleResponse,
)

logger = logging.getLogger(__name__)


def encode_payment_header(payload: AuthorizationPayload) -> str:
    """Encode a payment payload for the X-Payment header."""
    payload_json = json.dumps(payload.model_dump(by_alias=True), separators=(",", ":"))
    return safe_base64_encode(payload_json.encode("utf-8"))


def decode_payment_header(header_value: str) -> AuthorizationPayload:
    """
    Decode the X-Payment header into an AuthorizationPayload.

    Args:
        header_value: Base64-encoded payment payload

    Returns:
        The decoded payload

    Raises:
        PaymentRejected: If the header is not base64, not JSON, or is
            missing required fields
    """
    try:
        decoded_str = safe_base64_decode(header_value.strip())
    except ValueError as e:
        logger.warning(f"Failed to decode X-Payment header: invalid base64 ({e})")
        raise PaymentRejected("Invalid X-Payment header format: not valid base64") from e

    try:
        payload_dict = json.loads(decoded_str)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse X-Payment header JSON: {e}")
        raise PaymentRejected("Invalid X-Payment header format: not valid JSON") from e

    if not isinstance(payload_dict, dict):
        raise PaymentRejected("Invalid X-Payment header format: expected a JSON object")

    try:
        return AuthorizationPayload.model_validate(payload_dict)
    except PydanticValidationError as e:
        fields = sorted({".".join(str(part) for part in err["loc"]) for err in e.errors()})
        logger.warning(f"X-Payment header has invalid or missing fields: {fields}")
        raise PaymentRejected(
            "Invalid X-Payment header format: missing or invalid fields",
            details={"fields": fields},
        ) from e


def check_against_requirement(
    payment: AuthorizationPayload,
    requirement: PaymentRequirement,
    now: Optional[int] = None,
) -> None:
    """
    Check a decoded payment against the requirement of the requested route.

    Raises:
        PaymentRejected: On any mismatch of version, scheme, network,
            recipient or amount, or an unusable validity window
    """
    auth = payment.authorization

    def reject(field: str, message: str, expected=None, received=None):
        details = {"field": field}
        if expected is not None:
            details["expected"] = expected
            details["received"] = received
        raise PaymentRejected(message, details=details)

    if payment.x402_version != X402_VERSION:
        reject("x402Version", f"Unsupported x402Version {payment.x402_version}", X402_VERSION, payment.x402_version)

    if payment.scheme != requirement.scheme:
        reject("scheme", "Payment scheme does not match the requirement", requirement.scheme, payment.scheme)

    if payment.network != requirement.network:
        reject("network", "Payment network does not match the requirement", requirement.network, payment.network)

    if auth.to.lower() != requirement.pay_to.lower():
        reject("to", "Payment recipient does not match payTo", requirement.pay_to, auth.to)

    # Exact scheme: the signed value must equal the price of this route.
    if int(auth.value) != int(requirement.max_amount_required):
        reject("value", "Payment value does not match maxAmountRequired", requirement.max_amount_required, auth.value)

    valid_after = int(auth.valid_after)
    valid_before = int(auth.valid_before)
    if valid_after >= valid_before:
        reject("validBefore", "Authorization validity window is empty (validAfter >= validBefore)")

    now = int(time.time()) if now is None else now
    if valid_before <= now:
        reject("validBefore", "Authorization has expired")


def encode_settlement_header(settle_result: SettleResponse) -> str:
    """
    Encode a settlement response for the X-Payment-Response header.

    Args:
        settle_result: The settlement response from the facilitator

    Returns:
        Base64-encoded JSON string
    """
    response_dict = settle_result.model_dump(by_alias=True)
    response_json = json.dumps(response_dict)
    return safe_base64_encode(response_json.encode("utf-8"))


def decode_settlement_header(header_value: str) -> SettleResponse:
    """Decode an X-Payment-Response header (used by paying clients)."""
    return SettleResponse.model_validate(json.loads(safe_base64_decode(header_value)))
