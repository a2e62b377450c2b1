# places_gateway/x402/types.py
"""
Wire models for the x402 "exact" scheme (protocol version 1).

The models come from the x402 SDK. The payment payload models are narrowed
here: integers must be plain ASCII digit strings, addresses and the nonce
must be well-formed hex, so a payload that decodes is safe to compare
against a requirement.
"""
import re
from typing import Any, Tuple

from pydantic import field_validator
from x402.common import x402_VERSION
from x402.types import (
    EIP3009Authorization,
    ExactPaymentPayload,
    PaymentPayload,
    PaymentRequirements,
    SettleResponse,
    VerifyResponse,
    x402PaymentRequiredResponse,
)

X402_VERSION = x402_VERSION
EXACT_SCHEME = "exact"

_DIGITS_RE = re.compile(r"[0-9]+")
_ADDRESS_RE = re.compile(r"0x[0-9a-fA-F]{40}")
_NONCE_RE = re.compile(r"0x[0-9a-fA-F]{64}")
_HEX_RE = re.compile(r"0x[0-9a-fA-F]+")

__all__ = [
    "X402_VERSION",
    "EXACT_SCHEME",
    "PaymentRequirement",
    "TransferAuthorization",
    "ExactPayload",
    "AuthorizationPayload",
    "VerifyResponse",
    "SettleResponse",
    "x402PaymentRequiredResponse",
]


def is_digit_string(value: Any) -> bool:
    """True for a non-empty string of ASCII digits only."""
    return isinstance(value, str) and _DIGITS_RE.fullmatch(value) is not None


class PaymentRequirement(PaymentRequirements):
    """One entry of the ``accepts`` array in a 402 challenge."""

    scheme: str = EXACT_SCHEME
    description: str = ""
    mime_type: str = "application/json"
    max_timeout_seconds: int = 300

    @field_validator("max_amount_required")
    @classmethod
    def amount_is_digit_string(cls, v: str) -> str:
        if not is_digit_string(v):
            raise ValueError("maxAmountRequired must be an integer string")
        return v


class TransferAuthorization(EIP3009Authorization):
    """ERC-3009 transferWithAuthorization parameters signed by the payer."""

    @field_validator("value", "valid_after", "valid_before", mode="before")
    @classmethod
    def integer_string(cls, v: Any) -> Any:
        # Payers send these as strings; accept JSON integers too.
        if isinstance(v, int) and not isinstance(v, bool):
            v = str(v)
        if not is_digit_string(v):
            raise ValueError("must be a non-negative integer string")
        return v

    @field_validator("from_", "to")
    @classmethod
    def evm_address(cls, v: str) -> str:
        if not _ADDRESS_RE.fullmatch(v):
            raise ValueError("must be a 0x-prefixed 20-byte hex address")
        return v

    @field_validator("nonce")
    @classmethod
    def bytes32_nonce(cls, v: str) -> str:
        if not _NONCE_RE.fullmatch(v):
            raise ValueError("must be a 0x-prefixed 32-byte hex string")
        return v.lower()


class ExactPayload(ExactPaymentPayload):
    authorization: TransferAuthorization

    @field_validator("signature")
    @classmethod
    def hex_signature(cls, v: str) -> str:
        if not _HEX_RE.fullmatch(v):
            raise ValueError("must be a 0x-prefixed hex string")
        return v


class AuthorizationPayload(PaymentPayload):
    """Decoded content of the X-Payment header."""

    payload: ExactPayload

    @property
    def authorization(self) -> TransferAuthorization:
        return self.payload.authorization

    @property
    def identity(self) -> Tuple[str, str, str]:
        """Replay key: the same payer cannot reuse a nonce on a network."""
        auth = self.payload.authorization
        return (self.network, auth.from_.lower(), auth.nonce)
