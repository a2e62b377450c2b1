# places_gateway/x402/signer.py
"""
Payer-side construction of x402 "exact" payments.

A payer answers a 402 challenge by signing an EIP-712
TransferWithAuthorization (ERC-3009) message for the stablecoin contract and
sending it, wrapped in an AuthorizationPayload, in the X-Payment header.

Typical use:

    account = Account.from_key(private_key)
    response = post_with_payment(url, {"query": "coffee"}, account)
"""
import logging
import secrets
import time
from typing import Any, Dict, Optional

import requests
from eth_account.messages import encode_typed_data
from x402.chains import get_chain_id

from places_gateway.x402.codec import encode_payment_header
from places_gateway.x402.networks import parse_network
from places_gateway.x402.types import (
    EXACT_SCHEME,
    X402_VERSION,
    AuthorizationPayload,
    ExactPayload,
    PaymentRequirement,
    TransferAuthorization,
    x402PaymentRequiredResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_NAME = "USD Coin"
DEFAULT_TOKEN_VERSION = "2"
VALID_AFTER_SKEW_SECONDS = 60  # tolerate clock skew between payer and chain
VALIDITY_SECONDS = 3600

EIP712_DOMAIN_TYPE = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

TRANSFER_WITH_AUTHORIZATION_TYPE = [
    {"name": "from", "type": "address"},
    {"name": "to", "type": "address"},
    {"name": "value", "type": "uint256"},
    {"name": "validAfter", "type": "uint256"},
    {"name": "validBefore", "type": "uint256"},
    {"name": "nonce", "type": "bytes32"},
]


def generate_nonce() -> bytes:
    """Fresh 32-byte authorization nonce."""
    return secrets.token_bytes(32)


def chain_id_for(network: str) -> int:
    """Chain id of a supported network."""
    return int(get_chain_id(parse_network(network).value))


def build_transfer_typed_data(
    requirement: PaymentRequirement,
    payer: str,
    chain_id: int,
    valid_after: int,
    valid_before: int,
    nonce: bytes,
) -> Dict[str, Any]:
    """
    Build the EIP-712 structured data for a TransferWithAuthorization.

    The domain name and version come from ``requirement.extra`` when the
    server provides them, otherwise the USDC defaults are used.
    """
    extra = requirement.extra or {}
    return {
        "types": {
            "EIP712Domain": EIP712_DOMAIN_TYPE,
            "TransferWithAuthorization": TRANSFER_WITH_AUTHORIZATION_TYPE,
        },
        "primaryType": "TransferWithAuthorization",
        "domain": {
            "name": extra.get("name") or DEFAULT_TOKEN_NAME,
            "version": extra.get("version") or DEFAULT_TOKEN_VERSION,
            "chainId": chain_id,
            "verifyingContract": requirement.asset,
        },
        "message": {
            "from": payer,
            "to": requirement.pay_to,
            "value": int(requirement.max_amount_required),
            "validAfter": valid_after,
            "validBefore": valid_before,
            "nonce": nonce,
        },
    }


def sign_authorization(
    account,
    requirement: PaymentRequirement,
    now: Optional[int] = None,
    nonce: Optional[bytes] = None,
) -> AuthorizationPayload:
    """
    Sign a payment that satisfies ``requirement``.

    Args:
        account: eth_account LocalAccount of the payer
        requirement: Requirement taken from the 402 challenge
        now: Current unix time (defaults to the system clock)
        nonce: 32-byte nonce (defaults to a fresh random one)

    Returns:
        AuthorizationPayload ready for encode_payment_header
    """
    now = int(time.time()) if now is None else now
    nonce = generate_nonce() if nonce is None else nonce
    if len(nonce) != 32:
        raise ValueError("nonce must be exactly 32 bytes")

    valid_after = now - VALID_AFTER_SKEW_SECONDS
    valid_before = now + VALIDITY_SECONDS

    typed_data = build_transfer_typed_data(
        requirement,
        payer=account.address,
        chain_id=chain_id_for(requirement.network),
        valid_after=valid_after,
        valid_before=valid_before,
        nonce=nonce,
    )
    signed = account.sign_message(encode_typed_data(full_message=typed_data))

    return AuthorizationPayload(
        x402_version=X402_VERSION,
        scheme=requirement.scheme,
        network=requirement.network,
        payload=ExactPayload(
            signature="0x" + bytes(signed.signature).hex(),
            authorization=TransferAuthorization(
                from_=account.address,
                to=requirement.pay_to,
                value=requirement.max_amount_required,
                valid_after=str(valid_after),
                valid_before=str(valid_before),
                nonce="0x" + nonce.hex(),
            ),
        ),
    )


def create_payment_header(account, requirement: PaymentRequirement, **kwargs) -> str:
    """Sign a payment for ``requirement`` and encode it for X-Payment."""
    return encode_payment_header(sign_authorization(account, requirement, **kwargs))


def select_requirement(challenge: Dict[str, Any], network: Optional[str] = None) -> PaymentRequirement:
    """
    Pick the requirement to pay from a 402 challenge body.

    Raises:
        ValueError: If no "exact" requirement (on ``network``, if given) is offered
    """
    body = x402PaymentRequiredResponse.model_validate(challenge)
    for offered in body.accepts:
        requirement = PaymentRequirement.model_validate(offered.model_dump())
        if requirement.scheme != EXACT_SCHEME:
            continue
        if network is not None and requirement.network != network:
            continue
        return requirement
    raise ValueError("No acceptable payment requirement in 402 response")


def post_with_payment(
    url: str,
    json_body: Dict[str, Any],
    account,
    session: Optional[requests.Session] = None,
    timeout: float = 30.0,
) -> requests.Response:
    """
    POST to a paid endpoint, answering a 402 challenge once.

    The first request is sent without payment. If the server answers 402,
    the first acceptable requirement is signed and the request is repeated
    with the X-Payment header. Any other answer is returned as is.
    """
    http = session or requests.Session()
    response = http.post(url, json=json_body, timeout=timeout)
    if response.status_code != 402:
        return response

    requirement = select_requirement(response.json())
    logger.info(
        f"Paying {requirement.max_amount_required} units on {requirement.network} to {requirement.pay_to}"
    )
    header = create_payment_header(account, requirement)
    return http.post(url, json=json_body, headers={"X-Payment": header}, timeout=timeout)
