# places_gateway/x402/facilitator.py
"""
Client for an x402 facilitator.

The facilitator is an external service that checks a signed authorization
and executes the transfer. It is consulted through two calls:

    POST {url}/verify  {x402Version, paymentPayload, paymentRequirements}
        -> {isValid, invalidReason?, payer?}
    POST {url}/settle  {x402Version, paymentPayload, paymentRequirements}
        -> {success, errorReason?, transaction?, network?, payer?}

The calls are made by the x402 SDK client. Transport errors and bodies that
are not a readable verdict (error pages, gateway timeouts) mean the
facilitator is unavailable (FacilitatorUnavailable). Any readable verdict is
returned to the caller as a verdict.
"""
import logging
from typing import Awaitable, Callable, Dict, Optional

import httpx
from x402.facilitator import FacilitatorClient as SDKFacilitatorClient
from x402.facilitator import FacilitatorConfig

from places_gateway.core.errors import ConfigurationError, FacilitatorUnavailable
from places_gateway.x402.networks import FacilitatorBinding
from places_gateway.x402.types import (
    AuthorizationPayload,
    PaymentRequirement,
    SettleResponse,
    VerifyResponse,
)

logger = logging.getLogger(__name__)

CreateHeaders = Callable[[], Awaitable[Dict[str, Dict[str, str]]]]


class FacilitatorClient:
    """
    Verifies and settles payments against one facilitator binding.

    Args:
        binding: Resolved facilitator binding from the network profile
        create_headers: Optional coroutine function returning extra headers
            per call, keyed by operation ("verify", "settle"), e.g.
            authentication for the hosted facilitator
    """

    def __init__(self, binding: FacilitatorBinding, create_headers: Optional[CreateHeaders] = None):
        self.binding = binding
        self.create_headers = create_headers
        config = FacilitatorConfig(url=binding.url)
        if create_headers is not None:
            config["create_headers"] = create_headers
        try:
            self._client = SDKFacilitatorClient(config)
        except ValueError as e:
            raise ConfigurationError(f"Invalid facilitator URL: {binding.url}") from e

    @property
    def base_url(self) -> str:
        return self.binding.url

    async def verify(self, payment: AuthorizationPayload, payment_requirements: PaymentRequirement) -> VerifyResponse:
        """
        Ask the facilitator whether a payment is valid for the requirements.

        Raises:
            FacilitatorUnavailable: If no verdict could be obtained
        """
        try:
            return await self._client.verify(payment, payment_requirements)
        except httpx.HTTPError as e:
            logger.error(f"Facilitator verify request failed ({self.base_url}): {e}")
            raise FacilitatorUnavailable(f"Facilitator unreachable: {e}") from e
        except ValueError as e:
            # Undecodable JSON or a body that is not a verdict
            logger.error(f"Unreadable facilitator verify response ({self.base_url}): {e}")
            raise FacilitatorUnavailable("Facilitator returned an unreadable verify response") from e

    async def settle(self, payment: AuthorizationPayload, payment_requirements: PaymentRequirement) -> SettleResponse:
        """
        Ask the facilitator to execute a verified payment.

        Raises:
            FacilitatorUnavailable: If no settlement answer could be obtained
        """
        try:
            return await self._client.settle(payment, payment_requirements)
        except httpx.HTTPError as e:
            logger.error(f"Facilitator settle request failed ({self.base_url}): {e}")
            raise FacilitatorUnavailable(f"Facilitator unreachable: {e}") from e
        except ValueError as e:
            logger.error(f"Unreadable facilitator settle response ({self.base_url}): {e}")
            raise FacilitatorUnavailable("Facilitator returned an unreadable settle response") from e


def create_facilitator_client(
    binding: FacilitatorBinding,
    api_key_id: Optional[str] = None,
    api_key_secret: Optional[str] = None,
) -> FacilitatorClient:
    """
    Build the client for a facilitator binding.

    The hosted CDP facilitator authenticates every call with a short-lived
    JWT; its header factory comes from cdp-sdk. URL-addressed facilitators
    are called without authentication.

    Raises:
        ConfigurationError: If the trusted binding has no API credentials
    """
    if not binding.is_trusted:
        return FacilitatorClient(binding)

    if not api_key_id or not api_key_secret:
        raise ConfigurationError("CDP_API_KEY_ID and CDP_API_KEY_SECRET are required for the CDP facilitator")

    from cdp.x402 import create_facilitator_config

    config = create_facilitator_config(api_key_id=api_key_id, api_key_secret=api_key_secret)
    logger.info("CDP facilitator authentication configured")
    return FacilitatorClient(binding, create_headers=config.get("create_headers"))
