# places_gateway/x402/middleware.py
"""
FastAPI middleware for x402 payment verification.

Every request to a priced route walks a small per-request state machine:

    UNCHALLENGED -> CHALLENGED -> VERIFYING -> ADMITTED
                             \\-> REJECTED

1. Requests to unpriced routes pass through untouched
2. No X-Payment header: HTTP 402 with the payment requirements
3. Undecodable or mismatched X-Payment header: HTTP 400
4. Facilitator refuses the payment or cannot be reached: HTTP 402 again
5. Facilitator accepts: the route handler runs, the payment is settled and
   settlement metadata is appended to the JSON response

No state is shared between requests.
"""
import json
import logging
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from places_gateway.core.errors import FacilitatorUnavailable, PaymentRejected
from places_gateway.x402.codec import (
    check_against_requirement,
    decode_payment_header,
    encode_settlement_header,
)
from places_gateway.x402.facilitator import FacilitatorClient
from places_gateway.x402.networks import NetworkProfile
from places_gateway.x402.pricing import format_cost
from places_gateway.x402.requirements import DEFAULT_MAX_TIMEOUT_SECONDS, build_payment_requirement
from places_gateway.x402.routes import PricedRoute, find_route
from places_gateway.x402.types import X402_VERSION, PaymentRequirement, x402PaymentRequiredResponse

logger = logging.getLogger(__name__)

# x402 protocol constants
X_PAYMENT_HEADER = "X-Payment"
X_PAYMENT_RESPONSE_HEADER = "X-Payment-Response"
PROTOCOL_LABEL = "x402 v1.0"
PAYMENT_METHOD = "gasless_micropayment"
FACILITATOR_RETRY_AFTER_SECONDS = 5


class ChallengeState(str, Enum):
    UNCHALLENGED = "unchallenged"
    CHALLENGED = "challenged"
    VERIFYING = "verifying"
    ADMITTED = "admitted"
    REJECTED = "rejected"


def generate_request_id() -> str:
    """Generate a short request ID for tracking."""
    return str(uuid.uuid4())[:8]


def create_402_response(
    payment_requirement: PaymentRequirement,
    error_message: str = "Payment required",
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """
    Create an HTTP 402 Payment Required response.

    Args:
        payment_requirement: The payment requirement to include
        error_message: Error message for the response
        headers: Extra response headers (e.g. Retry-After)

    Returns:
        JSONResponse with 402 status and payment details
    """
    body = x402PaymentRequiredResponse(
        x402_version=X402_VERSION, accepts=[payment_requirement], error=error_message
    )
    return JSONResponse(
        status_code=402,
        content=body.model_dump(by_alias=True, exclude_none=True),
        headers=headers,
    )


def create_rejection_response(exc: PaymentRejected, payment_requirement: PaymentRequirement) -> JSONResponse:
    """
    Create the HTTP 400 response for a payment proof that cannot be accepted.

    The body carries the regular error fields plus the requirement the proof
    should have matched, so the payer can build a correct one.
    """
    content = exc.to_dict()
    content["x402Version"] = X402_VERSION
    content["accepts"] = [payment_requirement.model_dump(by_alias=True, exclude_none=True)]
    return JSONResponse(status_code=exc.status_code, content=content)


def build_settlement_metadata(
    route: PricedRoute,
    profile: NetworkProfile,
    request_id: str,
    started_at: float,
) -> Dict[str, Any]:
    """Payment metadata appended to a successful paid response."""
    return {
        "cost": format_cost(route.price_usd),
        "protocol": PROTOCOL_LABEL,
        "network": profile.network.value,
        "payment_method": PAYMENT_METHOD,
        "facilitator_used": True,
        "request_id": request_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "processing_time_ms": int((time.monotonic() - started_at) * 1000),
    }


def attach_metadata(body: Any, metadata: Dict[str, Any]) -> Any:
    """
    Add payment metadata to a decoded JSON body without touching handler fields.

    Only JSON objects are extended. If the handler already produced a
    ``metadata`` object, only the keys it does not have are added.
    """
    if not isinstance(body, dict):
        return body
    existing = body.get("metadata")
    if existing is None:
        return {**body, "metadata": metadata}
    if isinstance(existing, dict):
        merged = dict(metadata)
        merged.update(existing)
        return {**body, "metadata": merged}
    return body


class X402Middleware(BaseHTTPMiddleware):
    """
    x402 payment verification middleware for FastAPI.

    Args:
        app: The ASGI application
        routes: Priced route table; anything else is free
        profile: Resolved network profile
        pay_to: Address that receives payments
        facilitator_client: Client for the profile's facilitator
        max_timeout_seconds: maxTimeoutSeconds advertised to payers
    """

    def __init__(
        self,
        app,
        routes: List[PricedRoute],
        profile: NetworkProfile,
        pay_to: str,
        facilitator_client: FacilitatorClient,
        max_timeout_seconds: int = DEFAULT_MAX_TIMEOUT_SECONDS,
    ):
        super().__init__(app)
        self.routes = routes
        self.profile = profile
        self.pay_to = pay_to
        self.facilitator_client = facilitator_client
        self.max_timeout_seconds = max_timeout_seconds

    def _transition(self, request: Request, state: ChallengeState) -> None:
        previous = getattr(request.state, "x402_state", None)
        request.state.x402_state = state
        logger.debug(f"x402: {request.method} {request.url.path}: {previous} -> {state.value}")

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Response]
    ) -> Response:
        route = find_route(self.routes, request.method, request.url.path)
        if route is None:
            return await call_next(request)

        started_at = time.monotonic()
        request_id = generate_request_id()
        self._transition(request, ChallengeState.UNCHALLENGED)

        payment_requirement = build_payment_requirement(
            route=route,
            profile=self.profile,
            pay_to=self.pay_to,
            resource=str(request.url),
            max_timeout_seconds=self.max_timeout_seconds,
        )
        self._transition(request, ChallengeState.CHALLENGED)

        payment_header = request.headers.get(X_PAYMENT_HEADER)
        if not payment_header:
            logger.info(
                f"x402 [{request_id}]: No X-Payment header for {route.key}, "
                f"returning 402 for {payment_requirement.max_amount_required} units"
            )
            return create_402_response(payment_requirement, "X-PAYMENT header is required")

        logger.info(f"x402 [{request_id}]: X-Payment header received ({len(payment_header)} chars)")

        try:
            payment = decode_payment_header(payment_header)
            check_against_requirement(payment, payment_requirement)
        except PaymentRejected as e:
            self._transition(request, ChallengeState.REJECTED)
            logger.warning(f"x402 [{request_id}]: Payment rejected: {e.message} {e.details or ''}")
            return create_rejection_response(e, payment_requirement)

        self._transition(request, ChallengeState.VERIFYING)
        try:
            verify_response = await self.facilitator_client.verify(payment, payment_requirement)
        except FacilitatorUnavailable as e:
            self._transition(request, ChallengeState.REJECTED)
            logger.error(f"x402 [{request_id}]: Facilitator unavailable during verification: {e.message}")
            return create_402_response(
                payment_requirement,
                f"Facilitator unavailable: {e.message}",
                headers={"Retry-After": str(FACILITATOR_RETRY_AFTER_SECONDS)},
            )

        if not verify_response.is_valid:
            self._transition(request, ChallengeState.REJECTED)
            reason = verify_response.invalid_reason or "Unknown reason"
            logger.warning(f"x402 [{request_id}]: Payment verification failed: {reason}")
            return create_402_response(payment_requirement, f"Payment verification failed: {reason}")

        self._transition(request, ChallengeState.ADMITTED)
        request.state.x402_payer = verify_response.payer or payment.authorization.from_
        logger.info(f"x402 [{request_id}]: Payment verified for payer {request.state.x402_payer}")

        response = await call_next(request)

        # Only successful handler results are paid for
        if not 200 <= response.status_code < 300:
            logger.info(f"x402 [{request_id}]: Handler returned {response.status_code}, payment not settled")
            return response

        try:
            settle_response = await self.facilitator_client.settle(payment, payment_requirement)
        except FacilitatorUnavailable as e:
            self._transition(request, ChallengeState.REJECTED)
            logger.error(f"x402 [{request_id}]: Facilitator unavailable during settlement: {e.message}")
            return create_402_response(
                payment_requirement,
                f"Facilitator unavailable: {e.message}",
                headers={"Retry-After": str(FACILITATOR_RETRY_AFTER_SECONDS)},
            )

        if not settle_response.success:
            self._transition(request, ChallengeState.REJECTED)
            reason = settle_response.error_reason or "Unknown reason"
            logger.warning(f"x402 [{request_id}]: Payment settlement failed: {reason}")
            return create_402_response(payment_requirement, f"Payment settlement failed: {reason}")

        logger.info(f"x402 [{request_id}]: Payment settled (tx={settle_response.transaction})")

        return await self._with_settlement(
            response,
            encode_settlement_header(settle_response),
            build_settlement_metadata(route, self.profile, request_id, started_at),
        )

    async def _with_settlement(
        self,
        response: Response,
        settlement_header: str,
        metadata: Dict[str, Any],
    ) -> Response:
        """Rebuild the handler response with settlement header and metadata."""
        # We need to read the body and create a new response
        body = b""
        async for chunk in response.body_iterator:
            body += chunk

        headers = {
            key: value for key, value in response.headers.items()
            if key.lower() != "content-length"
        }
        headers[X_PAYMENT_RESPONSE_HEADER] = settlement_header

        if (response.media_type or headers.get("content-type", "")).startswith("application/json"):
            try:
                decoded = json.loads(body)
            except ValueError:
                decoded = None
            if decoded is not None:
                return JSONResponse(
                    content=attach_metadata(decoded, metadata),
                    status_code=response.status_code,
                    headers=headers,
                )

        return Response(
            content=body,
            status_code=response.status_code,
            headers=headers,
            media_type=response.media_type,
        )
