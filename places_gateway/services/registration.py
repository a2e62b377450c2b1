# places_gateway/services/registration.py
"""
Self-registration with the Stack vendor marketplace.

On startup the service checks whether the registry lists it (matched by URL)
and, if not, registers itself with a bounded number of attempts. Registration
is best effort: every failure is logged here and never reaches API callers or
stops the host process.

    UNREGISTERED -> VERIFYING -> REGISTERING(1..N) -> REGISTERED(vendor_id)
                                                  \\-> FAILED(reason)

Once REGISTERED, the service stays registered for the lifetime of the process
and later register() calls return immediately.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import requests
from requests.exceptions import RequestException
from starlette.concurrency import run_in_threadpool

from places_gateway.core.config import Settings
from places_gateway.core.errors import RegistrationFailure
from places_gateway.x402.networks import NetworkProfile
from places_gateway.x402.pricing import parse_usd_price
from places_gateway.x402.routes import PricedRoute

logger = logging.getLogger(__name__)

HEALTH_TIMEOUT_SECONDS = 5.0
REQUEST_TIMEOUT_SECONDS = 10.0
VENDOR_CATEGORY = "api"
VENDOR_TAGS = ["places", "search", "google", "location", "maps", "x402"]
ALREADY_REGISTERED_MARKER = "already registered"


def normalize_url(url: str) -> str:
    return url.rstrip("/")


def build_registration_payload(
    settings: Settings,
    profile: NetworkProfile,
    routes: List[PricedRoute],
) -> Dict[str, Any]:
    """
    Desired registry record for this vendor.

    The body is identical on every attempt, so a retry after a partial
    failure cannot create a second record.
    """
    return {
        "url": settings.self_url,
        "name": settings.PROJECT_NAME,
        "description": settings.SERVICE_DESCRIPTION,
        "category": VENDOR_CATEGORY,
        "tags": VENDOR_TAGS,
        "walletAddress": settings.PAYMENT_WALLET_ADDRESS,
        "network": profile.network.value,
        "priceUsd": str(parse_usd_price(settings.PAYMENT_PRICE_USD)),
        "facilitatorUrl": profile.facilitator.url,
        "endpoints": [
            {
                "path": route.path,
                "method": route.method,
                "description": route.description,
                "priceUsd": str(parse_usd_price(route.price_usd)),
                "inputSchema": route.input_schema,
                "outputSchema": route.output_schema,
            }
            for route in routes
        ],
    }


@dataclass
class RegistrationConfig:
    stack_url: str
    self_url: str
    payload: Dict[str, Any] = field(default_factory=dict)
    retry_attempts: int = 3
    retry_delay_seconds: float = 5.0
    disabled: bool = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        profile: NetworkProfile,
        routes: List[PricedRoute],
    ) -> "RegistrationConfig":
        return cls(
            stack_url=normalize_url(settings.STACK_URL),
            self_url=settings.self_url,
            payload=build_registration_payload(settings, profile, routes),
            retry_attempts=settings.STACK_REGISTRATION_RETRY_ATTEMPTS,
            retry_delay_seconds=settings.STACK_REGISTRATION_RETRY_DELAY_SECONDS,
            disabled=settings.DISABLE_STACK_REGISTRATION,
        )


class RegistrationStatus(str, Enum):
    UNREGISTERED = "unregistered"
    VERIFYING = "verifying"
    REGISTERING = "registering"
    REGISTERED = "registered"
    FAILED = "failed"


@dataclass
class RegistrationState:
    status: RegistrationStatus = RegistrationStatus.UNREGISTERED
    attempt: Optional[int] = None
    vendor_id: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "attempt": self.attempt,
            "vendorId": self.vendor_id,
            "reason": self.reason,
        }


@dataclass
class RegistrationResult:
    success: bool
    vendor_id: Optional[str] = None
    error: Optional[str] = None
    already_registered: bool = False

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": self.success, "alreadyRegistered": self.already_registered}
        if self.vendor_id is not None:
            body["vendorId"] = self.vendor_id
        if self.error is not None:
            body["error"] = self.error
        return body


@dataclass
class VerificationResult:
    registered: bool
    vendor_id: Optional[str] = None


class StackRegistrationService:
    """
    Drives this vendor towards a registered state in the Stack registry.

    Args:
        config: Registry location, desired record and retry policy
        sleep: Awaitable used between attempts (asyncio.sleep by default)
        session: Optional requests session
    """

    def __init__(
        self,
        config: RegistrationConfig,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        session: Optional[requests.Session] = None,
    ):
        self.config = config
        self._sleep = sleep
        self._session = session or requests.Session()
        self.state = RegistrationState()
        self.registered = False
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def _set_state(self, status: RegistrationStatus, **kwargs) -> None:
        self.state = RegistrationState(status=status, **kwargs)
        logger.debug(f"stack: state -> {self.state.to_dict()}")

    def _mark_registered(self, vendor_id: Optional[str]) -> None:
        self.registered = True
        self._set_state(RegistrationStatus.REGISTERED, vendor_id=vendor_id)

    async def check_remote_health(self) -> bool:
        """Probe the registry liveness endpoint with a fixed timeout."""
        health_url = f"{self.config.stack_url}/health"
        try:
            response = await run_in_threadpool(
                self._session.get, health_url, timeout=HEALTH_TIMEOUT_SECONDS
            )
        except RequestException as e:
            logger.warning(f"stack: health check failed ({health_url}): {e}")
            return False
        return response.ok

    async def lookup(self) -> VerificationResult:
        """
        Look this vendor up in the registry's vendor list by URL.

        URLs are compared without a trailing slash. An unreachable registry
        or unreadable list counts as not registered. No state is changed.
        """
        vendors_url = f"{self.config.stack_url}/api/vendors"
        try:
            response = await run_in_threadpool(
                self._session.get, vendors_url, timeout=REQUEST_TIMEOUT_SECONDS
            )
            if not response.ok:
                logger.warning(f"stack: vendor list returned HTTP {response.status_code}")
                return VerificationResult(registered=False)
            data = response.json()
        except (RequestException, ValueError) as e:
            logger.warning(f"stack: could not read vendor list ({vendors_url}): {e}")
            return VerificationResult(registered=False)

        vendors = data.get("vendors") if isinstance(data, dict) else None
        if not isinstance(vendors, list):
            vendors = []
        own_url = normalize_url(self.config.self_url)
        for vendor in vendors:
            url = vendor.get("url") if isinstance(vendor, dict) else None
            if isinstance(url, str) and normalize_url(url) == own_url:
                return VerificationResult(registered=True, vendor_id=vendor.get("id"))
        return VerificationResult(registered=False)

    async def verify(self) -> VerificationResult:
        """Like lookup(), but a match sets the sticky registered flag."""
        self._set_state(RegistrationStatus.VERIFYING)
        verification = await self.lookup()
        if verification.registered:
            self._mark_registered(verification.vendor_id)
        else:
            self._set_state(RegistrationStatus.UNREGISTERED)
        return verification

    def _attempt_registration(self) -> RegistrationResult:
        """
        Send one registration request.

        Raises:
            RegistrationFailure: If the registry could not be reached
        """
        register_url = f"{self.config.stack_url}/api/vendors/register"
        try:
            response = self._session.post(
                register_url, json=self.config.payload, timeout=REQUEST_TIMEOUT_SECONDS
            )
        except RequestException as e:
            raise RegistrationFailure(f"Registry unreachable: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        error = data.get("error")
        if response.status_code == 409 or (
            isinstance(error, str) and ALREADY_REGISTERED_MARKER in error.lower()
        ):
            return RegistrationResult(success=True, already_registered=True)

        if not response.ok or not data.get("success"):
            return RegistrationResult(success=False, error=error or f"HTTP {response.status_code}")

        vendor = data.get("vendor")
        vendor_id = vendor.get("id") if isinstance(vendor, dict) else None
        return RegistrationResult(success=True, vendor_id=vendor_id)

    async def register(self) -> RegistrationResult:
        """
        Register with up to ``retry_attempts`` attempts.

        An "already registered" answer is success. Exhausting all attempts
        returns a failed result; this method does not raise.
        """
        if self.registered:
            logger.info("stack: already registered, skipping")
            return RegistrationResult(
                success=True, vendor_id=self.state.vendor_id, already_registered=True
            )

        attempts = self.config.retry_attempts
        logger.info(f"stack: registering {self.config.self_url} with {self.config.stack_url}")

        for attempt in range(1, attempts + 1):
            self._set_state(RegistrationStatus.REGISTERING, attempt=attempt)
            try:
                result = await run_in_threadpool(self._attempt_registration)
            except RegistrationFailure as e:
                logger.warning(f"stack: registration attempt {attempt} error: {e}")
            else:
                if result.success:
                    self._mark_registered(result.vendor_id)
                    if result.already_registered:
                        logger.info("stack: vendor already registered")
                    else:
                        logger.info(f"stack: registered (vendor_id={result.vendor_id})")
                    return result
                logger.warning(f"stack: registration attempt {attempt} failed: {result.error}")

            if attempt < attempts:
                logger.info(f"stack: retrying in {self.config.retry_delay_seconds}s")
                await self._sleep(self.config.retry_delay_seconds)

        reason = f"Registration failed after {attempts} attempts"
        self._set_state(RegistrationStatus.FAILED, attempt=attempts, reason=reason)
        logger.error(f"stack: {reason}")
        return RegistrationResult(success=False, error=reason)

    async def run(self, ignore_disabled: bool = False) -> RegistrationResult:
        """
        Startup sequence: health probe, then verify, then register.

        Args:
            ignore_disabled: Run even if registration is disabled in config
                (manual trigger)

        Returns:
            The outcome. Failures are logged and returned, never raised.
        """
        if self.config.disabled and not ignore_disabled:
            logger.info("stack: auto-registration disabled via DISABLE_STACK_REGISTRATION")
            return RegistrationResult(success=False, error="Registration disabled")

        if self.registered:
            return await self.register()

        if self._running:
            logger.warning("stack: registration already in progress")
            return RegistrationResult(success=False, error="Registration already in progress")

        self._running = True
        try:
            logger.info(f"stack: checking registry availability at {self.config.stack_url}")
            if not await self.check_remote_health():
                reason = f"Registry not available at {self.config.stack_url}"
                self._set_state(RegistrationStatus.FAILED, reason=reason)
                logger.warning(f"stack: {reason}, registration skipped")
                return RegistrationResult(success=False, error=reason)

            verification = await self.verify()
            if verification.registered:
                logger.info(f"stack: already listed in registry (vendor_id={verification.vendor_id})")
                return RegistrationResult(
                    success=True, vendor_id=verification.vendor_id, already_registered=True
                )

            return await self.register()
        except Exception as e:
            failure = RegistrationFailure(f"Unexpected registration error: {e}")
            self._set_state(RegistrationStatus.FAILED, reason=str(failure))
            logger.error(f"stack: {failure}", exc_info=True)
            return RegistrationResult(success=False, error=str(failure))
        finally:
            self._running = False
