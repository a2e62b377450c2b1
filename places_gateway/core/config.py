# places_gateway/core/config.py
import re
from decimal import Decimal
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import AnyHttpUrl  # AnyHttpUrl stays in pydantic core
from pydantic_settings import BaseSettings

from places_gateway.core.errors import ConfigurationError
from places_gateway.x402.networks import resolve
from places_gateway.x402.pricing import parse_usd_price, usd_to_minor_units

# Load .env file if it exists
load_dotenv()

EVM_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


class Settings(BaseSettings):
    PROJECT_NAME: str = "Places"
    SERVICE_VERSION: str = "2.0.0"
    SERVICE_DESCRIPTION: str = (
        "Google Places API Wrapper with X402 gasless micropayments for "
        "comprehensive location search and business discovery"
    )
    PORT: int = 3000

    # Search provider
    GOOGLE_PLACES_API_KEY: Optional[str] = None
    GOOGLE_PLACES_API_URL: AnyHttpUrl = "https://maps.googleapis.com/maps/api/place/textsearch/json"
    GOOGLE_PLACES_TIMEOUT_SECONDS: float = 10.0

    # x402 payment settings
    PAYMENT_WALLET_ADDRESS: Optional[str] = None
    NETWORK: str = "base"
    FACILITATOR_URL: Optional[str] = "https://x402.org/facilitator"
    PAYMENT_PRICE_USD: str = "0.01"
    X402_MAX_TIMEOUT_SECONDS: int = 300

    # CDP API key for the hosted facilitator (NETWORK=base)
    CDP_API_KEY_ID: Optional[str] = None
    CDP_API_KEY_SECRET: Optional[str] = None

    # Stack marketplace registration
    STACK_URL: str = "http://localhost:3005"
    SELF_URL: Optional[str] = None
    DISABLE_STACK_REGISTRATION: bool = False
    STACK_REGISTRATION_RETRY_ATTEMPTS: int = 3
    STACK_REGISTRATION_RETRY_DELAY_SECONDS: float = 5.0

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields from .env

    @property
    def self_url(self) -> str:
        """Externally reachable URL of this service, used as the registry key."""
        return self.SELF_URL or f"http://localhost:{self.PORT}"


def validate_settings(settings: Settings) -> None:
    """
    Check the load-bearing payment configuration before serving traffic.

    Raises:
        ConfigurationError: On missing secrets (including the CDP API key
            the hosted facilitator needs), an invalid wallet address, an
            unusable price or an unsupported network.
    """
    missing = [
        name for name in ("GOOGLE_PLACES_API_KEY", "PAYMENT_WALLET_ADDRESS")
        if not getattr(settings, name)
    ]
    if missing:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    if not EVM_ADDRESS_PATTERN.match(settings.PAYMENT_WALLET_ADDRESS):
        raise ConfigurationError(
            f"PAYMENT_WALLET_ADDRESS must be a valid EVM address: {settings.PAYMENT_WALLET_ADDRESS}"
        )

    profile = resolve(settings.NETWORK, settings.FACILITATOR_URL)
    if profile.facilitator.is_trusted:
        missing_keys = [
            name for name in ("CDP_API_KEY_ID", "CDP_API_KEY_SECRET")
            if not getattr(settings, name)
        ]
        if missing_keys:
            raise ConfigurationError(
                f"Missing CDP API credentials for network {profile.network.value}: {', '.join(missing_keys)}"
            )

    price: Decimal = parse_usd_price(settings.PAYMENT_PRICE_USD)
    usd_to_minor_units(price, profile.asset_decimals)

    if settings.STACK_REGISTRATION_RETRY_ATTEMPTS < 1:
        raise ConfigurationError("STACK_REGISTRATION_RETRY_ATTEMPTS must be at least 1")
    if settings.STACK_REGISTRATION_RETRY_DELAY_SECONDS < 0:
        raise ConfigurationError("STACK_REGISTRATION_RETRY_DELAY_SECONDS must not be negative")


@lru_cache()  # Cache the settings object for performance
def get_settings() -> Settings:
    return Settings()
