# places_gateway/x402/pricing.py
"""
Price handling for x402 payment requirements.

Prices are configured as decimal-string USD amounts (e.g. "0.01" or "$0.01")
and converted to the stablecoin's smallest unit for maxAmountRequired:
1. Parse the configured string with Decimal (never float)
2. Scale by 10^decimals of the asset (USDC: 6)
3. Refuse any amount that would need rounding

Configuration is loaded from places_gateway/core/config.py:
- PAYMENT_PRICE_USD: Price per paid request
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Union

from places_gateway.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_DECIMALS = 6  # USDC


def parse_usd_price(price: Union[str, Decimal]) -> Decimal:
    """
    Parse a configured USD price.

    Args:
        price: Decimal string with optional leading "$" (e.g. "$0.01")

    Returns:
        Exact Decimal amount

    Raises:
        ConfigurationError: If the price is not a positive finite number
    """
    if isinstance(price, Decimal):
        amount = price
    else:
        text = str(price).strip()
        if text.startswith("$"):
            text = text[1:].strip()
        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise ConfigurationError(f"Invalid USD price: {price!r}") from None

    if not amount.is_finite() or amount <= 0:
        raise ConfigurationError(f"USD price must be a positive amount: {price!r}")

    return amount


def usd_to_minor_units(price: Union[str, Decimal], decimals: int = DEFAULT_DECIMALS) -> str:
    """
    Convert a USD price to the asset's smallest unit as an integer string.

    $0.01 with 6 decimals is "10000". An amount with more fractional digits
    than the asset supports is rejected rather than rounded.

    Args:
        price: USD price as string or Decimal
        decimals: Number of decimals of the payment asset

    Returns:
        Integer string suitable for maxAmountRequired

    Raises:
        ConfigurationError: If the price cannot be represented exactly
    """
    amount = parse_usd_price(price)
    scaled = amount.scaleb(decimals)

    if scaled != scaled.to_integral_value():
        raise ConfigurationError(
            f"USD price {price!r} has more precision than the asset supports ({decimals} decimals)"
        )

    return str(int(scaled))


def minor_units_to_usd(amount: Union[str, int], decimals: int = DEFAULT_DECIMALS) -> Decimal:
    """Convert smallest asset units back to an exact USD Decimal."""
    return Decimal(int(amount)).scaleb(-decimals)


def format_cost(price: Union[str, Decimal]) -> str:
    """
    Format a USD price for display, with at least two fractional digits.

    "0.01" -> "$0.01", "0.5" -> "$0.50", "0.0025" -> "$0.0025"
    """
    amount = parse_usd_price(price).normalize()
    if amount.as_tuple().exponent >= -2:
        return f"${amount.quantize(Decimal('0.01'))}"
    return f"${amount}"
