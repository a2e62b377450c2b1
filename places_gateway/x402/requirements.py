# places_gateway/x402/requirements.py
"""Construction of the payment requirements advertised in a 402 challenge."""
from places_gateway.x402.networks import NetworkProfile
from places_gateway.x402.pricing import usd_to_minor_units
from places_gateway.x402.routes import PricedRoute
from places_gateway.x402.types import EXACT_SCHEME, PaymentRequirement

DEFAULT_MAX_TIMEOUT_SECONDS = 300


def build_payment_requirement(
    route: PricedRoute,
    profile: NetworkProfile,
    pay_to: str,
    resource: str,
    max_timeout_seconds: int = DEFAULT_MAX_TIMEOUT_SECONDS,
) -> PaymentRequirement:
    """
    Create the PaymentRequirement for a priced route.

    The result depends only on the arguments: the same route, profile and
    resource always produce an identical requirement.

    Args:
        route: The priced route being requested
        profile: Resolved network profile (asset, decimals, EIP-712 hints)
        pay_to: Address that receives the payment
        resource: URL of the resource being paid for
        max_timeout_seconds: How long the payer has to complete payment

    Returns:
        PaymentRequirement for the x402 response
    """
    return PaymentRequirement(
        scheme=EXACT_SCHEME,
        network=profile.network.value,
        max_amount_required=usd_to_minor_units(route.price_usd, profile.asset_decimals),
        resource=resource,
        description=route.description,
        mime_type="application/json",
        output_schema=route.output_schema,
        pay_to=pay_to,
        max_timeout_seconds=max_timeout_seconds,
        asset=profile.asset,
        extra=profile.extra,
    )
