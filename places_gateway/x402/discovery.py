# places_gateway/x402/discovery.py
"""
Machine-readable service description for automated callers.

Served at /.well-known/x402 (capability manifest) and /api/info (usage
document with an example paid request).
"""
from datetime import datetime, timezone
from typing import Any, Dict, List

from places_gateway.core.config import Settings
from places_gateway.x402.middleware import PROTOCOL_LABEL, X_PAYMENT_HEADER
from places_gateway.x402.networks import NetworkProfile
from places_gateway.x402.pricing import format_cost, usd_to_minor_units
from places_gateway.x402.routes import SUPPORTED_LANGUAGES, SUPPORTED_REGIONS, PricedRoute

DISCOVERY_VERSION = "1.0"


def payment_terms(settings: Settings, profile: NetworkProfile) -> Dict[str, Any]:
    return {
        "protocol": PROTOCOL_LABEL,
        "scheme": "exact",
        "price": format_cost(settings.PAYMENT_PRICE_USD),
        "maxAmountRequired": usd_to_minor_units(settings.PAYMENT_PRICE_USD, profile.asset_decimals),
        "asset": profile.asset,
        "network": profile.network.value,
        "payTo": settings.PAYMENT_WALLET_ADDRESS,
        "gasless": True,
        "facilitator": profile.facilitator.describe(),
    }


def describe_endpoint(route: PricedRoute) -> Dict[str, Any]:
    return {
        "path": route.path,
        "method": route.method,
        "description": route.description,
        "payment_required": True,
        "price": format_cost(route.price_usd),
        "tags": list(route.tags),
        "inputSchema": route.input_schema,
        "outputSchema": route.output_schema,
        "examples": route.examples,
    }


def build_discovery_document(
    settings: Settings,
    profile: NetworkProfile,
    routes: List[PricedRoute],
) -> Dict[str, Any]:
    """Capability manifest served at /.well-known/x402."""
    return {
        "version": DISCOVERY_VERSION,
        "service": settings.PROJECT_NAME,
        "service_version": settings.SERVICE_VERSION,
        "description": settings.SERVICE_DESCRIPTION,
        "payment": payment_terms(settings, profile),
        "capabilities": {
            "search_types": ["businesses", "points_of_interest", "restaurants", "hotels", "gas_stations"],
            "data_sources": ["google_places_api"],
            "real_time": True,
            "geographic_coverage": "global",
            "languages_supported": SUPPORTED_LANGUAGES,
            "regions_supported": SUPPORTED_REGIONS,
        },
        "endpoints": [describe_endpoint(route) for route in routes if route.discoverable],
        "features": {
            "gasless_payments": "Client pays no gas fees",
            "eip712_signatures": "Uses EIP-712 typed data signatures",
            "facilitator_settlement": "Facilitator handles transferWithAuthorization",
        },
    }


def build_service_info(
    settings: Settings,
    profile: NetworkProfile,
    routes: List[PricedRoute],
    base_url: str,
) -> Dict[str, Any]:
    """Human and agent oriented usage document served at /api/info."""
    endpoints = {
        route.path: {
            "method": route.method,
            "description": route.description,
            "payment_required": True,
            "schema": route.input_schema,
        }
        for route in routes
    }
    example_path = routes[0].path if routes else ""
    return {
        "service": settings.PROJECT_NAME,
        "version": settings.SERVICE_VERSION,
        "description": settings.SERVICE_DESCRIPTION,
        "payment": payment_terms(settings, profile),
        "endpoints": endpoints,
        "usage": {
            "example_request": {
                "method": "POST",
                "endpoint": example_path,
                "headers": {
                    "Content-Type": "application/json",
                    X_PAYMENT_HEADER: "base64-encoded-eip712-payment-authorization",
                },
                "body": {"query": "coffee shops", "location": "37.7749,-122.4194", "radius": 1000},
            },
            "curl_example": (
                f"curl -X POST {base_url.rstrip('/')}{example_path} "
                "-H 'Content-Type: application/json' "
                "-d '{\"query\": \"coffee shops\", \"location\": \"40.7128,-74.0060\", \"radius\": 1000}'"
            ),
            "payment_flow": {
                "step1": "Call the endpoint without payment and receive HTTP 402 with payment requirements",
                "step2": "Sign an EIP-712 TransferWithAuthorization for maxAmountRequired to payTo",
                "step3": f"Repeat the request with the base64 payment payload in the {X_PAYMENT_HEADER} header",
                "step4": "Server verifies the authorization via the facilitator",
                "step5": "Facilitator executes transferWithAuthorization (facilitator pays gas)",
                "step6": "Server returns the search results with payment metadata",
            },
        },
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }
