# places_gateway/x402/routes.py
"""
Priced route table.

Each entry describes one paid endpoint: its price, its discovery metadata and
the JSON schemas advertised to automated callers. Requests for any route that
is not in the table are never challenged.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from places_gateway.core.config import Settings

TEXT_SEARCH_PATH = "/api/places/text-search"

SUPPORTED_LANGUAGES = ["en", "es", "fr", "de", "it", "pt", "ja", "zh", "ko", "ru"]
SUPPORTED_REGIONS = ["us", "gb", "ca", "au", "de", "fr", "es", "it", "jp", "br", "mx", "in"]

TEXT_SEARCH_INPUT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "description": "Request parameters for Google Places text search",
    "properties": {
        "query": {
            "type": "string",
            "description": "Search term for places (e.g., 'pizza restaurants', 'coffee shops in downtown')",
            "minLength": 1,
            "maxLength": 2048,
        },
        "location": {
            "type": "string",
            "description": "Geographic bias point as 'latitude,longitude' (e.g., '37.7749,-122.4194')",
            "pattern": "^-?\\d+(\\.\\d+)?,-?\\d+(\\.\\d+)?$",
        },
        "radius": {
            "type": "number",
            "description": "Search radius in meters from location point (max: 50000)",
            "minimum": 0,
            "maximum": 50000,
        },
        "language": {
            "type": "string",
            "description": "Language code for results (optional)",
            "pattern": "^[a-z]{2}$",
        },
        "region": {
            "type": "string",
            "description": "Region code for biasing results (optional, e.g., 'us', 'gb')",
            "pattern": "^[a-z]{2}$",
        },
    },
    "required": ["query"],
    "additionalProperties": False,
}

_LAT_LNG = {
    "type": "object",
    "properties": {"lat": {"type": "number"}, "lng": {"type": "number"}},
    "required": ["lat", "lng"],
}

TEXT_SEARCH_OUTPUT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "description": "Google Places search results with payment metadata",
    "properties": {
        "results": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "place_id": {"type": "string"},
                    "name": {"type": "string"},
                    "formatted_address": {"type": "string"},
                    "geometry": {
                        "type": "object",
                        "properties": {"location": _LAT_LNG},
                        "required": ["location"],
                    },
                    "rating": {"type": "number", "minimum": 1.0, "maximum": 5.0},
                    "user_ratings_total": {"type": "number", "minimum": 0},
                    "price_level": {"type": "number", "minimum": 0, "maximum": 4},
                    "types": {"type": "array", "items": {"type": "string"}},
                    "business_status": {
                        "type": "string",
                        "enum": ["OPERATIONAL", "CLOSED_TEMPORARILY", "CLOSED_PERMANENTLY"],
                    },
                    "photos": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "photo_reference": {"type": "string"},
                                "height": {"type": "number"},
                                "width": {"type": "number"},
                            },
                        },
                    },
                },
            },
        },
        "status": {"type": "string", "enum": ["OK", "ZERO_RESULTS"]},
        "next_page_token": {"type": "string"},
        "statistics": {
            "type": "object",
            "properties": {
                "results_count": {"type": "number"},
                "search_radius_km": {"type": "number"},
                "query_time_ms": {"type": "number"},
                "has_more_results": {"type": "boolean"},
            },
        },
        "metadata": {
            "type": "object",
            "description": "X402 payment and processing metadata",
            "properties": {
                "cost": {"type": "string"},
                "protocol": {"type": "string", "const": "x402 v1.0"},
                "network": {"type": "string"},
                "payment_method": {"type": "string", "const": "gasless_micropayment"},
                "request_id": {"type": "string"},
                "timestamp": {"type": "string", "format": "date-time"},
                "processing_time_ms": {"type": "number"},
            },
            "required": ["cost", "protocol", "network", "payment_method"],
        },
    },
    "required": ["results", "status", "metadata"],
}

TEXT_SEARCH_EXAMPLES: List[Dict[str, Any]] = [
    {
        "input": {"query": "coffee shops", "location": "37.7749,-122.4194", "radius": 2000, "language": "en"},
        "description": "Find coffee shops within 2km of San Francisco downtown with English results",
    },
    {
        "input": {"query": "restaurants", "language": "es", "region": "es"},
        "description": "Find restaurants with Spanish language results and Spain regional bias",
    },
    {
        "input": {"query": "hospitals", "location": "40.7128,-74.0060", "radius": 10000, "region": "us"},
        "description": "Find hospitals within 10km of New York City",
    },
]


@dataclass(frozen=True)
class PricedRoute:
    method: str
    path: str
    price_usd: str
    description: str
    tags: Tuple[str, ...] = ()
    input_schema: Optional[Dict[str, Any]] = None
    output_schema: Optional[Dict[str, Any]] = None
    examples: List[Dict[str, Any]] = field(default_factory=list)
    discoverable: bool = True

    @property
    def key(self) -> str:
        return f"{self.method} {self.path}"

    def matches(self, method: str, path: str) -> bool:
        """Match on method and path, ignoring a trailing slash."""
        return method.upper() == self.method and path.rstrip("/") == self.path.rstrip("/")


def find_route(routes: List[PricedRoute], method: str, path: str) -> Optional[PricedRoute]:
    """Return the priced route for a request, or None if it is free."""
    for route in routes:
        if route.matches(method, path):
            return route
    return None


def build_payment_routes(settings: Settings) -> List[PricedRoute]:
    """Build the priced route table from configuration."""
    return [
        PricedRoute(
            method="POST",
            path=TEXT_SEARCH_PATH,
            price_usd=settings.PAYMENT_PRICE_USD,
            description=(
                "Search for places, businesses, and points of interest using Google Places API "
                "with real-time data and comprehensive location information"
            ),
            tags=("places", "search", "google", "business", "location", "maps", "poi", "restaurants", "local-search"),
            input_schema=TEXT_SEARCH_INPUT_SCHEMA,
            output_schema=TEXT_SEARCH_OUTPUT_SCHEMA,
            examples=TEXT_SEARCH_EXAMPLES,
        )
    ]
