# places_gateway/services/validation.py
"""
Validation of place search requests.

Each problem produces one message naming the offending field, so callers can
fix their input without guessing. All messages are collected before failing.
"""
import logging
import math
import re
from typing import Any, List

from places_gateway.api.models.places import PlaceSearchRequest
from places_gateway.core.errors import ValidationError

logger = logging.getLogger(__name__)

MAX_QUERY_LENGTH = 2048
MAX_RADIUS_METERS = 50000
LANGUAGE_CODE = re.compile(r"^[a-z]{2}$")

EXAMPLE_REQUEST = {
    "query": "pizza restaurants",
    "location": "37.7749,-122.4194",  # optional
    "radius": 2000,  # optional
}


def _parse_coordinate(value: str) -> float:
    number = float(value.strip())
    if not math.isfinite(number):
        raise ValueError(f"not a finite number: {value}")
    return number


def validate_location(location: Any) -> List[str]:
    if not isinstance(location, str):
        return ["Field 'location' must be a string in 'lat,lng' format"]

    parts = location.split(",")
    if len(parts) != 2:
        return ["Field 'location' must be in 'lat,lng' format (e.g., '37.7749,-122.4194')"]

    try:
        lat, lng = (_parse_coordinate(part) for part in parts)
    except ValueError:
        return ["Field 'location' must contain valid latitude and longitude numbers"]

    errors = []
    if not -90 <= lat <= 90:
        errors.append("Latitude must be between -90 and 90")
    if not -180 <= lng <= 180:
        errors.append("Longitude must be between -180 and 180")
    return errors


def validate_search_request(request: Any) -> List[str]:
    """
    Validate raw search request parameters.

    Args:
        request: Decoded JSON request body

    Returns:
        List of field-specific error messages; empty when the request is valid
    """
    errors: List[str] = []

    if not isinstance(request, dict):
        errors.append("Request body must be a JSON object")
        return errors

    query = request.get("query")
    if query is None or query == "":
        errors.append("Missing required field: 'query'")
    elif not isinstance(query, str):
        errors.append("Field 'query' must be a string")
    elif not query.strip():
        errors.append("Field 'query' cannot be empty")
    elif len(query) > MAX_QUERY_LENGTH:
        errors.append(f"Field 'query' must be less than {MAX_QUERY_LENGTH} characters")

    if request.get("location") is not None:
        errors.extend(validate_location(request["location"]))

    radius = request.get("radius")
    if radius is not None:
        # bool is an int subclass, but never a radius
        if isinstance(radius, bool) or not isinstance(radius, (int, float)):
            errors.append("Field 'radius' must be a number")
        elif not math.isfinite(radius):
            errors.append("Field 'radius' must be a finite number")
        elif radius < 0:
            errors.append("Field 'radius' must be non-negative")
        elif radius > MAX_RADIUS_METERS:
            errors.append(f"Field 'radius' must be {MAX_RADIUS_METERS} meters or less")

    for field in ("language", "region"):
        value = request.get(field)
        if value is not None and (not isinstance(value, str) or not LANGUAGE_CODE.match(value)):
            errors.append(f"Field '{field}' must be a two-letter lowercase code")

    return errors


def parse_search_request(request: Any) -> PlaceSearchRequest:
    """
    Validate and normalize a raw search request.

    Raises:
        ValidationError: With every field error in ``details.errors``
    """
    errors = validate_search_request(request)
    if errors:
        logger.info(f"Search request validation failed: {errors}")
        raise ValidationError(
            "Request validation failed",
            details={"errors": errors, "example": EXAMPLE_REQUEST},
        )

    location = request.get("location")
    return PlaceSearchRequest(
        query=request["query"].strip(),
        location=location.strip() if location else None,
        radius=request.get("radius"),
        language=request.get("language"),
        region=request.get("region"),
    )
