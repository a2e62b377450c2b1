# places_gateway/services/places_api.py
import requests
from requests.exceptions import RequestException
import logging
import time
from typing import Any, Dict, List, Optional

from places_gateway.api.models.places import PlaceSearchRequest
from places_gateway.core.config import Settings
from places_gateway.core.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

USER_AGENT = "X402-Places-Service/2.0.0"
SUCCESS_STATUSES = ("OK", "ZERO_RESULTS")
MAX_PHOTOS_PER_PLACE = 2
PROVIDER_RETRY_AFTER_SECONDS = 30


def build_query_params(request: PlaceSearchRequest, api_key: str) -> Dict[str, str]:
    """
    Maps a validated search request to Google Places text search parameters.
    """
    params = {"key": api_key, "query": request.query}
    coordinates = request.coordinates()
    if coordinates is not None:
        lat, lng = coordinates
        params["location"] = f"{lat},{lng}"
    if request.radius:
        # Google expects whole meters
        params["radius"] = str(int(request.radius))
    if request.language:
        params["language"] = request.language
    if request.region:
        params["region"] = request.region
    return params


def format_place(result: Dict[str, Any]) -> Dict[str, Any]:
    """
    Trims a raw provider result to the fields returned to callers.
    At most two photo references are kept to bound response size.
    """
    location = result.get("geometry", {}).get("location", {})
    place = {
        "place_id": result.get("place_id"),
        "name": result.get("name"),
        "formatted_address": result.get("formatted_address"),
        "rating": result.get("rating"),
        "user_ratings_total": result.get("user_ratings_total"),
        "price_level": result.get("price_level"),
        "business_status": result.get("business_status"),
        "types": result.get("types") or [],
        "geometry": {"location": {"lat": location.get("lat"), "lng": location.get("lng")}},
    }
    photos = result.get("photos")
    if photos:
        place["photos"] = [
            {
                "photo_reference": photo.get("photo_reference"),
                "height": photo.get("height"),
                "width": photo.get("width"),
            }
            for photo in photos[:MAX_PHOTOS_PER_PLACE]
        ]
    return place


def _unavailable(message: str) -> UpstreamUnavailable:
    return UpstreamUnavailable(
        "Google Places API is temporarily unavailable",
        details={
            "reason": message,
            "retry_after": f"{PROVIDER_RETRY_AFTER_SECONDS} seconds",
            "support": "Contact support if issue persists",
        },
        retry_after=PROVIDER_RETRY_AFTER_SECONDS,
    )


def text_search(
    request: PlaceSearchRequest,
    settings: Settings,
    session: Optional[requests.Session] = None,
) -> Dict[str, Any]:
    """
    Runs a text search against the Google Places API.

    Args:
        request: Validated search parameters
        settings: Application settings (API key, URL, timeout)
        session: Optional requests session, mostly for tests

    Returns:
        Dict shaped like PlaceSearchResponse (without payment metadata).

    Raises:
        UpstreamUnavailable: If the provider cannot be reached, answers with
            an HTTP error, or reports a status other than OK/ZERO_RESULTS.
    """
    api_url = str(settings.GOOGLE_PLACES_API_URL)
    params = build_query_params(request, settings.GOOGLE_PLACES_API_KEY)
    http = session or requests

    logger.info(
        f"Searching places: '{request.query}'"
        + (f" near {request.location}" if request.location else "")
        + (f" within {request.radius}m" if request.radius else "")
    )

    started_at = time.monotonic()
    try:
        response = http.get(
            api_url,
            params=params,
            headers={"User-Agent": USER_AGENT},
            timeout=settings.GOOGLE_PLACES_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        data = response.json()
    except RequestException as e:
        # The API key travels in the query string, so log the base URL only
        logger.error(f"Error calling Google Places API ({api_url}): {e.__class__.__name__}")
        raise _unavailable(f"Places API request failed: {e.__class__.__name__}") from e
    except ValueError as e:
        logger.error(f"Google Places API returned a non-JSON body: {e}")
        raise _unavailable("Places API returned an unreadable response") from e

    status = data.get("status")
    if status not in SUCCESS_STATUSES:
        error_message = data.get("error_message")
        logger.error(f"Places API error: {status}{f' - {error_message}' if error_message else ''}")
        raise _unavailable(f"Places API error: {status}")

    query_time_ms = int((time.monotonic() - started_at) * 1000)
    places: List[Dict[str, Any]] = [format_place(result) for result in data.get("results") or []]
    next_page_token = data.get("next_page_token")

    logger.info(f"Found {len(places)} places in {query_time_ms}ms")

    return {
        "status": status,
        "query": request.query,
        "results": places,
        "next_page_token": next_page_token,
        "statistics": {
            "results_count": len(places),
            "has_more_results": bool(next_page_token),
            "query_time_ms": query_time_ms,
            "search_radius_km": request.radius / 1000 if request.radius else None,
        },
    }
