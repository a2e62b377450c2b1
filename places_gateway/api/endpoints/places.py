# places_gateway/api/endpoints/places.py
from fastapi import APIRouter, Body, Request
from pydantic import ValidationError as PydanticValidationError
from typing import Any
import logging

from places_gateway.services import places_api
from places_gateway.services.validation import parse_search_request
from places_gateway.core.errors import APIError
from places_gateway.api.models.places import APIErrorResponse, Place, PlaceSearchResponse

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/places/text-search",
    response_model=PlaceSearchResponse,
    response_model_exclude_none=True,
    summary="Search Places (paid, x402)",
    responses={
        400: {"model": APIErrorResponse, "description": "Invalid request or payment proof"},
        402: {"description": "Payment required; body lists accepted payment requirements"},
        503: {"model": APIErrorResponse, "description": "Search provider unavailable"},
    },
)
def text_search(request: Request, body: Any = Body(None)) -> Any:
    """
    Searches places, businesses and points of interest by free text.

    The x402 middleware admits the request only after the attached payment
    has been verified. Validation problems are reported per field.

    Raises:
        ValidationError: 400 with the list of field errors
        UpstreamUnavailable: 503 if the Places API cannot be used right now
    """
    payer = getattr(request.state, "x402_payer", None)
    logger.info(f"Places search request (payer={payer})")

    search_request = parse_search_request(body)

    try:
        search_results = places_api.text_search(search_request, request.app.state.settings)
    except APIError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error during places search: {e}", exc_info=True)
        raise APIError(
            "An unexpected error occurred while processing your request",
            details={"retry": True, "support": "Contact support if issue persists"},
        )

    places = []
    for place_data in search_results["results"]:
        try:
            places.append(Place(**place_data))
        except PydanticValidationError as e:
            logger.warning(f"Skipping invalid place data: {e}")
            continue

    statistics = dict(search_results["statistics"], results_count=len(places))
    logger.info(f"Places search completed: {len(places)} results")

    return PlaceSearchResponse(
        status=search_results["status"],
        query=search_results["query"],
        results=places,
        next_page_token=search_results["next_page_token"],
        statistics=statistics,
    )
