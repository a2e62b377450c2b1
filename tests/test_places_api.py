# tests/test_places_api.py
import pytest
from unittest.mock import patch, MagicMock
from requests.exceptions import ConnectionError, HTTPError, Timeout

from places_gateway.api.models.places import PlaceSearchRequest
from places_gateway.core.errors import UpstreamUnavailable
from places_gateway.services.places_api import (
    build_query_params,
    format_place,
    text_search,
)

from conftest import make_settings


def make_google_response(json_body, status_code=200):
    response = MagicMock(status_code=status_code)
    response.json.return_value = json_body
    if status_code >= 400:
        response.raise_for_status.side_effect = HTTPError(f"{status_code} Server Error")
    else:
        response.raise_for_status.return_value = None
    return response


RAW_PLACE = {
    "place_id": "ChIJ1",
    "name": "Tony's Pizza",
    "formatted_address": "1570 Stockton St, San Francisco",
    "rating": 4.6,
    "user_ratings_total": 5400,
    "price_level": 2,
    "business_status": "OPERATIONAL",
    "types": ["restaurant", "food"],
    "geometry": {"location": {"lat": 37.8003, "lng": -122.4091}, "viewport": {}},
    "photos": [
        {"photo_reference": "p1", "height": 100, "width": 200, "html_attributions": []},
        {"photo_reference": "p2", "height": 100, "width": 200},
        {"photo_reference": "p3", "height": 100, "width": 200},
    ],
    "icon": "https://maps.gstatic.com/icon.png",
}


class TestPlacesAPIFunctions:
    """Test suite for Places API service functions."""

    def test_build_query_params_minimal(self):
        params = build_query_params(PlaceSearchRequest(query="pizza"), "key-1")
        assert params == {"key": "key-1", "query": "pizza"}

    def test_build_query_params_full(self):
        request = PlaceSearchRequest(
            query="pizza", location="37.7749,-122.4194", radius=1500.0, language="en", region="us"
        )
        params = build_query_params(request, "key-1")

        assert params["location"] == "37.7749,-122.4194"
        assert params["radius"] == "1500"
        assert params["language"] == "en"
        assert params["region"] == "us"

    def test_format_place_limits_photos(self):
        """At most two photos are kept, with only their reference and size."""
        place = format_place(RAW_PLACE)

        assert [photo["photo_reference"] for photo in place["photos"]] == ["p1", "p2"]
        assert place["photos"][0] == {"photo_reference": "p1", "height": 100, "width": 200}
        assert place["geometry"] == {"location": {"lat": 37.8003, "lng": -122.4091}}
        assert "icon" not in place

    def test_format_place_without_photos(self):
        raw = {key: value for key, value in RAW_PLACE.items() if key != "photos"}
        assert "photos" not in format_place(raw)

    @patch("places_gateway.services.places_api.requests.get")
    def test_text_search_success(self, mock_get):
        """Test a successful search with statistics."""
        mock_get.return_value = make_google_response(
            {"status": "OK", "results": [RAW_PLACE], "next_page_token": "token-2"}
        )
        settings = make_settings()

        result = text_search(PlaceSearchRequest(query="pizza", radius=2000), settings)

        assert result["status"] == "OK"
        assert result["query"] == "pizza"
        assert len(result["results"]) == 1
        assert result["next_page_token"] == "token-2"
        assert result["statistics"]["results_count"] == 1
        assert result["statistics"]["has_more_results"] is True
        assert result["statistics"]["search_radius_km"] == 2.0
        assert result["statistics"]["query_time_ms"] >= 0

        args, kwargs = mock_get.call_args
        assert args[0] == "https://maps.googleapis.com/maps/api/place/textsearch/json"
        assert kwargs["params"]["key"] == "test-google-key"
        assert kwargs["timeout"] == settings.GOOGLE_PLACES_TIMEOUT_SECONDS

    @patch("places_gateway.services.places_api.requests.get")
    def test_text_search_zero_results(self, mock_get):
        mock_get.return_value = make_google_response({"status": "ZERO_RESULTS", "results": []})

        result = text_search(PlaceSearchRequest(query="nothing here"), make_settings())

        assert result["status"] == "ZERO_RESULTS"
        assert result["results"] == []
        assert result["statistics"]["has_more_results"] is False
        assert result["statistics"]["search_radius_km"] is None

    @pytest.mark.parametrize("status", ["REQUEST_DENIED", "OVER_QUERY_LIMIT", "INVALID_REQUEST", "UNKNOWN_ERROR"])
    @patch("places_gateway.services.places_api.requests.get")
    def test_text_search_api_error_status(self, mock_get, status):
        mock_get.return_value = make_google_response({"status": status, "error_message": "nope"})

        with pytest.raises(UpstreamUnavailable) as exc_info:
            text_search(PlaceSearchRequest(query="pizza"), make_settings())

        assert exc_info.value.status_code == 503
        assert exc_info.value.retry_after == 30
        assert exc_info.value.details["retry_after"] == "30 seconds"

    @pytest.mark.parametrize("error", [ConnectionError("refused"), Timeout("timed out")])
    @patch("places_gateway.services.places_api.requests.get")
    def test_text_search_network_error(self, mock_get, error):
        mock_get.side_effect = error

        with pytest.raises(UpstreamUnavailable):
            text_search(PlaceSearchRequest(query="pizza"), make_settings())

    @patch("places_gateway.services.places_api.requests.get")
    def test_text_search_http_error(self, mock_get):
        mock_get.return_value = make_google_response({}, status_code=500)

        with pytest.raises(UpstreamUnavailable):
            text_search(PlaceSearchRequest(query="pizza"), make_settings())

    @patch("places_gateway.services.places_api.requests.get")
    def test_text_search_invalid_json(self, mock_get):
        response = make_google_response(None)
        response.json.side_effect = ValueError("No JSON")
        mock_get.return_value = response

        with pytest.raises(UpstreamUnavailable):
            text_search(PlaceSearchRequest(query="pizza"), make_settings())

    def test_text_search_uses_session(self):
        session = MagicMock()
        session.get.return_value = make_google_response({"status": "ZERO_RESULTS", "results": []})

        text_search(PlaceSearchRequest(query="pizza"), make_settings(), session=session)

        session.get.assert_called_once()
