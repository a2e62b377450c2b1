# places_gateway/api/models/places.py
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional, Tuple


class PlaceSearchRequest(BaseModel):
    """Normalized text search parameters, produced by the request validator."""
    query: str = Field(..., description="Search term for places.", examples=["coffee shops"])
    location: Optional[str] = Field(None, description="Bias point as 'lat,lng'.", examples=["37.7749,-122.4194"])
    radius: Optional[float] = Field(None, description="Search radius in meters (0-50000).", examples=[2000])
    language: Optional[str] = Field(None, description="Two-letter language code.", examples=["en"])
    region: Optional[str] = Field(None, description="Two-letter region code.", examples=["us"])

    def coordinates(self) -> Optional[Tuple[float, float]]:
        """Returns (lat, lng) when a location bias is set."""
        if not self.location:
            return None
        lat, lng = (float(part.strip()) for part in self.location.split(","))
        return lat, lng


class LatLng(BaseModel):
    lat: float
    lng: float


class Geometry(BaseModel):
    location: LatLng


class Photo(BaseModel):
    photo_reference: str
    height: Optional[int] = None
    width: Optional[int] = None


class Place(BaseModel):
    """
    A single place as returned to callers, trimmed from the provider result.
    """
    place_id: str
    name: str
    formatted_address: Optional[str] = None
    rating: Optional[float] = None
    user_ratings_total: Optional[int] = None
    price_level: Optional[int] = None
    business_status: Optional[str] = None
    types: List[str] = Field(default_factory=list)
    geometry: Geometry
    photos: Optional[List[Photo]] = None


class SearchStatistics(BaseModel):
    results_count: int
    has_more_results: bool
    query_time_ms: int
    search_radius_km: Optional[float] = None


class PlaceSearchResponse(BaseModel):
    """
    Search result body. Payment metadata is appended by the x402 middleware
    after the handler returns.
    """
    status: str
    query: str
    results: List[Place]
    next_page_token: Optional[str] = None
    statistics: SearchStatistics


class APIErrorResponse(BaseModel):
    """Shape of every error body returned by the gateway."""
    error: str
    message: str
    code: int
    details: Optional[Dict[str, Any]] = None
