# places_gateway/api/endpoints/service.py
from fastapi import APIRouter, Request
from datetime import datetime, timezone
from typing import Any, Dict
import time
import logging

from places_gateway.x402.discovery import build_discovery_document, build_service_info
from places_gateway.x402.pricing import format_cost

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", summary="Health Check")
def health(request: Request) -> Dict[str, Any]:
    """ Liveness probe with a short payment and registration summary. """
    state = request.app.state
    settings = state.settings
    return {
        "status": "healthy",
        "service": settings.PROJECT_NAME,
        "version": settings.SERVICE_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - state.started_at, 3),
        "payment": {
            "network": state.profile.network.value,
            "price": format_cost(settings.PAYMENT_PRICE_USD),
            "payTo": settings.PAYMENT_WALLET_ADDRESS,
            "facilitator": state.profile.facilitator.describe(),
        },
        "registration": state.registration.state.to_dict(),
    }


@router.get("/.well-known/x402", summary="x402 Service Discovery")
def well_known_x402(request: Request) -> Dict[str, Any]:
    """ Capability manifest for automated payers. """
    state = request.app.state
    document = build_discovery_document(state.settings, state.profile, state.routes)
    document["contact"] = {"documentation": f"{str(request.base_url).rstrip('/')}/api/info"}
    return document


@router.get("/api/info", summary="Service Information")
def service_info(request: Request) -> Dict[str, Any]:
    """ Usage document with payment terms and an example paid request. """
    state = request.app.state
    logger.info("Service info requested")
    return build_service_info(state.settings, state.profile, state.routes, str(request.base_url))
