# places_gateway/api/endpoints/registration.py
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from typing import Any, Dict
import logging

from places_gateway.services.registration import StackRegistrationService

logger = logging.getLogger(__name__)

router = APIRouter()


def _describe(service: StackRegistrationService) -> Dict[str, Any]:
    return {
        "stackUrl": service.config.stack_url,
        "selfUrl": service.config.self_url,
        "state": service.state.to_dict(),
    }


@router.post("/register", summary="Register With Stack Marketplace")
async def register_with_stack(request: Request) -> Any:
    """
    Manually triggers registration with the Stack marketplace.

    Runs even when auto-registration is disabled. Once registered, later
    calls return immediately with ``alreadyRegistered: true``.

    Returns:
        200 on success, 409 while another registration is running,
        502 if the registry could not be reached or refused the record.
    """
    service: StackRegistrationService = request.app.state.registration

    if service.running and not service.registered:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"success": False, "error": "Registration already in progress", **_describe(service)},
        )

    result = await service.run(ignore_disabled=True)
    body = {**result.to_dict(), **_describe(service)}
    if not result.success:
        logger.warning(f"Manual Stack registration failed: {result.error}")
        return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=body)

    logger.info(f"Manual Stack registration succeeded (vendor_id={result.vendor_id})")
    return body


@router.get("/register/status", summary="Stack Registration Status")
async def registration_status(request: Request) -> Dict[str, Any]:
    """
    Reports whether the registry currently lists this service.

    The registry is queried live; the reconciler's own state is included
    for comparison.
    """
    service: StackRegistrationService = request.app.state.registration
    verification = await service.lookup()
    return {
        "registered": verification.registered,
        "vendorId": verification.vendor_id,
        "autoRegistrationDisabled": service.config.disabled,
        **_describe(service),
    }
