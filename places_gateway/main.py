# places_gateway/main.py
import asyncio
import logging
import time
from contextlib import asynccontextmanager, suppress
from http import HTTPStatus
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from fastapi.routing import APIRoute
from starlette.exceptions import HTTPException as StarletteHTTPException

from places_gateway.api.endpoints import places, registration, service
from places_gateway.core.config import Settings, get_settings, validate_settings
from places_gateway.core.errors import APIError, ValidationError, api_error_response
from places_gateway.services.registration import RegistrationConfig, StackRegistrationService
from places_gateway.x402.facilitator import FacilitatorClient, create_facilitator_client
from places_gateway.x402.middleware import X_PAYMENT_HEADER, X_PAYMENT_RESPONSE_HEADER, X402Middleware
from places_gateway.x402.networks import resolve
from places_gateway.x402.routes import build_payment_routes

# Configure basic logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Registration runs beside the server, never before it
    task = asyncio.create_task(app.state.registration.run())
    app.state.registration_task = task
    try:
        yield
    finally:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task


def available_endpoints(app: FastAPI):
    return [
        f"{method} {route.path}"
        for route in app.routes
        if isinstance(route, APIRoute) and route.include_in_schema
        for method in sorted(route.methods)
    ]


def create_app(
    settings: Optional[Settings] = None,
    facilitator_client: Optional[FacilitatorClient] = None,
    registration_service: Optional[StackRegistrationService] = None,
) -> FastAPI:
    """
    Build the application from configuration.

    Raises:
        ConfigurationError: If the configuration cannot serve paid traffic
    """
    settings = settings or get_settings()
    validate_settings(settings)

    profile = resolve(settings.NETWORK, settings.FACILITATOR_URL)
    routes = build_payment_routes(settings)
    if facilitator_client is None:
        facilitator_client = create_facilitator_client(
            profile.facilitator, settings.CDP_API_KEY_ID, settings.CDP_API_KEY_SECRET
        )
    if registration_service is None:
        registration_service = StackRegistrationService(
            RegistrationConfig.from_settings(settings, profile, routes)
        )

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.SERVICE_VERSION,
        description=settings.SERVICE_DESCRIPTION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.profile = profile
    app.state.routes = routes
    app.state.registration = registration_service
    app.state.started_at = time.monotonic()

    app.include_router(service.router, tags=["service"])
    app.include_router(places.router, prefix="/api", tags=["places"])
    app.include_router(registration.router, prefix="/api", tags=["registration"])

    @app.get("/", include_in_schema=False)
    def root():
        return RedirectResponse(url="/api/info")

    @app.exception_handler(APIError)
    async def handle_api_error(request: Request, exc: APIError):
        return api_error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        errors = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            errors.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
        return api_error_response(ValidationError("Request validation failed", details={"errors": errors}))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            error = APIError(
                f"Endpoint {request.method} {request.url.path} not found",
                details={"available_endpoints": available_endpoints(request.app)},
                status_code=404,
            )
            error.error = "Not Found"
        else:
            error = APIError(str(exc.detail), status_code=exc.status_code)
            error.error = HTTPStatus(exc.status_code).phrase
        return api_error_response(error, headers=getattr(exc, "headers", None))

    # x402 payment middleware guards the priced routes
    app.add_middleware(
        X402Middleware,
        routes=routes,
        profile=profile,
        pay_to=settings.PAYMENT_WALLET_ADDRESS,
        facilitator_client=facilitator_client,
        max_timeout_seconds=settings.X402_MAX_TIMEOUT_SECONDS,
    )
    # Added last so it also wraps 402 answers
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", X_PAYMENT_HEADER],
        expose_headers=[X_PAYMENT_RESPONSE_HEADER],
    )

    logger.info(
        f"x402 payments enabled: {settings.PAYMENT_PRICE_USD} USD on {profile.network.value} "
        f"to {settings.PAYMENT_WALLET_ADDRESS} via {profile.facilitator.describe()}"
    )
    logger.info(f"Priced routes: {[route.key for route in routes]}")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "places_gateway.main:app",
        host="0.0.0.0",
        port=get_settings().PORT,
    )
