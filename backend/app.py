"""FastAPI application entry point for the live air-quality API."""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from errors import register_error_handlers
from services.forecast import ForecastClient
from services.open_meteo import OpenMeteoClient
from services.refresh import LiveDataRegistry

# Structured logging: JSON for production, human-readable for local
if settings.is_production:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}',
        stream=sys.stdout,
    )
else:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

logger = logging.getLogger(__name__)


def create_app(
    client: OpenMeteoClient | None = None,
    forecast_client: ForecastClient | None = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        problems = settings.validate()
        if problems:
            logger.warning("Invalid settings (must be positive): %s", ", ".join(problems))
        yield
        app.state.live_registry.shutdown()

    app = FastAPI(title="Air Quality Live API", version="1.0.0", lifespan=lifespan)

    # One upstream client (and cache) per app, shared by every live controller
    client = client or OpenMeteoClient()
    app.state.open_meteo = client
    app.state.live_registry = LiveDataRegistry(client)
    app.state.forecast_client = forecast_client or ForecastClient()

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Security headers
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    # Centralized error handlers
    register_error_handlers(app)

    from routes.forecast import router as forecast_router
    from routes.health import router as health_router
    from routes.live import router as live_router

    app.include_router(health_router)
    app.include_router(live_router)
    app.include_router(forecast_router)

    return app


app = create_app()
