"""Custom exceptions and centralized FastAPI error handlers."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AirQualityServiceError(Exception):
    """Base exception with HTTP status code."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class UpstreamError(AirQualityServiceError):
    """An Open-Meteo call failed. Never escapes OpenMeteoClient."""

    def __init__(self, message: str):
        super().__init__(message, status_code=502)


class NetworkError(UpstreamError):
    pass


class HttpStatusError(UpstreamError):
    def __init__(self, status_code: int, reason: str):
        super().__init__(f"HTTP {status_code}: {reason}")
        self.upstream_status = status_code


class ResponseValidationError(UpstreamError):
    pass


class AllSourcesFailedError(AirQualityServiceError):
    """Both the air-quality and weather calls failed in one refresh cycle."""

    def __init__(self, air_quality_error: str | None, weather_error: str | None):
        super().__init__(
            "Both air quality and weather APIs failed "
            f"(air quality: {air_quality_error or 'unknown error'}; "
            f"weather: {weather_error or 'unknown error'})",
            status_code=502,
        )


class InvalidCoordinatesError(AirQualityServiceError):
    def __init__(self, latitude: float, longitude: float):
        super().__init__(
            f"Invalid coordinates: latitude={latitude}, longitude={longitude}. "
            "Latitude must be within [-90, 90] and longitude within [-180, 180]",
            status_code=400,
        )


def register_error_handlers(app: FastAPI) -> None:
    """Register centralized exception handlers on the FastAPI app."""

    @app.exception_handler(AirQualityServiceError)
    async def handle_service_error(_request: Request, exc: AirQualityServiceError):
        return JSONResponse({"error": str(exc)}, status_code=exc.status_code)

    @app.exception_handler(ValueError)
    async def handle_value_error(_request: Request, exc: ValueError):
        return JSONResponse({"error": str(exc)}, status_code=400)

    @app.exception_handler(Exception)
    async def handle_unexpected(_request: Request, exc: Exception):
        logger.exception("Unhandled error: %s", exc)
        return JSONResponse(
            {"error": "Internal server error"},
            status_code=500,
        )
