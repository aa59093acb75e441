"""Centralized configuration — all env vars in one place."""

import os


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self):
        self.cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
        self.git_sha: str = os.getenv("GIT_SHA", "unknown")
        self.environment: str = os.getenv("ENVIRONMENT", "local")

        # Open-Meteo upstream
        self.air_quality_base_url: str = os.getenv(
            "AIR_QUALITY_BASE_URL", "https://air-quality-api.open-meteo.com/v1/air-quality"
        )
        self.weather_base_url: str = os.getenv("WEATHER_BASE_URL", "https://api.open-meteo.com/v1/forecast")
        self.archive_base_url: str = os.getenv("ARCHIVE_BASE_URL", "https://archive-api.open-meteo.com/v1/archive")
        self.user_agent: str = os.getenv("UPSTREAM_USER_AGENT", "SPADE-Air-Quality-Monitor/1.0")
        self.upstream_timeout_seconds: float = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "10"))

        # Caching and polling
        self.live_cache_ttl_seconds: int = int(os.getenv("LIVE_CACHE_TTL_SECONDS", "600"))
        self.forecast_cache_ttl_seconds: int = int(os.getenv("CACHE_TTL_MINUTES", "15")) * 60
        self.default_refresh_seconds: int = int(os.getenv("DEFAULT_REFRESH_SECONDS", "600"))
        self.max_refresh_seconds: int = int(os.getenv("MAX_REFRESH_SECONDS", "86400"))
        self.max_live_controllers: int = int(os.getenv("LIVE_MAX_CONTROLLERS", "10"))

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def validate(self) -> list[str]:
        """Return list of settings that would disable caching or break upstream calls."""
        problems = []
        for var in (
            "LIVE_CACHE_TTL_SECONDS",
            "CACHE_TTL_MINUTES",
            "UPSTREAM_TIMEOUT_SECONDS",
            "LIVE_MAX_CONTROLLERS",
        ):
            if getattr(self, _attr_for(var)) <= 0:
                problems.append(var)
        return problems


settings = Settings()


def _attr_for(env_var: str) -> str:
    """Map env var name to Settings attribute name."""
    mapping = {
        "LIVE_CACHE_TTL_SECONDS": "live_cache_ttl_seconds",
        "CACHE_TTL_MINUTES": "forecast_cache_ttl_seconds",
        "UPSTREAM_TIMEOUT_SECONDS": "upstream_timeout_seconds",
        "LIVE_MAX_CONTROLLERS": "max_live_controllers",
    }
    return mapping.get(env_var, env_var.lower())
