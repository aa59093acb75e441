"""Domain models for live air-quality and weather data.

Plain dataclasses, independent of the Open-Meteo wire format. Routes
serialize them with ``to_dict()``.
"""

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class DataSource(str, Enum):
    LIVE = "live"
    ERROR = "error"


class RefreshStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERRORED = "errored"


@dataclass(frozen=True)
class LocationQuery:
    latitude: float
    longitude: float

    def is_valid(self) -> bool:
        return -90 <= self.latitude <= 90 and -180 <= self.longitude <= 180


@dataclass(frozen=True)
class AirQualitySample:
    time: str  # ISO-8601, local to the response timezone
    pm2_5: float | None
    pm10: float | None
    pollutants: dict[str, float | None] = field(default_factory=dict)


@dataclass(frozen=True)
class WeatherSample:
    time: str
    temperature: float | None
    humidity: float | None
    wind_speed: float | None
    pressure: float | None
    fields: dict[str, Any] = field(default_factory=dict)  # every upstream field, by upstream name


@dataclass(frozen=True)
class DailyWeather:
    date: str
    temperature_max: float | None
    temperature_min: float | None
    precipitation: float | None
    wind_speed_max: float | None
    uv_index_max: float | None
    weather_code: int | None


@dataclass(frozen=True)
class WeatherReport:
    current: WeatherSample
    hourly: list[WeatherSample]
    daily: list[DailyWeather]


@dataclass(frozen=True)
class AQIResult:
    index: int
    category: str
    color_hint: str
    advice: str


@dataclass(frozen=True)
class Summary:
    timestamp: str
    pm25: float | None
    pm10: float | None
    co: float | None
    no2: float | None
    so2: float | None
    o3: float | None
    aod: float | None
    uv_index: float | None
    aqi: AQIResult
    location: dict | None


@dataclass(frozen=True)
class FetchResult:
    """Outcome of one upstream call. Failures are values, not exceptions."""

    data: Any
    request_url: str
    success: bool
    error: str | None = None
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class LocationData:
    air_quality: FetchResult
    weather: FetchResult
    timestamp: datetime
    location: LocationQuery


@dataclass(frozen=True)
class LiveDataState:
    air_quality: list[AirQualitySample] | None = None
    weather: WeatherReport | None = None
    summary: Summary | None = None
    loading: bool = False
    error: str | None = None
    last_update: datetime | None = None
    data_source: DataSource = DataSource.LIVE
    status: RefreshStatus = RefreshStatus.IDLE
    request_urls: dict[str, str | None] = field(
        default_factory=lambda: {"air_quality": None, "weather": None}
    )

    def to_dict(self) -> dict:
        result = dataclasses.asdict(self)
        result["data_source"] = self.data_source.value
        result["status"] = self.status.value
        result["last_update"] = self.last_update.isoformat() if self.last_update else None
        return result
