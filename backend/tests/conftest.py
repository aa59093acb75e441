"""Shared fixtures: canned Open-Meteo payloads and a recording mock upstream."""

import copy

import httpx
import pytest


AIR_QUALITY_PAYLOAD = {
    "latitude": 28.625,
    "longitude": 77.25,
    "generationtime_ms": 0.41,
    "utc_offset_seconds": 19800,
    "timezone": "Asia/Kolkata",
    "timezone_abbreviation": "IST",
    "hourly": {
        "time": ["2026-10-19T00:00", "2026-10-19T01:00", "2026-10-19T02:00"],
        "pm10": [201.3, 230.0, 245.0],
        "pm2_5": [120.4, 140.2, 156.0],
        "carbon_monoxide": [980.0, 1010.0, 1050.0],
        "nitrogen_dioxide": [41.2, 44.0, 47.5],
        "sulphur_dioxide": [12.0, 13.1, 14.2],
        "ozone": [3.0, 1.0, 0.0],
        "aerosol_optical_depth": [0.61, 0.66, 0.7],
        "uv_index": [0.0, 0.0, 0.0],
    },
}

WEATHER_PAYLOAD = {
    "latitude": 28.625,
    "longitude": 77.25,
    "generationtime_ms": 1.2,
    "timezone": "Asia/Kolkata",
    "elevation": 216.0,
    "current": {
        "time": "2026-10-19T02:00",
        "interval": 900,
        "temperature_2m": 24.3,
        "relative_humidity_2m": 61,
        "apparent_temperature": 25.1,
        "is_day": 0,
        "wind_speed_10m": 7.2,
        "wind_direction_10m": 250,
        "precipitation": 0.0,
        "weather_code": 1,
        "cloud_cover": 20,
        "pressure_msl": 1012.4,
    },
    "hourly": {
        "time": ["2026-10-19T00:00", "2026-10-19T01:00"],
        "temperature_2m": [25.0, 24.6],
        "relative_humidity_2m": [58, 60],
        "wind_speed_10m": [6.8, 7.0],
        "pressure_msl": [1012.0, 1012.2],
    },
    "daily": {
        "time": ["2026-10-19"],
        "weather_code": [1],
        "temperature_2m_max": [31.0],
        "temperature_2m_min": [19.5],
        "precipitation_sum": [0.0],
        "wind_speed_10m_max": [12.0],
        "uv_index_max": [6.1],
    },
}


def _archive_payload() -> dict:
    times = [f"2026-10-{day:02d}T{hour:02d}:00" for day in (10, 11) for hour in range(24)]
    return {
        "latitude": 28.625,
        "longitude": 77.25,
        "timezone": "Asia/Kolkata",
        "hourly": {
            "time": times,
            "temperature_2m": [20.0] * 24 + [30.0] * 24,
            "relative_humidity_2m": [50] * 12 + [70] * 12 + [None] * 24,
            "precipitation": [0.0] * 48,
            "wind_speed_10m": [5.0] * 48,
        },
    }


class FakeOpenMeteo:
    """Serves canned responses per Open-Meteo host and records every request.

    Each response slot is either ``(status, json_body)``, an ``httpx.Response``,
    or an exception class raised as a transport failure.
    """

    def __init__(self):
        self.air_quality = (200, copy.deepcopy(AIR_QUALITY_PAYLOAD))
        self.weather = (200, copy.deepcopy(WEATHER_PAYLOAD))
        self.archive = (200, _archive_payload())
        self.requests: list[httpx.Request] = []

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        if host.startswith("air-quality-api"):
            slot = self.air_quality
        elif host.startswith("archive-api"):
            slot = self.archive
        else:
            slot = self.weather

        if isinstance(slot, type) and issubclass(slot, Exception):
            raise slot("connection refused", request=request)
        if isinstance(slot, httpx.Response):
            return slot
        status, body = slot
        return httpx.Response(status, json=body)

    def count(self, host_prefix: str) -> int:
        return sum(1 for r in self.requests if r.url.host.startswith(host_prefix))


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def upstream():
    return FakeOpenMeteo()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def air_quality_payload():
    return copy.deepcopy(AIR_QUALITY_PAYLOAD)


@pytest.fixture
def weather_payload():
    return copy.deepcopy(WEATHER_PAYLOAD)
