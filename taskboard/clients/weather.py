"""
Weather widget client: Open-Meteo geocoding + forecast.
"""

import logging
from typing import Any, Mapping

import httpx

from taskboard.clients.base import FetchResult, UpstreamClient, get_json
from taskboard.errors import NotFound
from taskboard.models import WidgetType

logger = logging.getLogger(__name__)

DEFAULT_LATITUDE = "40.7128"
DEFAULT_LONGITUDE = "-74.0060"

CURRENT_FIELDS = "temperature_2m,relative_humidity_2m,weather_code,wind_speed_10m"
DAILY_FIELDS = "weather_code,temperature_2m_max,temperature_2m_min"


class WeatherClient(UpstreamClient):
    widget_type = WidgetType.WEATHER.value
    default_refresh_seconds = 600
    cache_settings = ("location", "units", "latitude", "longitude")
    derived_settings = {"location": ("latitude", "longitude")}

    def __init__(self, http: httpx.AsyncClient, geocoding_url: str, forecast_url: str):
        self._http = http
        self.geocoding_url = geocoding_url
        self.forecast_url = forecast_url

    def cache_identity(self, settings: Mapping[str, str]) -> dict[str, str]:
        # Coordinates derived from a location name must not change the key.
        identity = {"units": settings.get("units") or "celsius"}
        if settings.get("location"):
            identity["location"] = settings["location"]
        else:
            identity["latitude"] = settings.get("latitude") or DEFAULT_LATITUDE
            identity["longitude"] = settings.get("longitude") or DEFAULT_LONGITUDE
        return identity

    async def geocode(self, location: str) -> tuple[str, str]:
        """Resolve a place name to (latitude, longitude); first match only."""
        data = await get_json(
            self._http, self.geocoding_url, "Geocoding", params={"name": location, "count": 1}
        )
        results = data.get("results") if isinstance(data, dict) else None
        if not results:
            raise NotFound(f"Could not find location: {location}")
        first = results[0]
        return str(first["latitude"]), str(first["longitude"])

    async def fetch(self, settings: Mapping[str, str]) -> FetchResult:
        derived: dict[str, str] = {}

        location = settings.get("location")
        if location:
            lat, lon = await self.geocode(location)
            derived = {"latitude": lat, "longitude": lon}
        elif settings.get("latitude") and settings.get("longitude"):
            lat, lon = settings["latitude"], settings["longitude"]
        else:
            lat, lon = DEFAULT_LATITUDE, DEFAULT_LONGITUDE

        units = settings.get("units") or "celsius"
        params: dict[str, Any] = {
            "latitude": lat,
            "longitude": lon,
            "current": CURRENT_FIELDS,
            "daily": DAILY_FIELDS,
            "temperature_unit": "fahrenheit" if units == "fahrenheit" else "celsius",
            "timezone": "auto",
            "forecast_days": 5,
        }
        data = await get_json(self._http, self.forecast_url, "Weather", params=params)
        logger.debug(f"Weather fetched for ({lat}, {lon})")
        return FetchResult(data=data, derived=derived)
