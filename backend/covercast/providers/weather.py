"""
OpenWeather-backed weather provider.

Responses are parsed into ``WeatherSnapshot`` at the boundary; a payload that
does not validate is treated as "no data" and logged.
"""

from collections import OrderedDict
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import pytz
import requests
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from covercast.config import Settings, settings as default_settings
from covercast.domain.context import WeatherSnapshot
from covercast.providers.base import WeatherProvider
from covercast.providers.http import ProviderClient
from covercast.utils.cache import Cache, location_key
from covercast.utils.errors import WeatherProviderError
from covercast.utils.rate_limit import RateLimiter


def parse_weather(data: Dict[str, Any], source: str = "observed") -> WeatherSnapshot:
    """
    Parse an OpenWeather observation (current, timemachine or forecast slot).
    
    Raises:
        KeyError, IndexError, TypeError, pydantic ValidationError: malformed payload
    """
    main = data.get("main")
    if main is not None:
        temperature = main["temp"]
        feels_like = main.get("feels_like")
        humidity = main.get("humidity")
    else:
        # One Call "current" blocks keep temp at the top level.
        temperature = data["temp"]
        feels_like = data.get("feels_like")
        humidity = data.get("humidity")
    
    weather = data["weather"][0]
    wind = data.get("wind") or {}
    rain = data.get("rain") or {}
    snow = data.get("snow") or {}
    
    return WeatherSnapshot.from_conditions(
        timestamp=datetime.fromtimestamp(data["dt"], tz=pytz.UTC),
        temperature=float(temperature),
        condition=weather["main"],
        feels_like=feels_like,
        description=weather.get("description", ""),
        humidity=humidity,
        precipitation=float(rain.get("1h") or rain.get("3h") or snow.get("1h") or snow.get("3h") or 0),
        wind_speed=wind.get("speed", data.get("wind_speed")),
        source=source,
    )


def summarize_day(slots: List[WeatherSnapshot]) -> WeatherSnapshot:
    """
    Collapse the 3-hour forecast slots of one day into a single snapshot.
    
    Temperature is the mean of the slots; the day counts as rainy if any slot
    is, otherwise it takes the most common condition.
    """
    temperature = sum(s.temperature for s in slots) / len(slots)
    rainy = [s for s in slots if s.is_raining]
    if rainy:
        condition = rainy[0].condition
    else:
        counts: Dict[str, int] = {}
        for slot in slots:
            counts[slot.condition] = counts.get(slot.condition, 0) + 1
        condition = max(counts, key=counts.get)
    
    return WeatherSnapshot.from_conditions(
        timestamp=slots[0].timestamp,
        temperature=round(temperature, 1),
        condition=condition,
        description=f"{len(slots)}-slot daily summary",
        precipitation=sum(s.precipitation for s in slots),
        source="forecast",
    )


class OpenWeatherProvider(WeatherProvider):
    """Weather from api.openweathermap.org (imperial units)."""
    
    def __init__(
        self,
        config: Settings = default_settings,
        session: Optional[requests.Session] = None,
        cache: Optional[Cache] = None,
        rate_limiter: Optional[RateLimiter] = None,
        backoff_multiplier: float = 0.5,
    ):
        self.config = config
        self.api_key = config.openweather_api_key
        self.cache = cache or Cache(enabled=config.cache_enabled)
        self.client = ProviderClient(
            base_url=config.openweather_base_url,
            rate_limiter=rate_limiter or RateLimiter(
                requests=config.openweather_rate_limit_requests,
                period=config.openweather_rate_limit_period,
                enabled=config.rate_limit_enabled,
            ),
            timeout=config.provider_timeout_seconds,
            max_retries=config.provider_max_retries,
            error_class=WeatherProviderError,
            session=session,
            backoff_multiplier=backoff_multiplier,
        )
    
    def _params(self, lat: float, lon: float, **extra) -> Dict[str, Any]:
        return {"lat": lat, "lon": lon, "appid": self.api_key, "units": "imperial", **extra}
    
    def get_current_weather(self, lat: float, lon: float) -> Optional[WeatherSnapshot]:
        data = self.client.get_json("weather", self._params(lat, lon))
        try:
            return parse_weather(data)
        except (KeyError, IndexError, TypeError, PydanticValidationError) as e:
            logger.warning(f"Discarding malformed current-weather payload for {lat},{lon}: {e}")
            return None
    
    def get_historical_weather(self, lat: float, lon: float, timestamp: datetime) -> Optional[WeatherSnapshot]:
        if timestamp.tzinfo is None:
            timestamp = pytz.UTC.localize(timestamp)
        dt = int(timestamp.timestamp())
        cache_key = location_key("weather:history", lat, lon, dt)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached
        
        data = self.client.get_json("onecall/timemachine", self._params(lat, lon, dt=dt))
        current = None
        if isinstance(data, dict):
            current = data.get("current") or (data.get("data") or [None])[0]
        if not current:
            return None
        
        try:
            snapshot = parse_weather(current)
        except (KeyError, IndexError, TypeError, PydanticValidationError) as e:
            logger.warning(f"Discarding malformed historical-weather payload for {lat},{lon}: {e}")
            return None
        
        self.cache.set(cache_key, snapshot, ttl_seconds=self.config.weather_cache_ttl)
        return snapshot
    
    def get_forecast(self, lat: float, lon: float, days: int = 7, tz: pytz.BaseTzInfo = pytz.UTC) -> List[WeatherSnapshot]:
        data = self.client.get_json("forecast", self._params(lat, lon, cnt=days * 8))
        
        by_day: "OrderedDict[date, List[WeatherSnapshot]]" = OrderedDict()
        for item in (data or {}).get("list", []):
            try:
                slot = parse_weather(item, source="forecast")
            except (KeyError, IndexError, TypeError, PydanticValidationError) as e:
                logger.warning(f"Skipping malformed forecast slot: {e}")
                continue
            by_day.setdefault(slot.timestamp.astimezone(tz).date(), []).append(slot)
        
        return [summarize_day(slots) for slots in list(by_day.values())[:days]]
