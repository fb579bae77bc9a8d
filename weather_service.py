"""
Weather integration for locations and activity logs.
Uses the OpenWeather One Call API to look up a location's timezone and to
snapshot current conditions when an activity is recorded.
"""
import logging
import os
from typing import Dict, Optional, Any
import requests

logger = logging.getLogger(__name__)

# OpenWeather One Call API
OPENWEATHER_ONECALL_URL = "https://api.openweathermap.org/data/3.0/onecall"


def get_weather_snapshot(lat: float = None, lon: float = None) -> Optional[Dict[str, Any]]:
    """
    Get the timezone and current conditions for a coordinate pair.

    Args:
        lat, lon: Coordinates of the location

    Returns:
        {'timezone', 'current', 'moon_phase'} or None if unavailable
    """
    api_key = os.getenv("OPENWEATHER_API_KEY")
    if not api_key:
        logger.debug("No OpenWeather API key configured")
        return None
    if lat is None or lon is None:
        return None

    try:
        response = requests.get(
            OPENWEATHER_ONECALL_URL,
            params={
                'lat': lat,
                'lon': lon,
                'appid': api_key,
                'units': 'imperial',
                'exclude': 'minutely,hourly,alerts',
            },
            timeout=5,
        )
        response.raise_for_status()
        data = response.json()

        daily = data.get('daily') or [{}]
        return {
            'timezone': data.get('timezone'),
            'current': _parse_current_weather(data.get('current') or {}),
            'moon_phase': daily[0].get('moon_phase'),
        }

    except requests.RequestException as e:
        logger.error(f"Weather API request failed: {e}")
        return None
    except (ValueError, AttributeError, TypeError) as e:
        logger.error(f"Weather parsing failed: {e}")
        return None


def _parse_current_weather(data: Dict) -> Dict[str, Any]:
    """Parse the ``current`` block of a One Call response."""
    weather = (data.get('weather') or [None])[0]

    return {
        'dt': data.get('dt'),
        'sunrise': data.get('sunrise'),
        'sunset': data.get('sunset'),
        'temp': data.get('temp'),
        'humidity': data.get('humidity'),
        'weather': {
            'id': weather.get('id'),
            'main': weather.get('main'),
            'description': weather.get('description'),
            'icon': weather.get('icon'),
        } if weather else None,
    }


def get_location_timezone(lat, lon):
    """Return the IANA timezone for a coordinate pair, or None."""
    snapshot = get_weather_snapshot(lat, lon)
    return snapshot.get('timezone') if snapshot else None
