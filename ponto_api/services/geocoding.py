import logging
from typing import Optional

import requests
from flask import current_app

logger = logging.getLogger(__name__)


def reverse_geocode(lat: float, lng: float) -> Optional[str]:
    """
    Human-readable address for a coordinate via a Nominatim-compatible
    endpoint (REVERSE_GEOCODING_URL). Disabled when the URL is unset.
    """
    url = current_app.config.get("REVERSE_GEOCODING_URL")
    if not url or lat is None or lng is None:
        return None
    try:
        res = requests.get(
            url,
            params={"lat": lat, "lon": lng, "format": "json"},
            headers={"User-Agent": current_app.config.get("REVERSE_GEOCODING_USER_AGENT", "ponto-api/1.0")},
            timeout=current_app.config.get("REVERSE_GEOCODING_TIMEOUT", 5),
        )
        if res.status_code == 200:
            return (res.json() or {}).get("display_name")
        logger.warning("Reverse geocoding returned HTTP %s", res.status_code)
    except (requests.RequestException, ValueError) as e:
        logger.error("Reverse geocoding failed: %s", e)
    return None
