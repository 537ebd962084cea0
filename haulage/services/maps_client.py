import logging
from dataclasses import dataclass

import requests

from haulage.core.config import settings
from haulage.core.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)


@dataclass
class MapsConfig:
    api_key: str
    base_url: str = "https://maps.googleapis.com/maps/api"
    timeout: float = 8.0


@dataclass(frozen=True)
class RouteMetrics:
    distance_km: float
    duration_min: int


class MapsClient:
    """Distance/duration and reverse geocoding against Google Maps web services."""

    def __init__(self, cfg: MapsConfig, session: requests.Session | None = None):
        self.cfg = cfg
        self._http = session or requests.Session()

    def _get(self, path: str, params: dict) -> dict:
        url = f"{self.cfg.base_url}{path}"
        try:
            r = self._http.get(url, params={**params, "key": self.cfg.api_key}, timeout=self.cfg.timeout)
        except requests.Timeout as e:
            logger.warning("maps request timed out: %s", path)
            raise UpstreamUnavailable("Routing service timed out") from e
        except requests.RequestException as e:
            logger.warning("maps request failed: %s: %s", path, e)
            raise UpstreamUnavailable("Routing service unavailable") from e
        if r.status_code >= 400:
            raise UpstreamUnavailable(f"Routing service returned {r.status_code}")
        try:
            data = r.json()
        except ValueError as e:
            raise UpstreamUnavailable("Routing service returned an unreadable response") from e
        status = data.get("status")
        if status not in ("OK", "ZERO_RESULTS"):
            raise UpstreamUnavailable(f"Routing service status {status}: {data.get('error_message', '')}".strip())
        return data

    def distance_and_duration(self, lat1: float, lng1: float, lat2: float, lng2: float) -> RouteMetrics:
        data = self._get("/distancematrix/json", {
            "origins": f"{lat1},{lng1}",
            "destinations": f"{lat2},{lng2}",
            "mode": "driving",
        })
        try:
            element = data["rows"][0]["elements"][0]
        except (KeyError, IndexError) as e:
            raise UpstreamUnavailable("Routing service returned no route") from e
        if element.get("status") != "OK":
            raise UpstreamUnavailable(f"No route between points ({element.get('status')})")
        meters = element["distance"]["value"]
        seconds = element["duration"]["value"]
        return RouteMetrics(distance_km=round(meters / 1000, 3), duration_min=round(seconds / 60))

    def city_for_point(self, lat: float, lng: float) -> str | None:
        data = self._get("/geocode/json", {"latlng": f"{lat},{lng}", "result_type": "locality"})
        for result in data.get("results") or []:
            for comp in result.get("address_components") or []:
                if "locality" in (comp.get("types") or []):
                    return comp.get("long_name")
        return None


def maps_client() -> MapsClient:
    return MapsClient(MapsConfig(
        api_key=settings.GOOGLE_MAPS_API_KEY,
        base_url=settings.MAPS_BASE_URL,
        timeout=settings.MAPS_TIMEOUT_SECONDS,
    ))
