"""Reverse geocoding through OpenStreetMap Nominatim."""

import asyncio

import requests
import structlog

from smartsos.domain.result import Result

logger = structlog.get_logger(__name__)


class NominatimGeocoder:
    """Turns coordinates into a short "street, city" display string."""

    def __init__(
        self,
        url: str = "https://nominatim.openstreetmap.org/reverse",
        user_agent: str = "smartsos-monitor/0.1",
        session: requests.Session | None = None,
    ) -> None:
        self.url = url
        self.user_agent = user_agent
        self.session = session or requests.Session()
        self.logger = logger.bind(component="nominatim_geocoder")

    async def reverse(self, lat: float, lng: float) -> Result[str]:
        return await asyncio.to_thread(self._lookup, lat, lng)

    def _lookup(self, lat: float, lng: float) -> Result[str]:
        try:
            response = self.session.get(
                self.url,
                params={"format": "json", "lat": lat, "lon": lng},
                headers={"User-Agent": self.user_agent},
            )
            response.raise_for_status()
            data = response.json()
            street = data["display_name"].split(",")[0].strip()
        except (requests.RequestException, ValueError, KeyError, TypeError, AttributeError) as e:
            self.logger.warning("reverse_geocode_failed", error=str(e))
            return Result.err(e)

        address = data.get("address") or {}
        city = address.get("city") or address.get("town") or address.get("village")
        return Result.ok(f"{street}, {city}" if city else street)
