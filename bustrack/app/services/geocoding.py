"""
Reverse geocoding for the student view.

Turns the bus coordinates into a readable place name via Nominatim.
Purely cosmetic: any failure degrades to a placeholder.
"""

import logging
from typing import Optional, Tuple

import httpx

from bustrack.app.core.config import settings

logger = logging.getLogger("bustrack.geocoding")

ADDRESS_UNAVAILABLE = "Address unavailable"


class ReverseGeocoder:
    """
    Nominatim client that only looks up coordinates it has not seen last.

    Repeated requests for an unchanged bus position reuse the previous answer.
    """

    def __init__(
        self,
        base_url: str = "https://nominatim.openstreetmap.org",
        timeout: float = 5.0,
        user_agent: str = "bustrack/1.0",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Accept": "application/json", "User-Agent": user_agent},
            transport=transport,
        )
        self._last_coords: Optional[Tuple[float, float]] = None
        self._last_address: Optional[str] = None

    async def describe(self, latitude: float, longitude: float) -> str:
        coords = (latitude, longitude)
        if coords == self._last_coords and self._last_address is not None:
            return self._last_address

        address = await self._lookup(latitude, longitude)
        if address != ADDRESS_UNAVAILABLE:
            self._last_coords = coords
            self._last_address = address
        return address

    async def _lookup(self, latitude: float, longitude: float) -> str:
        try:
            response = await self._client.get(
                "/reverse",
                params={"lat": latitude, "lon": longitude, "format": "json"},
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Reverse geocode error for (%s, %s): %s", latitude, longitude, e)
            return ADDRESS_UNAVAILABLE

        if isinstance(data, dict) and data.get("display_name"):
            return data["display_name"]
        return ADDRESS_UNAVAILABLE

    async def close(self) -> None:
        await self._client.aclose()


_geocoder: Optional[ReverseGeocoder] = None


def get_geocoder() -> ReverseGeocoder:
    """FastAPI dependency returning the process-wide geocoder."""
    global _geocoder
    if _geocoder is None:
        _geocoder = ReverseGeocoder(
            base_url=settings.nominatim_url,
            timeout=settings.geocoding_timeout,
            user_agent=settings.geocoding_user_agent,
        )
    return _geocoder


async def close_geocoder() -> None:
    global _geocoder
    if _geocoder is not None:
        await _geocoder.close()
        _geocoder = None
