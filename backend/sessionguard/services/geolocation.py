"""IP geolocation used to enrich device sessions.

`GeoLocationResolver.resolve` answers loopback addresses itself so local
development and tests are deterministic; every other address goes through
the concrete resolver's `lookup`. A failed lookup resolves to None (unknown
location), which the suspicious-login check treats as "cannot compare".
"""

import ipaddress

import httpx
from config.config import settings
from core.logging import logger
from schemas.devices import GeoLocation

LOCAL_LOCATION = GeoLocation(country_code="LOCAL", location="Local Development")


def is_local_address(ip: str) -> bool:
    if ip == "localhost":
        return True
    try:
        return ipaddress.ip_address(ip).is_loopback
    except ValueError:
        return False


class GeoLocationResolver:
    """Base resolver; subclasses implement `lookup` for non-local addresses."""

    async def resolve(self, ip: str | None) -> GeoLocation | None:
        if not ip:
            return None
        if is_local_address(ip):
            return LOCAL_LOCATION
        try:
            return await self.lookup(ip)
        except Exception as exc:
            logger.warning("Geolocation lookup failed ip={} error={}", ip, exc)
            return None

    async def lookup(self, ip: str) -> GeoLocation | None:
        raise NotImplementedError


class NullGeoResolver(GeoLocationResolver):
    """Resolves loopback addresses only; everything else is unknown."""

    async def lookup(self, ip: str) -> GeoLocation | None:
        return None


class IpInfoGeoResolver(GeoLocationResolver):
    """Resolver backed by an ipinfo.io compatible JSON API.

    Expects `GET {base_url}/{ip}/json` to answer with `country`, `city` and
    `region` fields.
    """

    def __init__(self, base_url: str, token: str | None = None, timeout: float = 3.0):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    async def lookup(self, ip: str) -> GeoLocation | None:
        params = {"token": self.token} if self.token else None
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(f"{self.base_url}/{ip}/json", params=params)
            response.raise_for_status()
            data = response.json()

        country = data.get("country")
        if not country:
            logger.debug("Geolocation service has no country for ip={}", ip)
            return None
        place = ", ".join(part for part in (data.get("city"), data.get("region")) if part)
        return GeoLocation(country_code=country, location=place or None)


def build_geo_resolver() -> GeoLocationResolver:
    """Return the resolver selected by `GEOIP_PROVIDER`."""
    provider = settings.GEOIP_PROVIDER.lower()
    if provider == "ipinfo":
        return IpInfoGeoResolver(
            settings.GEOIP_API_URL,
            token=settings.GEOIP_API_TOKEN,
            timeout=settings.GEOIP_TIMEOUT_SECONDS,
        )
    if provider != "none":
        logger.warning("Unknown GEOIP_PROVIDER={}, falling back to none", provider)
    return NullGeoResolver()
