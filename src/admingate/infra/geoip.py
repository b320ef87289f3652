"""IP geolocation client for unauthorized access enrichment.

Two public providers are tried in order (ipapi.co, then ip-api.com), each
with a bounded timeout. Lookups never raise: any failure degrades to the
"unknown" sentinel in every field.
"""

import ipaddress
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from admingate.app.config import GeoIPConfig, get_settings
from admingate.app.metrics.collector import GEOIP_LOOKUPS_TOTAL
from admingate.core.client_ip import is_unknown_ip
from admingate.core.logging_schema import Component, LogEvent
from admingate.core.models.audit import UNKNOWN

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

GEOIP_MAX_CONNECTIONS = 20
GEOIP_MAX_KEEPALIVE = 5
USER_AGENT = "admingate-geoip/1.0"


@dataclass(frozen=True)
class GeoLocation:
    country: str = UNKNOWN
    region: str = UNKNOWN
    city: str = UNKNOWN
    isp: str = UNKNOWN

    @property
    def resolved(self) -> bool:
        return self != UNKNOWN_LOCATION


UNKNOWN_LOCATION = GeoLocation()


def _field(data: dict[str, Any], *keys: str) -> str:
    """First non-empty string among keys, else the sentinel."""
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return UNKNOWN


def parse_ipapi_co(data: dict[str, Any]) -> GeoLocation | None:
    """ipapi.co returns {"error": true, "reason": ...} on failure."""
    if data.get("error"):
        return None
    location = GeoLocation(
        country=_field(data, "country_name"),
        region=_field(data, "region"),
        city=_field(data, "city"),
        isp=_field(data, "org"),
    )
    return location if location.resolved else None


def parse_ip_api_com(data: dict[str, Any]) -> GeoLocation | None:
    """ip-api.com returns {"status": "fail", "message": ...} on failure."""
    if data.get("status") != "success":
        return None
    location = GeoLocation(
        country=_field(data, "country"),
        region=_field(data, "regionName"),
        city=_field(data, "city"),
        isp=_field(data, "isp", "org"),
    )
    return location if location.resolved else None


def is_routable(ip: str) -> bool:
    """Only public addresses are worth a provider round trip."""
    if is_unknown_ip(ip):
        return False
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return address.is_global


# =============================================================================
# HTTP Client Management
# =============================================================================

_http_client: httpx.AsyncClient | None = None


async def get_http_client() -> httpx.AsyncClient:
    """Get or create shared httpx AsyncClient."""
    global _http_client
    if _http_client is None:
        _http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(get_settings().geoip.timeout),
            limits=httpx.Limits(
                max_connections=GEOIP_MAX_CONNECTIONS,
                max_keepalive_connections=GEOIP_MAX_KEEPALIVE,
            ),
            headers={"User-Agent": USER_AGENT},
        )
    return _http_client


async def close_http_client() -> None:
    """Close shared httpx client. Call on application shutdown."""
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None


# =============================================================================
# Locator
# =============================================================================


class GeoLocator:
    """Best-effort IP geolocation with a fallback provider."""

    def __init__(
        self,
        config: GeoIPConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or get_settings().geoip
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        return await get_http_client()

    async def _query(self, provider: str, url: str) -> dict[str, Any] | None:
        client = await self._get_client()
        try:
            response = await client.get(url, timeout=self._config.timeout)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            GEOIP_LOOKUPS_TOTAL.labels(provider=provider, result="error").inc()
            logger.warning(
                "Geolocation provider failed",
                extra={
                    "event": LogEvent.GEOIP_FAILED,
                    "component": Component.GEOIP,
                    "provider": provider,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            return None
        return data if isinstance(data, dict) else None

    async def lookup(self, ip: str) -> GeoLocation:
        """Resolve location for ip. Never raises."""
        if not self._config.enabled or not is_routable(ip):
            return UNKNOWN_LOCATION

        providers = (
            ("ipapi.co", self._config.primary_url, parse_ipapi_co),
            ("ip-api.com", self._config.fallback_url, parse_ip_api_com),
        )
        for provider, template, parse in providers:
            data = await self._query(provider, template.format(ip=ip))
            if data is None:
                continue
            location = parse(data)
            if location is not None:
                GEOIP_LOOKUPS_TOTAL.labels(provider=provider, result="success").inc()
                return location
            GEOIP_LOOKUPS_TOTAL.labels(provider=provider, result="empty").inc()

        return UNKNOWN_LOCATION
