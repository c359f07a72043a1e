"""
Best-effort IP risk lookup.

Used for informational risk scoring on referral claims, never for blocking.
The lookup has a short timeout and any failure degrades to a low-risk result;
errors are logged and never reach the caller.
"""

import ipaddress
from typing import Any, Optional

import httpx
import structlog

from core.config import get_settings
from core.exceptions import ExternalLookupError
from schemas.anti_abuse import IPRiskInfo, IPRiskLevel

logger = structlog.get_logger(__name__)

USER_AGENT = "Luminex-AntiCheat/1.0"


def _text(value: Any) -> Optional[str]:
    """Provider fields are untrusted; anything that is not a string is dropped."""
    return value if isinstance(value, str) else None


def calculate_risk_level(info: IPRiskInfo) -> IPRiskLevel:
    """Calculate risk level from IP info."""
    if info.is_vpn or info.is_proxy or info.is_tor:
        return IPRiskLevel.HIGH
    if info.is_datacenter or "hosting" in (info.org or "").lower():
        return IPRiskLevel.MEDIUM
    return IPRiskLevel.LOW


class IPIntelligenceService:
    """
    Checks IP addresses for VPN/proxy/Tor/hosting indicators.

    Combines a local datacenter-range check with an ipapi.co style JSON
    lookup. Loopback, private and unparseable addresses skip the lookup.
    """

    def __init__(
        self,
        lookup_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        enabled: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.lookup_url = lookup_url or settings.IP_RISK_LOOKUP_URL
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.IP_RISK_LOOKUP_TIMEOUT_SECONDS
        self.enabled = settings.IP_RISK_LOOKUP_ENABLED if enabled is None else enabled
        self._transport = transport

        # Known datacenter/cloud IP ranges (sample)
        self._datacenter_ranges = self._load_datacenter_ranges()

    def _load_datacenter_ranges(self) -> list[ipaddress.IPv4Network]:
        """Load known datacenter IP ranges."""
        ranges = [
            # AWS
            "3.0.0.0/8",
            "52.0.0.0/8",
            # Google Cloud
            "35.0.0.0/8",
            # Azure
            "40.0.0.0/8",
            # DigitalOcean
            "104.131.0.0/16",
            "167.99.0.0/16",
            # Linode
            "45.33.0.0/16",
            # Vultr
            "45.32.0.0/16",
        ]
        return [ipaddress.IPv4Network(r) for r in ranges]

    def _is_datacenter_ip(self, ip: str) -> bool:
        """Check if IP belongs to known datacenter."""
        try:
            ip_obj = ipaddress.IPv4Address(ip)
            return any(ip_obj in network for network in self._datacenter_ranges)
        except (ipaddress.AddressValueError, ValueError):
            return False

    @staticmethod
    def _is_internal(ip: str) -> bool:
        try:
            ip_obj = ipaddress.ip_address(ip)
        except ValueError:
            return True  # "unknown" and garbage are not worth a lookup
        return ip_obj.is_private or ip_obj.is_loopback or ip_obj.is_link_local

    async def check_ip_risk(self, ip: str) -> IPRiskInfo:
        """Return risk info for ``ip``; never raises."""
        if self._is_internal(ip):
            return IPRiskInfo(ip=ip)

        result = IPRiskInfo(ip=ip, is_datacenter=self._is_datacenter_ip(ip))

        if self.enabled:
            try:
                data = await self._query_provider(ip)
                self._apply_provider_data(result, data)
            except ExternalLookupError as e:
                logger.warning("ip_risk_lookup_failed", ip=ip[:8], error=str(e))
                return IPRiskInfo(ip=ip)

        result.risk_level = calculate_risk_level(result)
        return result

    async def _query_provider(self, ip: str) -> dict[str, Any]:
        url = self.lookup_url.format(ip=ip)
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout_seconds) as client:
                response = await client.get(url, headers={"User-Agent": USER_AGENT})
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ExternalLookupError(f"{type(e).__name__}: {e}") from e

        if not isinstance(data, dict) or data.get("error"):
            raise ExternalLookupError(f"provider returned an error payload: {data!r:.120}")
        return data

    @staticmethod
    def _apply_provider_data(result: IPRiskInfo, data: dict[str, Any]) -> None:
        org = _text(data.get("org")) or ""
        org_lower = org.lower()
        connection = data.get("connection")
        connection_type = _text(connection.get("type")) if isinstance(connection, dict) else None

        result.country = _text(data.get("country_name"))
        result.country_code = _text(data.get("country_code"))
        result.region = _text(data.get("region"))
        result.city = _text(data.get("city"))
        result.isp = org or None
        result.org = org or None

        result.is_vpn = (
            "vpn" in org_lower
            or "proxy" in org_lower
            or "hosting" in org_lower
            or connection_type == "hosting"
        )
        result.is_proxy = "proxy" in org_lower or connection_type == "proxy"
        result.is_tor = connection_type == "tor" or "tor" in org_lower.split()
