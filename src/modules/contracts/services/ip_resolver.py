import logging

import httpx

from config import Settings, get_settings

logger = logging.getLogger(__name__)

UNKNOWN_IP = "unknown"


class IpAddressResolver:
    """Looks up the caller's public address through an HTTP echo service."""

    def __init__(self, settings: Settings = None, transport: httpx.BaseTransport = None):
        settings = settings or get_settings()
        self.url = settings.ip_lookup_url
        self.timeout = settings.ip_lookup_timeout_seconds
        self.transport = transport

    def resolve(self) -> str:
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.get(self.url)
                response.raise_for_status()
                return response.json().get("ip") or UNKNOWN_IP
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"IP address lookup failed: {e}")
            return UNKNOWN_IP
