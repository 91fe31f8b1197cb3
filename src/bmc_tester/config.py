"""Connection options for a single BMC endpoint."""

from dataclasses import dataclass, replace
from typing import Optional, Tuple
from urllib.parse import urlparse


DEFAULT_PORTS = {"https": 443, "http": 80}


@dataclass
class Options:
    """Flat set of options shared by every command."""

    endpoint: str
    username: str
    password: str
    basic_auth: bool = True
    uri_suffix: str = ""
    entity_tag: str = ""
    disable_etag_match: bool = False
    if_none_match_header: str = ""
    verify_ssl: bool = False
    timeout: float = 30.0
    host_header: Optional[str] = None

    def with_endpoint(self, endpoint: str, host_header: Optional[str] = None) -> "Options":
        """Return a copy of these options pointing at another endpoint."""
        return replace(self, endpoint=endpoint, host_header=host_header)


def normalize_endpoint(endpoint: str) -> str:
    """
    Return the endpoint as a URL with a scheme and no trailing slash.

    Raises:
        ValueError: If the endpoint is empty or uses an unsupported scheme
    """
    endpoint = (endpoint or "").strip()
    if not endpoint:
        raise ValueError("BMC endpoint must not be empty")

    if "://" not in endpoint:
        endpoint = f"https://{endpoint}"

    scheme = endpoint.split("://", 1)[0].lower()
    if scheme not in DEFAULT_PORTS:
        raise ValueError(f"Unsupported endpoint scheme: '{scheme}'")

    return endpoint.rstrip("/")


def parse_endpoint(endpoint: str) -> Tuple[str, str, int]:
    """
    Split an endpoint into scheme, host and port.

    Args:
        endpoint: BMC URL, e.g. "https://10.0.0.5" or "10.0.0.5:8443"

    Returns:
        (scheme, host, port) with the port defaulted from the scheme

    Examples:
        "https://10.0.0.5" -> ("https", "10.0.0.5", 443)
        "http://bmc.lab:8000" -> ("http", "bmc.lab", 8000)
    """
    parsed = urlparse(normalize_endpoint(endpoint))
    scheme = parsed.scheme.lower()
    if not parsed.hostname:
        raise ValueError(f"Could not determine host from endpoint: '{endpoint}'")
    port = parsed.port or DEFAULT_PORTS[scheme]
    return scheme, parsed.hostname, port
