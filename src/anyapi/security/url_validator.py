"""Outbound URL validation against server-side request forgery.

Every user-supplied URL the engine fetches (description URLs, discovery
probes, GraphQL endpoints) passes through ``validate_external_url`` first.
Hostnames are checked by name only; no DNS resolution happens here.
"""

import ipaddress
from typing import Union
from urllib.parse import urlparse

from anyapi.exceptions import UnsafeUrlError

ALLOWED_SCHEMES = ("http", "https")

BLOCKED_HOSTS = frozenset({
    "localhost",
    "metadata.google.internal",
    "metadata.goog",
    "169.254.169.254",
    "100.100.100.200",
    "fd00:ec2::254",
    "0.0.0.0",
    "::1",
    "127.0.0.1",
})

BLOCKED_SUFFIXES = (".local", ".internal", ".localhost")

IpAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def _is_blocked_ip(address: IpAddress) -> bool:
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        return _is_blocked_ip(address.ipv4_mapped)
    return (
        address.is_loopback
        or address.is_private
        or address.is_link_local
        or address.is_reserved
        or address.is_multicast
        or address.is_unspecified
        # 100.64.0.0/10 carrier-grade NAT is neither private nor global
        or not address.is_global
    )


def validate_external_url(url: str) -> str:
    """Reject URLs pointing at loopback, private, link-local or metadata targets.

    Args:
        url: The absolute URL to check.

    Returns:
        The URL unchanged when it is allowed.

    Raises:
        UnsafeUrlError: When the URL is empty, unparseable, not HTTP(S) or
            targets a blocked host.
    """
    if not url or not isinstance(url, str):
        raise UnsafeUrlError(str(url), "URL is empty")
    try:
        parsed = urlparse(url.strip())
        host = parsed.hostname
        # Accessing port validates it
        parsed.port
    except ValueError as e:
        raise UnsafeUrlError(url, f"URL cannot be parsed ({e})") from e

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        raise UnsafeUrlError(url, f"scheme '{parsed.scheme}' is not allowed, use http or https")
    if not host:
        raise UnsafeUrlError(url, "URL has no host")

    host = host.lower().rstrip(".")
    if host in BLOCKED_HOSTS:
        raise UnsafeUrlError(url, f"host '{host}' is blocked")
    if host.endswith(BLOCKED_SUFFIXES):
        raise UnsafeUrlError(url, f"host '{host}' is an internal name")

    try:
        address = ipaddress.ip_address(host.split("%", 1)[0])
    except ValueError:
        return url
    if _is_blocked_ip(address):
        raise UnsafeUrlError(url, f"address {address} is not a public address")
    return url


def is_safe_url(url: str) -> bool:
    try:
        validate_external_url(url)
    except UnsafeUrlError:
        return False
    return True
