"""SSRF guard for landing URLs.

Every URL the pipeline is about to fetch goes through :func:`check_url` first. The guard resolves
the hostname and refuses when any resolved address points back into loopback, private,
link-local or otherwise non-routable space, so a public-looking name that rebinds to an internal
address is still rejected. Resolution failure is a rejection.
"""

from __future__ import annotations

import ipaddress
import socket
from dataclasses import dataclass
from typing import Callable, Iterable
from urllib.parse import urlsplit

from beacongate.logging import get_logger

logger = get_logger(__name__)

MAX_URL_LENGTH = 2048

ALLOWED_SCHEMES = frozenset({"http", "https"})

BLOCKED_HOSTNAMES = frozenset(
    {
        "localhost",
        "127.0.0.1",
        "::1",
        "0.0.0.0",
        "169.254.169.254",
        "100.100.100.200",
    }
)

Resolver = Callable[[str], Iterable[str]]

_CGNAT = ipaddress.ip_network("100.64.0.0/10")


@dataclass(frozen=True)
class UrlCheck:
    """Guard verdict. ``error`` is set whenever ``ok`` is false."""

    ok: bool
    error: str | None = None


def system_resolver(host: str) -> list[str]:
    """Resolve a hostname to every address the system resolver returns."""

    infos = socket.getaddrinfo(host, None, proto=socket.IPPROTO_TCP)
    return [str(info[4][0]) for info in infos]


def is_blocked_hostname(host: str) -> bool:
    host = host.strip().lower().rstrip(".")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host in BLOCKED_HOSTNAMES or host.endswith(".localhost")


def is_blocked_ip(ip: ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
    """True for any address that must never be fetched."""

    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return is_blocked_ip(ip.ipv4_mapped)
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
        or (isinstance(ip, ipaddress.IPv6Address) and ip.is_site_local)
        # 100.64.0.0/10 is shared address space, not covered by is_private
        or (isinstance(ip, ipaddress.IPv4Address) and ip in _CGNAT)
    )


def check_url(
    url: str,
    *,
    resolver: Resolver | None = None,
    max_length: int = MAX_URL_LENGTH,
) -> UrlCheck:
    """Validate that ``url`` is safe to fetch.

    Args:
        url: Candidate URL.
        resolver: Hostname resolver, defaults to the system resolver.
        max_length: Maximum accepted URL length.

    Returns:
        UrlCheck: ``ok=True`` or ``ok=False`` with a human-readable error.
    """

    if len(url) > max_length:
        return UrlCheck(False, f"URL exceeds maximum length of {max_length} characters")

    try:
        parts = urlsplit(url)
    except ValueError:
        return UrlCheck(False, "Invalid URL")

    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        return UrlCheck(False, "Only http and https URLs are allowed")

    host = parts.hostname
    if not host:
        return UrlCheck(False, "URL has no hostname")

    if is_blocked_hostname(host):
        return UrlCheck(False, "SSRF protection: hostname is blocked")

    try:
        literal = ipaddress.ip_address(host)
    except ValueError:
        literal = None
    if literal is not None:
        if is_blocked_ip(literal):
            return UrlCheck(False, "SSRF protection: private or internal IP addresses are not allowed")
        return UrlCheck(True)

    resolve = resolver or system_resolver
    try:
        addresses = list(resolve(host))
    except (OSError, UnicodeError) as e:
        logger.warning("DNS resolution failed for host=%s: %s", host, e)
        return UrlCheck(False, "SSRF protection: DNS resolution failed")

    if not addresses:
        return UrlCheck(False, "SSRF protection: hostname did not resolve")

    for raw in addresses:
        try:
            ip = ipaddress.ip_address(raw.split("%", 1)[0])
        except ValueError:
            return UrlCheck(False, f"SSRF protection: unparseable resolved address {raw!r}")
        if is_blocked_ip(ip):
            logger.warning("Host %s resolved to blocked address %s", host, ip)
            return UrlCheck(
                False,
                "SSRF protection: hostname resolves to a private or internal IP address",
            )

    return UrlCheck(True)
