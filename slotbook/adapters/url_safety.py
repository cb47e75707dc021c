"""
Default anti-SSRF check for feed URLs.

The engine only sees this through the ``url_validator`` callable handed to
``FeedFetcher``; hosts embedding the engine may plug in their own.
"""

import ipaddress
import logging
import socket
from typing import Callable, List
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("https", "webcal")
BLOCKED_HOSTNAMES = ("metadata.google.internal", "metadata.goog", "metadata", "localhost")

Resolver = Callable[[str], List[str]]


def resolve_host(hostname: str) -> List[str]:
    """Return every address the hostname resolves to."""
    infos = socket.getaddrinfo(hostname, None, proto=socket.IPPROTO_TCP)
    return [info[4][0] for info in infos]


def is_safe_to_fetch(url: str, resolver: Resolver = resolve_host) -> bool:
    """
    Check whether a feed URL points at a public https/webcal host.

    Rejects other schemes, metadata and localhost names, IP literals and
    hostnames resolving to loopback, private, link-local, reserved or
    unspecified addresses. Resolution failures count as unsafe.
    """
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return False

    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        return False

    hostname = (parts.hostname or "").lower().rstrip(".")
    if not hostname or hostname in BLOCKED_HOSTNAMES:
        return False

    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        pass
    else:
        # Raw IP literals in feed URLs are rejected outright
        return False

    try:
        addresses = resolver(hostname)
    except (OSError, UnicodeError) as exc:
        logger.info("Could not resolve %s: %s", hostname, exc)
        return False

    if not addresses:
        return False

    return all(_is_public_address(address) for address in addresses)


def _is_public_address(address: str) -> bool:
    try:
        ip = ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        return False

    return not (
        ip.is_loopback
        or ip.is_private
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_multicast
        or ip.is_unspecified
    )
