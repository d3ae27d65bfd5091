"""Reject URLs that would let a server-side fetch reach internal hosts."""

from __future__ import annotations

import ipaddress
import re
import socket
from urllib.parse import urlsplit

MAX_URL_LENGTH = 2048

_BLOCKED_HOSTS = {
    "localhost",
    "127.0.0.1",
    "0.0.0.0",
    "169.254.169.254",
    "::1",
    "[::1]",
    "metadata.google.internal",
}
_BLOCKED_PREFIXES = ("10.", "192.168.") + tuple(f"172.{n}." for n in range(16, 32))
_BLOCKED_SUFFIXES = (".local", ".localhost", ".internal")
_ALLOWED_SCHEMES = {"http", "https"}
# Dotted, hex, octal or single-number IPv4 spellings that resolvers accept.
_NUMERIC_HOST = re.compile(r"^(0x[0-9a-f]*|[0-9]+)(\.(0x[0-9a-f]*|[0-9]+)){0,3}\.?$")


class UrlRejected(ValueError):
    """The URL failed validation; ``reason`` is safe to return to clients."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


def _canonical_host(hostname: str) -> str:
    """Rewrite numeric IPv4 spellings such as ``2130706433`` or ``127.1`` to dotted-quad form."""

    if not _NUMERIC_HOST.match(hostname):
        return hostname
    try:
        return socket.inet_ntoa(socket.inet_aton(hostname.rstrip(".")))
    except OSError as exc:
        raise UrlRejected("Invalid URL format") from exc


def _is_internal_address(hostname: str) -> bool:
    try:
        address = ipaddress.ip_address(hostname.strip("[]"))
    except ValueError:
        return False
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_unspecified
        or address.is_multicast
    )


def validate_public_url(url: str | None, *, max_length: int = MAX_URL_LENGTH) -> str:
    """Return ``url`` unchanged when it is safe to fetch, else raise `UrlRejected`."""

    if not url or not url.strip():
        raise UrlRejected("URL is required")
    url = url.strip()
    if len(url) > max_length:
        raise UrlRejected("URL too long")

    try:
        parts = urlsplit(url)
        hostname = (parts.hostname or "").lower()
        # Accessing the port validates it; urlsplit defers that check.
        _ = parts.port
    except ValueError as exc:
        raise UrlRejected("Invalid URL format") from exc

    if not parts.scheme or not hostname:
        raise UrlRejected("Invalid URL format")

    hostname = _canonical_host(hostname)

    if (
        hostname in _BLOCKED_HOSTS
        or hostname.startswith(_BLOCKED_PREFIXES)
        or hostname.endswith(_BLOCKED_SUFFIXES)
        or _is_internal_address(hostname)
    ):
        raise UrlRejected("URL not allowed")

    if parts.scheme.lower() not in _ALLOWED_SCHEMES:
        raise UrlRejected("Only HTTP and HTTPS URLs are allowed")

    return url


__all__ = ["MAX_URL_LENGTH", "UrlRejected", "validate_public_url"]
