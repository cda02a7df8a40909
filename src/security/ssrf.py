"""SSRF guard for server-side fetches.

Every URL the service is about to fetch is passed through ``SSRFGuard``
first. The guard is a single ordered decision function: checks run in a
fixed order and the first failure wins, so each rejection carries exactly
one human-readable reason for the logs.

The default check is lexical: it inspects the hostname as written and does
not resolve it. A public hostname that resolves to a private address at
fetch time (DNS rebinding) is only caught by ``validate_resolved``, which is
enabled with ``ssrf_config.resolve_dns``.
"""

import asyncio
import ipaddress
import re
import socket
from dataclasses import dataclass, field
from typing import Any, Final
from urllib.parse import SplitResult, urlsplit

from loguru import logger

from src.core.config import SSRFConfig

type IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address

DEFAULT_PORTS: Final[dict[str, int]] = {"https": 443, "http": 80}

# Carrier-grade NAT space, not covered by ``is_private``
_SHARED_ADDRESS_SPACE: Final = ipaddress.ip_network("100.64.0.0/10")

# Candidates for legacy IPv4 notations (``2130706433``, ``0x7f.1``, ``127.1``)
_LEGACY_IPV4_PATTERN: Final = re.compile(
    r"^(0x[0-9a-f]+|[0-9]+)(\.(0x[0-9a-f]+|[0-9]+)){0,3}$"
)
_FORBIDDEN_CHARS: Final = re.compile(r"[\s\x00-\x1f\x7f\\]")


@dataclass(frozen=True, slots=True)
class SSRFDecision:
    """Verdict for one URL.

    ``reason`` is set on rejection, ``normalized_url`` on acceptance.
    """

    allowed: bool
    reason: str | None = None
    normalized_url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def reject(cls, reason: str) -> "SSRFDecision":
        """Build a rejected decision carrying its human-readable reason."""
        return cls(allowed=False, reason=reason)


def parse_ip(host: str) -> IPAddress | None:
    """Interpret a hostname as an IP literal, including legacy IPv4 forms.

    Examples:
        >>> parse_ip("192.168.1.10")
        IPv4Address('192.168.1.10')
        >>> parse_ip("2130706433")
        IPv4Address('127.0.0.1')
        >>> parse_ip("example.com") is None
        True
    """
    try:
        return ipaddress.ip_address(host)
    except ValueError:
        pass

    if _LEGACY_IPV4_PATTERN.match(host):
        try:
            return ipaddress.IPv4Address(socket.inet_aton(host))
        except OSError:
            return None
    return None


def is_private_ip(ip: IPAddress) -> bool:
    """Whether an address must never be reached from the server.

    Covers RFC 1918 and unique-local ranges as well as loopback, link-local,
    multicast, reserved and unspecified addresses. IPv4-mapped IPv6
    addresses are judged by their IPv4 part.
    """
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
        or (isinstance(ip, ipaddress.IPv4Address) and ip in _SHARED_ADDRESS_SPACE)
    )


def _matches_domain(host: str, domains: list[str]) -> bool:
    return any(
        host == domain.lower() or host.endswith("." + domain.lower())
        for domain in domains
    )


class SSRFGuard:
    """Decides whether a URL is safe to fetch from the server.

    Checks, in order:

    1. Input is a non-empty string no longer than ``max_url_length``.
    2. It parses as an absolute URL with a hostname and a valid port.
    3. The scheme is in ``allowed_schemes``.
    4. The hostname is not in ``blocked_hosts`` (``*.localhost`` included).
    5. An IP literal is not private unless ``allow_private_ips``.
    6. An IP literal is accepted only if ``allow_ip_addresses``.
    7. The port is in ``allowed_ports`` when an allowlist is configured.
    8. The hostname matches ``allowed_domains`` when an allowlist is configured.

    Accepted URLs are returned normalized, without their fragment.
    """

    def __init__(self, config: SSRFConfig | None = None) -> None:
        self.config = config or SSRFConfig()
        self._allowed_schemes = [s.lower() for s in self.config.allowed_schemes]
        self._blocked_hosts = {
            h.lower().strip("[]").rstrip(".") for h in self.config.blocked_hosts
        }

    def _split(self, url: str) -> tuple[SplitResult, int | None] | None:
        try:
            parts = urlsplit(url)
            port = parts.port
        except ValueError:
            return None
        if not parts.scheme or not parts.hostname:
            return None
        return parts, port

    def validate(self, url: object) -> SSRFDecision:
        """Run the lexical checks against one URL.

        Args:
            url: Candidate URL; anything that is not a non-empty string is
                rejected.

        Returns:
            SSRFDecision: The verdict.
        """
        if not isinstance(url, str) or not url.strip():
            return SSRFDecision.reject("Invalid URL input")

        url = url.strip()
        max_length = self.config.max_url_length
        if len(url) > max_length:
            return SSRFDecision.reject(f"URL exceeds maximum length ({max_length})")

        if _FORBIDDEN_CHARS.search(url):
            return SSRFDecision.reject("Malformed URL")

        split = self._split(url)
        if split is None:
            return SSRFDecision.reject("Malformed URL")
        parts, port = split

        scheme = parts.scheme.lower()
        if scheme not in self._allowed_schemes:
            allowed = ", ".join(self._allowed_schemes)
            return SSRFDecision.reject(
                f"Scheme '{scheme}' not allowed. Allowed: {allowed}"
            )

        if parts.username is not None or parts.password is not None:
            return SSRFDecision.reject("Credentials in URL not allowed")

        host = (parts.hostname or "").rstrip(".")
        if not host:
            return SSRFDecision.reject("Malformed URL")

        if host in self._blocked_hosts or host.endswith(".localhost"):
            return SSRFDecision.reject(f"Host '{host}' is blocked")

        ip = parse_ip(host)
        if ip is not None:
            if not self.config.allow_private_ips and is_private_ip(ip):
                return SSRFDecision.reject("Private IP addresses not allowed")
            if not self.config.allow_ip_addresses:
                return SSRFDecision.reject("IP addresses not allowed, use domain names")

        effective_port = port if port is not None else DEFAULT_PORTS.get(scheme)
        if self.config.allowed_ports is not None and (
            effective_port not in self.config.allowed_ports
        ):
            allowed_ports = ", ".join(str(p) for p in self.config.allowed_ports)
            return SSRFDecision.reject(
                f"Port {effective_port} not allowed. Allowed: {allowed_ports}"
            )

        if self.config.allowed_domains and not _matches_domain(
            host, self.config.allowed_domains
        ):
            return SSRFDecision.reject(f"Host '{host}' is not in the allowed domains")

        netloc = f"[{host}]" if ":" in host else host
        if port is not None:
            netloc = f"{netloc}:{port}"
        normalized = f"{scheme}://{netloc}{parts.path or '/'}"
        if parts.query:
            normalized = f"{normalized}?{parts.query}"

        return SSRFDecision(
            allowed=True,
            normalized_url=normalized,
            metadata={
                "scheme": scheme,
                "hostname": host,
                "port": effective_port,
                "isIp": ip is not None,
            },
        )

    async def validate_resolved(self, url: object) -> SSRFDecision:
        """Run the lexical checks, then resolve the host and check its addresses.

        Rejects a hostname when any address it resolves to is private. The
        connection itself is not pinned to the checked address.
        """
        decision = self.validate(url)
        if not decision.allowed or decision.metadata.get("isIp"):
            return decision

        host = decision.metadata["hostname"]
        loop = asyncio.get_running_loop()
        try:
            infos = await loop.getaddrinfo(
                host, decision.metadata["port"], type=socket.SOCK_STREAM
            )
        except socket.gaierror:
            return SSRFDecision.reject(f"Host '{host}' could not be resolved")

        for info in infos:
            address = parse_ip(str(info[4][0]).split("%", 1)[0])
            if address is not None and is_private_ip(address):
                logger.warning(
                    "Hostname resolves to a private address",
                    hostname=host,
                    address=str(address),
                )
                return SSRFDecision.reject(
                    f"Host '{host}' resolves to a private address"
                )
        return decision


def validate_url_ssrf(
    url: object, config: SSRFConfig | None = None, **overrides: Any
) -> SSRFDecision:
    """Validate one URL against the default policy, optionally overridden.

    Args:
        url: Candidate URL.
        config: Base policy (defaults to ``SSRFConfig()``).
        **overrides: Field overrides merged onto the base policy.

    Examples:
        >>> validate_url_ssrf("https://192.168.1.10/x").reason
        'Private IP addresses not allowed'
        >>> validate_url_ssrf("https://api.example.com/a#frag").normalized_url
        'https://api.example.com/a'
    """
    base = config or SSRFConfig()
    if overrides:
        base = base.model_copy(update=overrides)
    return SSRFGuard(base).validate(url)
