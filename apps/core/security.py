"""
Outbound HTTP safety.

Vendor websites arrive in LLM output, so nothing is fetched until the URL
has passed SSRFGuard: HTTP(S) only, no infrastructure ports, no internal
hostnames, and every resolved address publicly routable.
"""

import ipaddress
import logging
import socket
from typing import Iterable, List, Optional, Set, Tuple
from urllib.parse import urljoin, urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

SCHEMES = frozenset({'http', 'https'})

INTERNAL_HOSTNAMES = frozenset({
    'localhost',
    'metadata.google.internal',
    'metadata.goog',
    'kubernetes.default',
    'kubernetes.default.svc',
})

# ssh, smtp, dns, smb, databases, caches and remote desktop
INFRASTRUCTURE_PORTS = frozenset({
    21, 22, 23, 25, 53, 110, 135, 139, 143, 445,
    1433, 1521, 3306, 3389, 5432, 5900, 6379, 11211, 27017,
})

RETRY_STATUSES = (429, 500, 502, 503, 504)


class SSRFError(Exception):
    """URL refused before any connection was made."""


def _matches_domain(hostname: str, domains: Iterable[str]) -> bool:
    return any(hostname == d or hostname.endswith(f'.{d}') for d in domains)


class SSRFGuard:
    """Validates outbound URLs. ``allow_private_ips`` skips DNS checks (local development only)."""

    ALLOWED_PROTOCOLS = SCHEMES
    BLOCKED_HOSTNAMES = INTERNAL_HOSTNAMES
    BLOCKED_PORTS = INFRASTRUCTURE_PORTS

    def __init__(self, allow_private_ips: bool = False, blocked_domains: Optional[Set[str]] = None):
        self.allow_private_ips = allow_private_ips
        self.blocked_domains = set(blocked_domains or ())

    def validate_url(self, url: str) -> Tuple[str, str, int]:
        """
        Returns ``(url, hostname, port)`` for a safe URL.

        Raises:
            SSRFError: naming the first check that failed
        """
        parsed = urlparse(url)
        scheme = parsed.scheme.lower()
        if scheme not in self.ALLOWED_PROTOCOLS:
            raise SSRFError(f"Protocol '{parsed.scheme}' not allowed. Use HTTP or HTTPS.")

        hostname = (parsed.hostname or '').lower()
        if not hostname:
            raise SSRFError("URL must have a hostname")

        port = self._port(parsed, scheme)
        if hostname in self.BLOCKED_HOSTNAMES:
            raise SSRFError(f"Hostname '{hostname}' is blocked")
        if _matches_domain(hostname, self.blocked_domains):
            raise SSRFError(f"Domain '{hostname}' is blocked")

        if not self.allow_private_ips:
            for address in self._resolve(hostname):
                self._validate_ip(address)

        return url, hostname, port

    def _port(self, parsed, scheme: str) -> int:
        try:
            port = parsed.port
        except ValueError as e:
            raise SSRFError(f"Invalid port: {e}")
        port = port or (443 if scheme == 'https' else 80)
        if port in self.BLOCKED_PORTS:
            raise SSRFError(f"Port {port} is blocked for security reasons")
        return port

    def _resolve(self, hostname: str) -> List[str]:
        try:
            answers = socket.getaddrinfo(hostname, None, socket.AF_UNSPEC)
        except socket.gaierror as e:
            raise SSRFError(f"Could not resolve hostname '{hostname}': {e}")

        addresses = sorted({answer[4][0] for answer in answers})
        if not addresses:
            raise SSRFError(f"No IP addresses found for hostname '{hostname}'")
        return addresses

    def _validate_ip(self, address: str) -> None:
        # Strip any IPv6 zone index before parsing
        try:
            ip = ipaddress.ip_address(address.split('%', 1)[0])
        except ValueError:
            raise SSRFError(f"Invalid IP address: {address}")

        mapped = getattr(ip, 'ipv4_mapped', None)
        if mapped is not None:
            ip = mapped

        if ip.is_multicast or not ip.is_global:
            raise SSRFError(f"IP address '{address}' is not publicly routable")


def build_session(max_retries: int, backoff_factor: float, user_agent: str) -> requests.Session:
    """Pooled session that retries idempotent requests on 429 and 5xx."""
    adapter = HTTPAdapter(
        max_retries=Retry(
            total=max_retries,
            backoff_factor=backoff_factor,
            status_forcelist=RETRY_STATUSES,
            allowed_methods=frozenset({'HEAD', 'GET', 'OPTIONS'}),
            raise_on_status=False,
        ),
        pool_connections=10,
        pool_maxsize=20,
    )
    session = requests.Session()
    for prefix in ('http://', 'https://'):
        session.mount(prefix, adapter)
    session.headers['User-Agent'] = user_agent
    session.headers['Accept'] = 'text/html,application/xhtml+xml,*/*;q=0.8'
    session.headers['Accept-Language'] = 'en-US,en;q=0.5'
    return session


class SafeHTTPClient:
    """
    requests wrapper that runs SSRFGuard before every call.

    Redirects are followed one hop at a time so every target passes the
    guard. Timeouts are always applied. GET streams the body so a status
    check never downloads a whole page; callers close the response.
    """

    DEFAULT_TIMEOUT = (5, 30)
    DEFAULT_USER_AGENT = 'Mozilla/5.0 (compatible; VendorVerifier/1.0)'
    MAX_REDIRECTS = 5

    def __init__(
        self,
        timeout=DEFAULT_TIMEOUT,
        max_retries: int = 2,
        backoff_factor: float = 0.5,
        ssrf_guard: Optional[SSRFGuard] = None,
        user_agent: Optional[str] = None,
    ):
        self.timeout = timeout
        self.ssrf_guard = ssrf_guard or SSRFGuard()
        self.session = build_session(max_retries, backoff_factor, user_agent or self.DEFAULT_USER_AGENT)

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        follow = kwargs.pop('allow_redirects', True)
        kwargs.setdefault('timeout', self.timeout)
        send = getattr(self.session, method)

        for _ in range(self.MAX_REDIRECTS + 1):
            self.ssrf_guard.validate_url(url)
            response = send(url, allow_redirects=False, **kwargs)
            if not follow or not response.is_redirect:
                return response
            url = urljoin(url, response.headers['location'])
            response.close()

        raise requests.TooManyRedirects(f"Exceeded {self.MAX_REDIRECTS} redirects")

    def head(self, url: str, **kwargs) -> requests.Response:
        return self._request('head', url, **kwargs)

    def get(self, url: str, **kwargs) -> requests.Response:
        kwargs.setdefault('stream', True)
        return self._request('get', url, **kwargs)

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
