# pyUnraid - SSL Discovery
# -*- coding: utf-8 -*-
"""
 SSL Mode Discovery

 The TLS setup of an Unraid server is not known ahead of time. It may serve plain
 http, redirect to https with a self-signed certificate, or redirect to a
 myunraid.net hostname with a valid certificate. SslDiscovery probes the server
 from cheapest to most expensive and caches the answer per host and port pair.

 Classes
    DiscoveryCache()                    - store for discovery results, one per SslDiscovery
    SslDiscovery(cache, timeout)        - resolves a host to an SslDiscoveryResult

 Order of checks (first match wins)
    1. host is myunraid.net or a subdomain                -> strict
    2. http redirects to myunraid.net                     -> strict at the redirect target
    3. http redirects to https                            -> yes at the redirect target
    4. http answers with any status                       -> no on http_port
    5. https with certificate check succeeds              -> strict on https_port
    6. https fails on the certificate, unverified retry ok -> yes on https_port
    7. nothing answered                                   -> yes on https_port (assumed)
"""
import logging
import threading
from typing import Dict, Iterator, Optional, Tuple
from urllib.parse import urljoin, urlsplit

from pyunraid import probe
from pyunraid.exceptions import PyUnraidInvalidConfigurationParameter
from pyunraid.models import (DEFAULT_HTTP_PORT, DEFAULT_HTTPS_PORT, DEFAULT_TIMEOUT, SslDiscoveryResult,
                             SslMode)

log = logging.getLogger(__name__)

MYUNRAID_DOMAIN = "myunraid.net"


def is_myunraid_host(hostname: Optional[str]) -> bool:
    if not hostname:
        return False
    hostname = hostname.lower().rstrip('.')
    return hostname == MYUNRAID_DOMAIN or hostname.endswith('.' + MYUNRAID_DOMAIN)


def cache_key(host: str, http_port: int, https_port: int) -> str:
    return f"{host}:{http_port}:{https_port}"


class DiscoveryCache:
    """Discovery results keyed by host:http_port:https_port."""

    def __init__(self):
        self._entries: Dict[str, SslDiscoveryResult] = {}
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._entries)

    def __contains__(self, key):
        return key in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def get(self, key: str) -> Optional[SslDiscoveryResult]:
        return self._entries.get(key)

    def set(self, key: str, result: SslDiscoveryResult):
        with self._lock:
            self._entries[key] = result

    def invalidate(self, host: Optional[str] = None) -> int:
        """Drop entries for host (any ports), or everything when host is None. Returns count removed."""
        with self._lock:
            if host is None:
                count = len(self._entries)
                self._entries.clear()
                return count
            host = host.strip()
            # Split from the right, IPv6 hosts contain colons
            stale = [key for key in self._entries if key.rsplit(':', 2)[0] == host]
            for key in stale:
                del self._entries[key]
            return len(stale)


class SslDiscovery:
    def __init__(self, cache: Optional[DiscoveryCache] = None, timeout: float = DEFAULT_TIMEOUT):
        """
        Args:
            cache   = DiscoveryCache to use (a private one is created if not given)
            timeout = Default seconds to wait on each probe
        """
        self.cache = cache if cache is not None else DiscoveryCache()
        self.timeout = timeout

    def discover(self, host: str, http_port: int = DEFAULT_HTTP_PORT, https_port: int = DEFAULT_HTTPS_PORT,
                 timeout: Optional[float] = None) -> SslDiscoveryResult:
        """
        Determine the SSL mode and GraphQL URL for host.

        Results are cached per (host, http_port, https_port); call invalidate() when
        connection settings change.
        """
        host = (host or "").strip()
        if not host:
            raise PyUnraidInvalidConfigurationParameter("host is required for SSL discovery")
        http_port = http_port or DEFAULT_HTTP_PORT
        https_port = https_port or DEFAULT_HTTPS_PORT
        timeout = timeout or self.timeout

        key = cache_key(host, http_port, https_port)
        cached = self.cache.get(key)
        if cached is not None:
            log.debug(f"Using cached SSL discovery for {key}: {cached.ssl_mode.value}")
            return cached

        result = self._resolve(host, http_port, https_port, timeout)
        log.debug(f"SSL discovery for {key}: mode={result.ssl_mode.value} url={result.url}")
        self.cache.set(key, result)
        return result

    def invalidate(self, host: Optional[str] = None):
        count = self.cache.invalidate(host)
        log.debug(f"Cleared {count} SSL discovery entries for {host or 'all hosts'}")

    def _resolve(self, host: str, http_port: int, https_port: int, timeout: float) -> SslDiscoveryResult:
        # Step 1 - already a myunraid.net hostname
        if is_myunraid_host(host):
            return _https_result(host, https_port, SslMode.STRICT)

        # Steps 2-4 - plain http probe
        r = probe.probe_http(host, http_port, timeout=timeout)
        target = _redirect_target(probe.build_url('http', host, http_port), r.location) if r.is_redirect else None
        if target is not None:
            scheme, hostname, port = target
            if is_myunraid_host(hostname):
                # The relay only serves https, whatever scheme the redirect names
                if scheme != 'https':
                    port = DEFAULT_HTTPS_PORT
                log.debug(f"{host} redirects to {hostname} - strict mode")
                return _https_result(hostname, port, SslMode.STRICT)
            if scheme == 'https':
                log.debug(f"{host} redirects to https on {hostname} - self-signed mode")
                return _https_result(hostname, port, SslMode.YES)
        if r.ok and r.status >= 200:
            log.debug(f"{host}:{http_port} answered http {r.status} - plain http mode")
            return SslDiscoveryResult(url=probe.build_url('http', host, http_port), ssl_mode=SslMode.NO,
                                      verify_ssl=False, use_https=False, port=http_port)

        # Step 5 - https with certificate verification
        r = probe.probe_https(host, https_port, timeout=timeout, verify=True)
        if r.ok:
            return _https_result(host, https_port, SslMode.STRICT)

        # Step 6 - certificate problem, retry without verification
        if r.ssl_error or probe.is_ssl_error(r.error):
            log.debug(f"{host}:{https_port} certificate not trusted ({r.error}) - retrying unverified")
            r = probe.probe_https(host, https_port, timeout=timeout, verify=False)
            if r.ok:
                return _https_result(host, https_port, SslMode.YES)

        # Step 7 - nothing answered, assume the common self-signed setup
        log.warning(f"Unable to determine SSL mode for {host} ({r.error}) - assuming self-signed https "
                    f"on port {https_port}")
        return _https_result(host, https_port, SslMode.YES)


def _redirect_target(base: str, location: str) -> Optional[Tuple[str, str, int]]:
    """(scheme, hostname, port) of a redirect, or None when the Location is unusable."""
    try:
        parts = urlsplit(urljoin(base, location))
        port = parts.port or probe.DEFAULT_PORTS.get(parts.scheme)
    except ValueError as exc:
        log.debug(f"Ignoring malformed redirect to {location!r}: {exc}")
        return None
    if not parts.hostname or not port:
        return None
    return parts.scheme, parts.hostname, port


def _https_result(host: str, port: int, mode: SslMode) -> SslDiscoveryResult:
    return SslDiscoveryResult(url=probe.build_url('https', host, port), ssl_mode=mode,
                              verify_ssl=mode == SslMode.STRICT, use_https=True, port=port)
