# pyUnraid - Transport Probes
# -*- coding: utf-8 -*-
"""
 Probe requests used by SSL discovery

 Functions:
    probe_http(host, port, path, timeout)           - plain GET, redirects are not followed
    probe_https(host, port, path, timeout, verify)  - encrypted GET with optional certificate check
    is_ssl_error(message)                           - True if the failure is a certificate trust problem
    build_url(scheme, host, port, path)             - URL with default ports omitted

 Probes never raise. Network failures come back as ProbeResult.error so the
 caller can move on to the next strategy.

 timeout is the requests timeout: it bounds the connect and each socket read
 separately, not the request as a whole. Name resolution is not bounded by it,
 and a server that keeps trickling bytes can hold a probe past timeout.
"""
import logging
from typing import NamedTuple, Optional

import requests

log = logging.getLogger(__name__)

GRAPHQL_PATH = "/graphql"
REDIRECT_CODES = (301, 302, 307, 308)
DEFAULT_PORTS = {'http': 80, 'https': 443}

# Substrings seen in certificate trust failures (OpenSSL, urllib3 and node style)
SSL_ERROR_PATTERNS = (
    'self signed certificate',
    'self-signed certificate',
    'self_signed_cert',
    'unable to verify the first certificate',
    'certificate has expired',
    'cert_has_expired',
    'ssl certificate problem',
    'unable_to_get_issuer_cert_locally',
    'unable to get local issuer certificate',
    'certificate verify failed',
    'depth zero self signed cert',
)


class ProbeResult(NamedTuple):
    status: Optional[int] = None
    location: Optional[str] = None
    error: Optional[str] = None
    ssl_error: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and self.status is not None

    @property
    def is_redirect(self) -> bool:
        return self.status in REDIRECT_CODES and bool(self.location)


def build_url(scheme: str, host: str, port: int, path: str = GRAPHQL_PATH) -> str:
    if ':' in host and not host.startswith('['):
        host = f"[{host}]"  # IPv6 literal
    if port == DEFAULT_PORTS.get(scheme):
        return f"{scheme}://{host}{path}"
    return f"{scheme}://{host}:{port}{path}"


def is_ssl_error(message: str) -> bool:
    if not message:
        return False
    text = message.lower()
    return any(pattern in text for pattern in SSL_ERROR_PATTERNS)


def _probe(url: str, timeout: float, verify: bool) -> ProbeResult:
    try:
        with requests.get(url, timeout=timeout, verify=verify, allow_redirects=False, stream=True) as r:
            location = r.headers.get('Location') if r.status_code in REDIRECT_CODES else None
            log.debug(f"Probe {url} - {r.status_code} {location or ''}")
            return ProbeResult(status=r.status_code, location=location)
    except requests.exceptions.Timeout:
        log.debug(f"Probe {url} - timed out after {timeout}s")
        return ProbeResult(error=f"Request timed out after {timeout}s")
    except requests.exceptions.RequestException as exc:
        log.debug(f"Probe {url} - failed: {exc}")
        return ProbeResult(error=str(exc), ssl_error=is_ssl_error(str(exc)))


def probe_http(host: str, port: int = 80, path: str = GRAPHQL_PATH, timeout: float = 10.0) -> ProbeResult:
    """Plain http GET against host:port without following redirects."""
    return _probe(build_url('http', host, port, path), timeout, verify=False)


def probe_https(host: str, port: int = 443, path: str = GRAPHQL_PATH, timeout: float = 10.0,
                verify: bool = True) -> ProbeResult:
    """
    Encrypted GET against host:port.

    With verify=True a certificate trust failure sets ssl_error on the result so the
    caller can retry with verification disabled.
    """
    return _probe(build_url('https', host, port, path), timeout, verify=verify)
