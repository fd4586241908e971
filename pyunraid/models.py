"""Pydantic models for connection parameters and SSL discovery results."""
import enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_HTTP_PORT = 80
DEFAULT_HTTPS_PORT = 443
DEFAULT_TIMEOUT = 10.0

# Changing any of these invalidates the discovered endpoint
_ENDPOINT_FIELDS = ('host', 'http_port', 'https_port')


class SslMode(str, enum.Enum):
    """Effective TLS posture of the server, named the way the Unraid UI names it."""
    UNKNOWN = "unknown"
    NO = "no"          # plain http only
    YES = "yes"        # https with a self-signed certificate
    STRICT = "strict"  # https with a verified certificate (myunraid.net)


class SslDiscoveryResult(BaseModel):
    """Immutable result of SSL discovery for one (host, http_port, https_port)."""
    model_config = ConfigDict(frozen=True)

    url: str
    ssl_mode: SslMode
    verify_ssl: bool
    use_https: bool
    port: int


class ConnectionConfig(BaseModel):
    """
    Connection parameters for a single Unraid server.

    Attributes:
        host         = Hostname or IP address of the server (e.g. 10.0.1.50 or tower.local)
        api_key      = Unraid API key sent in the x-api-key header
        timeout      = Seconds to wait for each http request
        ssl_mode     = Discovered SSL mode (unknown until discovery runs)
        resolved_url = Discovered GraphQL endpoint URL
        http_port    = Port for plain http (default 80)
        https_port   = Port for https (default 443)

    ssl_mode and resolved_url are derived from host and the two ports. Assigning a
    new host or port clears them so the next request runs discovery again.
    """
    model_config = ConfigDict(validate_assignment=True)

    host: str = ""
    api_key: str = Field(default="", repr=False)
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    ssl_mode: SslMode = SslMode.UNKNOWN
    resolved_url: Optional[str] = None
    http_port: int = Field(default=DEFAULT_HTTP_PORT, gt=0, le=65535)
    https_port: int = Field(default=DEFAULT_HTTPS_PORT, gt=0, le=65535)

    def __setattr__(self, name, value):
        changed = name in _ENDPOINT_FIELDS and getattr(self, name, None) != value
        super().__setattr__(name, value)
        if changed:
            self.clear_resolution()

    @property
    def is_resolved(self) -> bool:
        return bool(self.resolved_url) and self.ssl_mode != SslMode.UNKNOWN

    def clear_resolution(self):
        super().__setattr__('ssl_mode', SslMode.UNKNOWN)
        super().__setattr__('resolved_url', None)

    def apply_discovery(self, result: SslDiscoveryResult):
        super().__setattr__('ssl_mode', result.ssl_mode)
        super().__setattr__('resolved_url', result.url)
