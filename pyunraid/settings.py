"""
Environment configuration for pyUnraid

Settings are read from environment variables (or a .env file in the working
directory) so the CLI and long running pollers can be configured without code.

Environment Variables:

    Connection:
        UNRAID_HOST                  - Server hostname or IP address (required)
        UNRAID_API_KEY               - API key created in the Unraid web UI (required)
        UNRAID_HTTP_PORT             - Port for plain http (default: 80)
        UNRAID_HTTPS_PORT            - Port for https (default: 443)
        UNRAID_TIMEOUT               - Seconds to wait for each request (default: 10)

    Polling:
        UNRAID_SYSTEM_POLL_INTERVAL  - Seconds between system metric polls (default: 30)
        UNRAID_STORAGE_POLL_INTERVAL - Seconds between storage polls (default: 300)
        UNRAID_MAX_RETRIES           - Consecutive failures before a poll stops (default: 5)

    Logging:
        UNRAID_DEBUG                 - Enable debug logging "yes"/"no" (default: "no")

Example:

    UNRAID_HOST=192.168.1.50
    UNRAID_API_KEY=0123456789abcdef
    UNRAID_HTTPS_PORT=8443
    UNRAID_DEBUG=yes
"""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pyunraid.models import DEFAULT_HTTP_PORT, DEFAULT_HTTPS_PORT, DEFAULT_TIMEOUT, ConnectionConfig
from pyunraid.poll_manager import POLL_INTERVALS, PollConfig


class Settings(BaseSettings):
    """pyUnraid settings loaded from UNRAID_* environment variables."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False,
                                      extra="ignore", populate_by_name=True)

    host: Optional[str] = Field(default=None, alias="UNRAID_HOST")
    api_key: Optional[str] = Field(default=None, alias="UNRAID_API_KEY", repr=False)
    http_port: int = Field(default=DEFAULT_HTTP_PORT, alias="UNRAID_HTTP_PORT", gt=0, le=65535)
    https_port: int = Field(default=DEFAULT_HTTPS_PORT, alias="UNRAID_HTTPS_PORT", gt=0, le=65535)
    timeout: float = Field(default=DEFAULT_TIMEOUT, alias="UNRAID_TIMEOUT", gt=0)

    system_poll_interval: float = Field(default=POLL_INTERVALS['system'], alias="UNRAID_SYSTEM_POLL_INTERVAL", gt=0)
    storage_poll_interval: float = Field(default=POLL_INTERVALS['storage'], alias="UNRAID_STORAGE_POLL_INTERVAL",
                                         gt=0)
    max_retries: int = Field(default=5, alias="UNRAID_MAX_RETRIES", ge=1)

    debug: bool = Field(default=False, alias="UNRAID_DEBUG")

    def to_connection_config(self) -> ConnectionConfig:
        return ConnectionConfig(host=self.host or "", api_key=self.api_key or "", timeout=self.timeout,
                                http_port=self.http_port, https_port=self.https_port)

    def system_poll_config(self) -> PollConfig:
        interval = self.system_poll_interval
        return PollConfig(base_interval=interval, min_interval=interval, max_interval=max(interval, 30.0),
                          max_retries=self.max_retries)

    def storage_poll_config(self) -> PollConfig:
        interval = self.storage_poll_interval
        return PollConfig(base_interval=interval, min_interval=interval, max_interval=max(interval, 600.0),
                          max_retries=self.max_retries)
