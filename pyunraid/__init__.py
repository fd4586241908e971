# pyUnraid Module
# -*- coding: utf-8 -*-
"""
 Python module to poll an Unraid server through its GraphQL API

 Features
    * Discovers how the server serves its API: plain http, https with a
      self-signed certificate, or https through myunraid.net
    * Honors custom http and https ports
    * Caches discovery results per host and port to avoid repeated probing
    * Follows redirects (up to 5 hops) when posting queries
    * Validates responses with pydantic models and raises one classified
      UnraidApiError per failure (connection, auth, timeout, validation, ...)
    * Polls several resources on independent schedules with exponential backoff

 Classes
    ConnectionConfig(host, api_key, timeout, http_port, https_port)
    SslDiscovery(cache, timeout)
    UnraidClient(config, discovery, session, poolmaxsize)
    PollManager(executor, max_workers)
    UnraidApiError(code, message, details, retryable)

 Functions
    SslDiscovery.discover(host, http_port, https_port, timeout)  # Resolve SSL mode and GraphQL URL (cached)
    SslDiscovery.invalidate(host)                       # Forget cached discovery for host (or all hosts)
    UnraidClient.execute(query, variables, model)       # Run a query and return the validated payload
    execute_query(config, query, variables, model)      # One-shot form of UnraidClient.execute()
    PollManager.register/start/stop/unregister/force_run/get_state  # Independent polls with backoff
    set_debug(toggle, color)                            # Enable verbose logging

 Requirements
    This module requires the following modules: requests, urllib3, pydantic, pydantic-settings
    pip install requests pydantic pydantic-settings
"""
import logging
import sys

version_tuple = (0, 1, 0)
version = __version__ = '%d.%d.%d' % version_tuple
__author__ = 'pyunraid'

# noinspection PyPackageRequirements
import urllib3
from urllib3.exceptions import InsecureRequestWarning

from pyunraid.client import UnraidClient, execute_query
from pyunraid.discovery import DiscoveryCache, SslDiscovery
from pyunraid.exceptions import ErrorCode, PyUnraidInvalidConfigurationParameter, UnraidApiError
from pyunraid.models import ConnectionConfig, SslDiscoveryResult, SslMode
from pyunraid.poll_manager import POLL_INTERVALS, PollConfig, PollManager, PollState

urllib3.disable_warnings(InsecureRequestWarning)  # Self-signed mode skips certificate checks

log = logging.getLogger(__name__)
log.debug('%s version %s', __name__, __version__)
log.debug('Python %s on %s', sys.version, sys.platform)


def set_debug(toggle=True, color=True):
    """Enable verbose logging"""
    if toggle:
        if color:
            logging.basicConfig(format='\x1b[31;1m%(levelname)s:%(message)s\x1b[0m', level=logging.DEBUG)
        else:
            logging.basicConfig(format='%(levelname)s:%(message)s', level=logging.DEBUG)
        log.setLevel(logging.DEBUG)
        log.debug("%s [%s]\n" % (__name__, __version__))
    else:
        log.setLevel(logging.NOTSET)


__all__ = [
    'ConnectionConfig', 'DiscoveryCache', 'ErrorCode', 'POLL_INTERVALS', 'PollConfig', 'PollManager', 'PollState',
    'PyUnraidInvalidConfigurationParameter', 'SslDiscovery', 'SslDiscoveryResult', 'SslMode', 'UnraidApiError',
    'UnraidClient', 'execute_query', 'set_debug', 'version',
]
