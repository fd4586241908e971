"""Pytest configuration and fixtures."""
import json
import os

import pytest
from unittest.mock import MagicMock

from pyunraid.discovery import SslDiscovery
from pyunraid.models import ConnectionConfig, SslDiscoveryResult, SslMode


def make_response(status=200, body=None, headers=None, reason="", url="http://tower/graphql"):
    """Build a stand-in for requests.Response."""
    r = MagicMock()
    r.status_code = status
    r.headers = headers or {}
    r.reason = reason
    r.url = url
    if body is None:
        r.text = ""
    elif isinstance(body, str):
        r.text = body
    else:
        r.text = json.dumps(body)
    return r


@pytest.fixture(autouse=True)
def clear_unraid_env(monkeypatch):
    """Keep UNRAID_* variables from the shell out of tests."""
    for name in list(os.environ):
        if name.upper().startswith("UNRAID_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config():
    return ConnectionConfig(host="tower.local", api_key="test-key")


@pytest.fixture
def discovery():
    """SslDiscovery that resolves every host to self-signed https without probing."""
    d = MagicMock(spec=SslDiscovery)
    d.discover.return_value = SslDiscoveryResult(url="https://tower.local/graphql", ssl_mode=SslMode.YES,
                                                 verify_ssl=False, use_https=True, port=443)
    return d


@pytest.fixture
def session():
    s = MagicMock()
    s.post.return_value = make_response(body={"data": {"online": True}})
    return s
