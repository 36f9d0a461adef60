import json
import tempfile
from unittest.mock import MagicMock, patch

import pytest

from simplifi_api_client import ClientConfig, SimplifiClient


def make_http_response(status=200, body=None, *, text=None, url="https://api.test/", reason="OK"):
    """Build a stand-in for ``requests.Response``."""
    response = MagicMock()
    response.status_code = status
    if text is None:
        text = "" if body is None else json.dumps(body)
    response.text = text
    response.url = url
    response.reason = reason
    response.headers = {"Content-Type": "application/json"}
    return response


class MemoryCache:
    """In-memory custom cache backend."""

    def __init__(self):
        self.values = {}
        self.deleted = []

    def get(self, key):
        return self.values.get(key)

    def set(self, key, value):
        self.values[key] = value

    def delete(self, key):
        self.deleted.append(key)
        self.values.pop(key, None)


@pytest.fixture(autouse=True)
def temp_dir(tmp_path, monkeypatch):
    """Keep token cache files out of the real temp directory."""
    monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
    return tmp_path


@pytest.fixture
def config():
    return ClientConfig(
        client_id="client-id",
        client_secret="client-secret",
        url_base="https://api.test/",
        url_version="api/v1/",
        access_token_expire_buffer=10,
    )


@pytest.fixture
def client(config):
    return SimplifiClient(config)


@pytest.fixture
def mock_request():
    with patch("simplifi_api_client.client.requests.request") as mocked:
        yield mocked


def token_response(token="fresh-token", expires_in=3600):
    return make_http_response(
        200,
        {"access_token": token, "token_type": "Bearer", "expires_in": expires_in},
        url="https://api.test/api/v1/oauth/access_token",
    )
