"""
Configuration for the Simplifi API client.

A :class:`ClientConfig` is built once per client (usually from the
environment via :meth:`ClientConfig.from_env`) and passed explicitly
to every component.  Individual requests may pass override values,
which are merged shallowly on top with :meth:`ClientConfig.merged`.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

from .exceptions import SimplifiConfigurationError

logger = logging.getLogger(__name__)

TOKEN_CACHE_TEMP_FILE = "temp_file"
TOKEN_CACHE_CUSTOM = "custom"

GRANT_CLIENT_CREDENTIALS = "client_credentials"
GRANT_PASSWORD = "password"


def _env(*names: str, default: Optional[str] = None) -> Optional[str]:
    # First non-empty variable wins; SIMPLIFI_* names are listed before the
    # legacy UBER_* ones.
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return default


@dataclass(frozen=True)
class ClientConfig:
    """Settings shared by every request made through one client.

    Parameters
    ----------
    client_id, client_secret : str, optional
        OAuth client credentials.
    username, password : str, optional
        Resource owner credentials, only sent for the ``password`` grant.
    scope : str
        Scope requested with the token.  Defaults to ``"*"``.
    grant_type : str
        ``"client_credentials"`` (default) or ``"password"``.
    url_base : str
        Base URL of the API, including the trailing slash.
    url_version : str
        Version segment appended to ``url_base`` for relative URLs.
    token_url : str
        Path of the OAuth token endpoint.
    token_url_absolute : bool
        When true ``token_url`` is appended to ``url_base`` only.
    token_cache : str
        ``"temp_file"`` or ``"custom"``.
    access_token_filename : str
        File name of the cached token inside the system temp directory.
    cache : object, optional
        Custom cache backend with ``get``, ``set`` and ``delete`` methods.
    cache_key : str
        Key under which the token is stored in the custom backend.
    access_token_expire_buffer : int
        Cached tokens expiring within this many seconds are not reused.
    headers : dict
        Headers sent with every request.
    error_log_function : callable, optional
        Sink for error diagnostics.  Defaults to the module logger.
    timeout : float
        Per-request timeout in seconds.
    debug_headers : bool
        Send ``X-Simplifi-Debug: 1`` with every request.
    client_name : str, optional
        Name of the embedding application, added to the User-Agent.
    app_env : str, optional
        Environment name such as ``"local"`` or ``"production"``.
    """

    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    scope: Optional[str] = "*"
    grant_type: str = GRANT_CLIENT_CREDENTIALS
    url_base: str = "https://api.simplifi.com/"
    url_version: str = "api/v1/"
    token_url: str = "oauth/access_token"
    token_url_absolute: bool = False
    token_cache: str = TOKEN_CACHE_TEMP_FILE
    access_token_filename: Optional[str] = "simplifi-access-token.json"
    cache: Any = None
    cache_key: str = "simplifi-access-token"
    access_token_expire_buffer: int = 10
    headers: Dict[str, str] = field(default_factory=dict)
    error_log_function: Optional[Callable[[str], None]] = None
    timeout: Optional[float] = 30.0
    debug_headers: bool = False
    client_name: Optional[str] = None
    app_env: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.url_base:
            raise SimplifiConfigurationError("url_base must be provided")
        if self.grant_type not in (GRANT_CLIENT_CREDENTIALS, GRANT_PASSWORD):
            raise SimplifiConfigurationError(
                "grant_type must be 'client_credentials' or 'password', got %r"
                % self.grant_type
            )
        if self.access_token_expire_buffer < 0:
            raise SimplifiConfigurationError("access_token_expire_buffer must not be negative")

    @classmethod
    def from_env(cls, **overrides: Any) -> "ClientConfig":
        """Build a config from ``SIMPLIFI_*`` (or legacy ``UBER_*``) variables."""
        values: Dict[str, Any] = {
            "client_id": _env("SIMPLIFI_API_CLIENT_ID", "UBER_API_CLIENT_ID"),
            "client_secret": _env("SIMPLIFI_API_CLIENT_SECRET", "UBER_API_CLIENT_SECRET"),
            "username": _env("SIMPLIFI_API_USERNAME", "UBER_API_USERNAME"),
            "password": _env("SIMPLIFI_API_PASSWORD", "UBER_API_PASSWORD"),
            "scope": _env("SIMPLIFI_API_SCOPE", default="*"),
            "url_base": _env("SIMPLIFI_URL_BASE", "UBER_URL_BASE", default=cls.url_base),
            "grant_type": _env("SIMPLIFI_API_GRANT_TYPE", default=GRANT_CLIENT_CREDENTIALS),
            "app_env": _env("APP_ENV"),
        }
        values.update(_normalise_keys(overrides))
        return cls.from_mapping(values)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "ClientConfig":
        """Build a config from a mapping, accepting ``url-base`` style keys."""
        return cls(**_check_keys(_normalise_keys(values)))

    def merged(self, overrides: Optional[Mapping[str, Any]] = None) -> "ClientConfig":
        """Return a copy with ``overrides`` applied on top (shallow merge)."""
        if not overrides:
            return self
        return dataclasses.replace(self, **_check_keys(_normalise_keys(overrides)))

    def report_error(self, message: str) -> None:
        """Send ``message`` to the configured error sink."""
        if self.error_log_function is not None:
            self.error_log_function(message)
        else:
            logger.error(message)


def _normalise_keys(values: Mapping[str, Any]) -> Dict[str, Any]:
    return {key.replace("-", "_"): value for key, value in values.items()}


def _check_keys(values: Dict[str, Any]) -> Dict[str, Any]:
    known = {f.name for f in dataclasses.fields(ClientConfig)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise SimplifiConfigurationError("Unknown config option(s): %s" % ", ".join(unknown))
    return values
