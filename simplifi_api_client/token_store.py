"""
Access token cache backends.

Two backends are provided: :class:`FileTokenStore` keeps the token
record as JSON in the system temp directory and
:class:`CallbackTokenStore` hands it to an application supplied
key/value cache (Redis, memcached, a framework cache, ...).  Exactly
one backend is active per client; :func:`build_token_store` picks it
from the configuration.

Caching is best effort.  Read problems are treated as "no token" and
write/delete problems are reported to the configured error sink, never
raised.
"""

from __future__ import annotations

import json
import logging
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol, Union

from .config import TOKEN_CACHE_CUSTOM, TOKEN_CACHE_TEMP_FILE, ClientConfig
from .exceptions import SimplifiConfigurationError

logger = logging.getLogger(__name__)

# Used when the token endpoint does not say how long the token lives.
DEFAULT_EXPIRES_IN = 900

_KNOWN_FIELDS = {"access_token", "token_type", "expires_in", "expires_at", "refresh_token"}


@dataclass
class Token:
    """An issued access token.

    Parameters
    ----------
    value : str
        The bearer token string.
    expires_at : int
        Unix timestamp when the token expires.
    token_type : str, optional
        Token type reported by the server, normally ``Bearer``.
    expires_in : int, optional
        Lifetime in seconds as reported at issuance.
    refresh_token : str, optional
        Refresh token, if the server returned one.
    extra : dict, optional
        Any other fields from the token response, passed through as-is.
    """

    value: str
    expires_at: int
    token_type: str = "Bearer"
    expires_in: int = DEFAULT_EXPIRES_IN
    refresh_token: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def issue(cls, data: Dict[str, Any], now: Optional[float] = None) -> "Token":
        """Create a token from a token endpoint response body.

        ``expires_at`` is computed here, once, from ``expires_in``.
        """
        if now is None:
            now = time.time()
        expires_in = data.get("expires_in")
        if isinstance(expires_in, bool) or not isinstance(expires_in, (int, float)):
            expires_in = DEFAULT_EXPIRES_IN
        return cls(
            value=data["access_token"],
            expires_at=int(now + expires_in),
            token_type=data.get("token_type") or "Bearer",
            expires_in=int(expires_in),
            refresh_token=data.get("refresh_token"),
            extra={k: v for k, v in data.items() if k not in _KNOWN_FIELDS},
        )

    @classmethod
    def from_record(cls, record: Any) -> Optional["Token"]:
        """Rebuild a cached token, or return ``None`` if the record is unusable."""
        if not isinstance(record, dict):
            return None
        value = record.get("access_token")
        expires_at = record.get("expires_at")
        if not value or not isinstance(value, str):
            return None
        if isinstance(expires_at, bool) or not isinstance(expires_at, int):
            return None
        expires_in = record.get("expires_in")
        return cls(
            value=value,
            expires_at=expires_at,
            token_type=record.get("token_type") or "Bearer",
            expires_in=expires_in if isinstance(expires_in, int) else DEFAULT_EXPIRES_IN,
            refresh_token=record.get("refresh_token"),
            extra={k: v for k, v in record.items() if k not in _KNOWN_FIELDS},
        )

    def to_record(self) -> Dict[str, Any]:
        record = dict(self.extra)
        record.update(
            {
                "access_token": self.value,
                "token_type": self.token_type,
                "expires_in": self.expires_in,
                "expires_at": self.expires_at,
            }
        )
        if self.refresh_token:
            record["refresh_token"] = self.refresh_token
        return record

    def is_fresh(self, buffer_seconds: int, now: Optional[float] = None) -> bool:
        """True if the token stays valid for more than ``buffer_seconds``."""
        if now is None:
            now = time.time()
        return self.expires_at - now > buffer_seconds


class CacheBackend(Protocol):
    """Key/value cache supplied by the embedding application."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class CallbackCache:
    """Adapt three plain callables to the :class:`CacheBackend` interface."""

    def __init__(
        self,
        get: Callable[[str], Optional[str]],
        set: Callable[[str, str], None],
        delete: Callable[[str], None],
    ) -> None:
        self._get = get
        self._set = set
        self._delete = delete

    def get(self, key: str) -> Optional[str]:
        return self._get(key)

    def set(self, key: str, value: str) -> None:
        self._set(key, value)

    def delete(self, key: str) -> None:
        self._delete(key)


class TokenStore:
    """Interface shared by the token cache backends."""

    def __init__(self, error_sink: Optional[Callable[[str], None]] = None) -> None:
        self._error_sink = error_sink

    def read(self) -> Optional[Token]:
        raise NotImplementedError

    def write(self, token: Token) -> Optional[Exception]:
        """Cache ``token``.  Returns the error on failure instead of raising it."""
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError

    def _report(self, message: str) -> None:
        if self._error_sink is not None:
            self._error_sink(message)
        else:
            logger.error(message)


class FileTokenStore(TokenStore):
    """Store the token record as JSON in the system temp directory."""

    def __init__(
        self,
        filename: Optional[str],
        directory: Union[str, Path, None] = None,
        error_sink: Optional[Callable[[str], None]] = None,
    ) -> None:
        super().__init__(error_sink)
        if not filename:
            raise SimplifiConfigurationError("Access token filename missing")
        self.path = Path(directory or tempfile.gettempdir()) / filename

    def read(self) -> Optional[Token]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.debug("Could not read token cache %s: %s", self.path, exc)
            return None
        try:
            record = json.loads(text)
        except ValueError:
            logger.debug("Ignoring malformed token cache %s", self.path)
            return None
        return Token.from_record(record)

    def write(self, token: Token) -> Optional[Exception]:
        try:
            self.path.write_text(json.dumps(token.to_record()), encoding="utf-8")
        except OSError as exc:
            self._report(
                "Error writing to file.\n"
                "  When attempting to cache access_token.\n"
                f"  File: '{self.path}'\n"
                f"  Error: {exc}"
            )
            return exc
        return None

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            self._report(f"Error deleting cached access_token file '{self.path}': {exc}")


class CallbackTokenStore(TokenStore):
    """Store the token record as a JSON string in an external cache."""

    def __init__(
        self,
        backend: Any,
        key: str,
        error_sink: Optional[Callable[[str], None]] = None,
    ) -> None:
        super().__init__(error_sink)
        if backend is None:
            raise SimplifiConfigurationError("A custom token cache requires a cache backend")
        missing = [name for name in ("get", "set", "delete") if not callable(getattr(backend, name, None))]
        if missing:
            raise SimplifiConfigurationError(
                "Custom token cache backend is missing callable(s): %s" % ", ".join(missing)
            )
        if not key:
            raise SimplifiConfigurationError("Custom token cache key missing")
        self.backend = backend
        self.key = key

    def read(self) -> Optional[Token]:
        try:
            raw = self.backend.get(self.key)
        except Exception as exc:
            self._report(f"Error reading access_token from custom cache '{self.key}': {exc}")
            return None
        if not raw:
            return None
        try:
            record = json.loads(raw)
        except (TypeError, ValueError):
            logger.debug("Ignoring malformed token in custom cache %r", self.key)
            return None
        return Token.from_record(record)

    def write(self, token: Token) -> Optional[Exception]:
        try:
            self.backend.set(self.key, json.dumps(token.to_record()))
        except Exception as exc:
            self._report(f"Error writing access_token to custom cache '{self.key}': {exc}")
            return exc
        return None

    def clear(self) -> None:
        try:
            self.backend.delete(self.key)
        except Exception as exc:
            self._report(f"Error deleting access_token from custom cache '{self.key}': {exc}")


def build_token_store(config: ClientConfig) -> TokenStore:
    """Create the token store selected by ``config.token_cache``."""
    if config.token_cache == TOKEN_CACHE_TEMP_FILE:
        return FileTokenStore(config.access_token_filename, error_sink=config.report_error)
    if config.token_cache == TOKEN_CACHE_CUSTOM:
        return CallbackTokenStore(config.cache, config.cache_key, error_sink=config.report_error)
    raise SimplifiConfigurationError(
        "token_cache must be 'temp_file' or 'custom', got %r" % (config.token_cache,)
    )
