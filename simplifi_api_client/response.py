"""
Wrapped API responses.

Every HTTP round trip made by :class:`~simplifi_api_client.SimplifiClient`
produces one :class:`ApiResponse`.  It never raises on its own for a
failed request; callers inspect :attr:`ApiResponse.success` and
:meth:`ApiResponse.errors`, or call :meth:`ApiResponse.raise_for_errors`.

Paginated list endpoints return a body such as::

    {
        "data": [...],
        "paginator": {"current_page": 1, "total_pages": 3, "total_count": 42}
    }

:meth:`ApiResponse.next_page` fetches the following page and
:meth:`ApiResponse.all_pages` collects the ``data`` items of every page.
"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Sequence, Union

from .exceptions import SimplifiAPIError, SimplifiAuthError, SimplifiPaginationError
from .options import RequestOptions

if TYPE_CHECKING:
    from .client import SimplifiClient
    from .config import ClientConfig

logger = logging.getLogger(__name__)

AUTHENTICATION_EXCEPTION = "AuthenticationException"

REDACTED = "[REDACTED]"
SECRET_KEY_PATTERN = re.compile(r"token|password|secret|authorization", re.IGNORECASE)

MAX_ERROR_TITLE_LENGTH = 200

_MISSING = object()


class _NoMorePages:
    """Returned by :meth:`ApiResponse.next_page` after the last page."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_MORE_PAGES"


NO_MORE_PAGES = _NoMorePages()


def redact(value: Any) -> Any:
    """Return a copy of ``value`` with secret-looking keys masked."""
    if isinstance(value, dict):
        return {
            key: REDACTED if isinstance(key, str) and SECRET_KEY_PATTERN.search(key) else redact(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact(item) for item in value]
    return value


class ApiResponse:
    """The outcome of one HTTP exchange with the Simplifi API.

    Parameters
    ----------
    client : SimplifiClient
        Client that produced the response; used to fetch further pages.
    config : ClientConfig
        Effective configuration of the request.
    request_options : RequestOptions
        Options the request was sent with.
    http_status : int, optional
        HTTP status code, ``None`` when no response was received.
    raw_body : str
        Undecoded response body.
    url : str, optional
        URL the request was sent to.
    headers : dict, optional
        Response headers.
    elapsed : float
        Seconds spent on the round trip.
    transport_error : str, optional
        Description of a connection, DNS, TLS or timeout failure.
    reason : str, optional
        HTTP reason phrase.
    """

    def __init__(
        self,
        client: Optional["SimplifiClient"],
        config: "ClientConfig",
        request_options: RequestOptions,
        *,
        http_status: Optional[int] = None,
        raw_body: str = "",
        url: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        elapsed: float = 0.0,
        transport_error: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        self._client = client
        self.config = config
        self.request_options = request_options
        self.http_status = http_status
        self.raw_body = raw_body or ""
        self.url = url
        self.headers = dict(headers or {})
        self.elapsed = elapsed
        self.transport_error = transport_error
        self.reason = reason
        # True when this response came from a failed access token request.
        self.token_failure = False
        self._forced_success: Optional[bool] = None
        self._parsed: Any = _MISSING
        self._parse_ok = False
        self._decode()

    def _decode(self) -> None:
        text = self.raw_body.strip()
        if not text:
            self._parsed = None
            self._parse_ok = True
            return
        try:
            self._parsed = json.loads(text)
            self._parse_ok = True
        except ValueError:
            self._parsed = self.raw_body
            self._parse_ok = False

    def __repr__(self) -> str:
        return "<ApiResponse %s %s [%s] success=%s>" % (
            self.method,
            self.url,
            self.http_status,
            self.success,
        )

    def __bool__(self) -> bool:
        # Iteration support would otherwise make an empty page falsy.
        return True

    # ------------------------------------------------------------------
    # Success and body
    # ------------------------------------------------------------------
    @property
    def success(self) -> bool:
        if self._forced_success is not None:
            return self._forced_success
        if self.transport_error is not None or self.http_status is None:
            return False
        if not 200 <= self.http_status < 300:
            return False
        if self.request_options.response_type == "json" and not self._parse_ok:
            return False
        # A rejected token is a failure whatever the HTTP status.
        if self.is_authentication_exception():
            return False
        return True

    def is_success(self) -> bool:
        return self.success

    def set_success(self, success: Optional[bool]) -> None:
        """Override :attr:`success`, e.g. after finding a semantic error in the body.

        Passing ``None`` restores the derived value.
        """
        self._forced_success = success

    def body(self) -> Any:
        """The decoded JSON body, or the raw text when it is not JSON."""
        return self._parsed

    @property
    def method(self) -> str:
        return self.request_options.method.upper()

    def is_authentication_exception(self) -> bool:
        body = self.body()
        return isinstance(body, dict) and body.get("type") == AUTHENTICATION_EXCEPTION

    def get(self, path: Union[str, Sequence[Any]], default: Any = None) -> Any:
        """Look up a nested body value.

        ``path`` is either a dotted string (``"paginator.current_page"``) or
        a sequence of keys.  Integer segments index into lists.  A missing
        path logs a warning and returns ``default``.
        """
        if isinstance(path, str):
            segments: Sequence[Any] = path.split(".") if path else []
        else:
            segments = list(path)
        node = self.body()
        for segment in segments:
            node = _step(node, segment)
            if node is _MISSING:
                logger.warning(
                    "Undefined property %s (%s) in response from %s %s",
                    ".".join(str(s) for s in segments),
                    segment,
                    self.method,
                    self.url,
                )
                return default
        return node

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------
    def errors(self) -> List[Dict[str, Any]]:
        """Errors reported by the API, or a synthesised transport error.

        Each entry has a ``title`` and may have a ``message``.
        """
        errors: List[Dict[str, Any]] = []
        body = self.body()
        if isinstance(body, dict):
            reported = body.get("errors")
            if isinstance(reported, list):
                for item in reported:
                    if isinstance(item, dict):
                        errors.append(dict(item))
                    elif item:
                        errors.append({"title": str(item)})
            error = body.get("error")
            if isinstance(error, dict):
                entry = {"title": str(error.get("title") or error.get("message") or json.dumps(error))}
                if error.get("message") and error.get("title"):
                    entry["message"] = error["message"]
                errors.append(entry)
            elif error:
                entry = {"title": str(error)}
                if body.get("error_description"):
                    entry["message"] = body["error_description"]
                errors.append(entry)
            if not errors and body.get("type") == AUTHENTICATION_EXCEPTION:
                entry = {"title": AUTHENTICATION_EXCEPTION}
                if body.get("message"):
                    entry["message"] = body["message"]
                errors.append(entry)

        if not errors and not self.success:
            errors.append({"title": self._transport_title()})
        return errors

    def _transport_title(self) -> str:
        if self.transport_error is not None:
            title = "transport: %s" % self.transport_error
        elif self.http_status is not None and not 200 <= self.http_status < 300:
            title = "%s: %s" % (self.http_status, self.reason or "HTTP error")
        elif not self._parse_ok and self.request_options.response_type == "json":
            title = "%s: Invalid JSON response" % self.http_status
        else:
            title = "%s: Request failed" % self.http_status
        return title[:MAX_ERROR_TITLE_LENGTH]

    def simple_errors(self) -> List[str]:
        titles = [str(error.get("title", "")) for error in self.errors()]
        if not titles and not self.success:
            titles.append("Unknown error occurred.")
        return titles

    def errors_to_string(self, glue: str = ", ") -> str:
        return glue.join(self.simple_errors())

    def raise_for_errors(self, message: str = "") -> None:
        """Raise if the request failed, logging the (redacted) response first."""
        if self.success:
            return
        self.config.report_error((message + "\n" if message else "") + self.to_json())
        text = (message + "\n" if message else "") + self.errors_to_string()
        exc_class = SimplifiAuthError if self.token_failure else SimplifiAPIError
        raise exc_class(text, response=self)

    # ------------------------------------------------------------------
    # Pagination
    # ------------------------------------------------------------------
    @property
    def current_page(self) -> Optional[int]:
        paginator = self._paginator()
        if paginator is None:
            return None
        return _as_int(paginator.get("current_page"))

    @property
    def total_pages(self) -> Optional[int]:
        paginator = self._paginator()
        if paginator is None:
            return None
        return _as_int(paginator.get("total_pages"))

    def _paginator(self) -> Optional[Dict[str, Any]]:
        body = self.body()
        if isinstance(body, dict) and isinstance(body.get("paginator"), dict):
            return body["paginator"]
        return None

    def has_next_page(self) -> bool:
        current, total = self.current_page, self.total_pages
        return current is not None and total is not None and current < total

    def next_page(self) -> Union["ApiResponse", _NoMorePages]:
        """Fetch the next page, or return :data:`NO_MORE_PAGES`."""
        if not self.has_next_page():
            return NO_MORE_PAGES
        if self._client is None:
            raise SimplifiPaginationError("Response is not attached to a client")
        options = self.request_options.with_page(self.current_page + 1)
        return self._client.request(options, self.config)

    def all_pages(self) -> List[Any]:
        """Fetch every page and return all ``data`` items in order."""
        if not self.success:
            raise SimplifiPaginationError(
                "Unknown error on paginated response. " + self.errors_to_string()
            )
        items: List[Any] = []
        page: ApiResponse = self
        while True:
            items.extend(page._page_items())
            following = page.next_page()
            if following is NO_MORE_PAGES:
                return items
            if not following.success:
                raise SimplifiPaginationError(
                    "Unknown error while getting next page from API. "
                    + following.errors_to_string()
                )
            if following.current_page is None or following.current_page <= page.current_page:
                raise SimplifiPaginationError(
                    "Inconsistent pagination: page %s followed by page %s"
                    % (page.current_page, following.current_page)
                )
            page = following

    def _page_items(self) -> List[Any]:
        body = self.body()
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, list):
            raise SimplifiPaginationError("Paginated response has no list of data items")
        return data

    # ------------------------------------------------------------------
    # Iteration over ``data``
    # ------------------------------------------------------------------
    def _data_list(self) -> List[Any]:
        body = self.body()
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, list):
            raise TypeError("API response data is not a list")
        return data

    def __iter__(self) -> Iterator[Any]:
        return iter(self._data_list())

    def __len__(self) -> int:
        return len(self._data_list())

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------
    def serialise(self) -> Dict[str, Any]:
        """A redacted dict describing the exchange, for logs."""
        options = self.request_options
        return {
            "url": self.url,
            "http_code": self.http_status,
            "method": self.method,
            "elapsed": round(self.elapsed, 4),
            "success": self.success,
            "request_options": redact(
                {
                    "url": options.url,
                    "url_absolute": options.url_absolute,
                    "data": options.data,
                    "headers": options.headers,
                    "with_access_token": options.with_access_token,
                    "response_type": options.response_type,
                }
            ),
            "response": redact(self.body()),
        }

    def to_json(self, **kwargs: Any) -> str:
        return json.dumps(self.serialise(), default=str, **kwargs)

    def log(self, level: int = logging.DEBUG) -> None:
        logger.log(level, "API response: %s", self.to_json())


def _step(node: Any, segment: Any) -> Any:
    if isinstance(node, dict):
        try:
            return node.get(segment, _MISSING)
        except TypeError:
            return _MISSING
    if isinstance(node, list):
        try:
            return node[int(segment)]
        except (ValueError, TypeError, IndexError):
            return _MISSING
    return _MISSING


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
