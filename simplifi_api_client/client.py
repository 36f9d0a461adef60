"""
Client implementation for the Simplifi REST API.

This module defines the :class:`SimplifiClient` class which
authenticates against the Simplifi OAuth endpoint, attaches the
bearer token to every request and wraps each HTTP exchange in an
:class:`~simplifi_api_client.response.ApiResponse`.  Access tokens are
cached (in the system temp directory by default) and reused until they
are about to expire.  If the API rejects a token anyway, the cache is
cleared and the request is sent once more with a fresh token.

Usage
-----

.. code-block:: python

    from simplifi_api_client import ClientConfig, SimplifiClient

    client = SimplifiClient(
        ClientConfig(client_id="abc123", client_secret="shhsecret")
    )

    response = client.get("invoices", data={"status": "open"})
    if response.success:
        for invoice in response.all_pages():
            print(invoice["number"])
    else:
        print(response.errors_to_string())

    # URL templates take one positional argument per "?" placeholder
    lines = client.get("invoices/?/lines", 1234)

Network and HTTP failures never raise; only configuration mistakes
(no URL, an unsupported method, a URL template with the wrong number of
arguments) do, before anything is sent.
"""

from __future__ import annotations

import logging
import platform
import time
from typing import Any, Callable, Dict, Mapping, Optional, Union

import requests

from . import __version__
from .access_token import AccessTokenManager, TokenIssuer
from .config import ClientConfig
from .exceptions import SimplifiRequestError
from .options import SUPPORTED_METHODS, RequestOptions, build_url
from .response import ApiResponse
from .token_store import TokenStore, build_token_store

logger = logging.getLogger(__name__)

BeforeRequestHook = Callable[[RequestOptions, ClientConfig], None]
AfterRequestHook = Callable[[ApiResponse], None]


class SimplifiClient:
    """A client for the Simplifi REST API.

    Parameters
    ----------
    config : ClientConfig, optional
        Client configuration.  When omitted it is read from the
        environment with :meth:`ClientConfig.from_env`.
    token_store : TokenStore, optional
        Token cache to use instead of the one selected by
        ``config.token_cache``.
    before_request : callable, optional
        Called as ``before_request(options, config)`` right before each
        API request is sent.  The token exchange does not call it.
    after_request : callable, optional
        Called as ``after_request(response)`` with the final response of
        every :meth:`request` call.

    Notes
    -----
    Hooks run synchronously and are trusted: exceptions raised inside
    them propagate to the caller.
    """

    #: Number of times a request is re-sent after an authentication rejection.
    MAX_AUTH_RETRIES = 1

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        token_store: Optional[TokenStore] = None,
        before_request: Optional[BeforeRequestHook] = None,
        after_request: Optional[AfterRequestHook] = None,
    ) -> None:
        self.config = config if config is not None else ClientConfig.from_env()
        store = token_store if token_store is not None else build_token_store(self.config)
        self.tokens = AccessTokenManager(store, TokenIssuer(self))
        self.before_request = before_request
        self.after_request = after_request

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------
    def get_access_token(
        self, override_config: Union[ClientConfig, Mapping[str, Any], None] = None
    ) -> Union[str, ApiResponse]:
        """Return a valid access token, or the failed token response."""
        return self.tokens.get_token(self._config_for(override_config))

    def clear_access_token(self) -> None:
        """Forget the cached access token."""
        self.tokens.clear()

    # ------------------------------------------------------------------
    # HTTP request helpers
    # ------------------------------------------------------------------
    def _config_for(self, override_config: Union[ClientConfig, Mapping[str, Any], None]) -> ClientConfig:
        if isinstance(override_config, ClientConfig):
            return override_config
        return self.config.merged(override_config)

    def _user_agent(self, config: ClientConfig) -> str:
        parts = ["simplifi-api-client/%s" % __version__]
        if config.client_name:
            parts.append(config.client_name)
        parts.append("python/%s" % platform.python_version())
        parts.append("requests/%s" % requests.__version__)
        return " ".join(parts)

    def _build_headers(self, options: RequestOptions, config: ClientConfig, token: Optional[str]) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if options.response_type == "json":
            headers["Accept"] = "application/json"
        headers.update(config.headers)
        for key, value in options.headers.items():
            # A per-call header cannot replace the bearer token we attach.
            if token is not None and key.lower() == "authorization":
                continue
            headers[key] = value
        if token is not None:
            headers["Authorization"] = f"Bearer {token}"
        headers["User-Agent"] = self._user_agent(config)
        if config.debug_headers:
            headers["X-Simplifi-Debug"] = "1"
        return headers

    def request(
        self,
        options: Union[RequestOptions, Mapping[str, Any]],
        override_config: Union[ClientConfig, Mapping[str, Any], None] = None,
    ) -> ApiResponse:
        """Perform an HTTP request against the Simplifi API.

        Parameters
        ----------
        options : RequestOptions or mapping
            What to request.  A mapping is converted with
            :meth:`RequestOptions.from_mapping`.
        override_config : ClientConfig or mapping, optional
            Config values to use for this request only.

        Returns
        -------
        ApiResponse
            The response.  When an access token could not be obtained, the
            failed token response is returned and the target endpoint is
            never contacted.

        Raises
        ------
        SimplifiRequestError
            If no URL was given, the method is not supported or the URL
            template does not match its arguments.
        """
        if not isinstance(options, RequestOptions):
            options = RequestOptions.from_mapping(options)
        config = self._config_for(override_config)

        current = options
        for attempt in range(self.MAX_AUTH_RETRIES + 1):
            response = self._send(current, config)
            if response.token_failure and current.with_access_token:
                break
            if not (current.retry_on_auth_exception and response.is_authentication_exception()):
                break
            if attempt == self.MAX_AUTH_RETRIES:
                break
            logger.warning(
                "%s %s rejected the access token; clearing the cache and retrying",
                response.method,
                response.url,
            )
            self.tokens.clear()
            current = current.without_retry()

        if current is not options and not response.token_failure:
            # Later pages must be requested with the caller's options.
            response.request_options = options

        if self.after_request is not None:
            self.after_request(response)
        return response

    def _send(self, options: RequestOptions, config: ClientConfig, notify: bool = True) -> ApiResponse:
        """Send one HTTP request.  ``notify=False`` skips ``before_request``."""
        method = options.method.upper()
        if method not in SUPPORTED_METHODS:
            raise SimplifiRequestError(f"Invalid method {options.method!r}")
        url = build_url(config, options)

        token: Optional[str] = None
        if options.with_access_token and not options.has_access_token():
            result = self.tokens.get_token(config)
            if isinstance(result, ApiResponse):
                return result
            token = result

        headers = self._build_headers(options, config, token)
        kwargs: Dict[str, Any] = {"headers": headers, "timeout": config.timeout}
        data = options.data
        if method == "GET":
            kwargs["params"] = data or None
        elif isinstance(data, str) or options.form:
            kwargs["data"] = data
        elif data:
            kwargs["json"] = data

        if notify and self.before_request is not None:
            self.before_request(options, config)

        logger.debug("%s %s", method, url)
        started = time.monotonic()
        try:
            raw = requests.request(method=method, url=url, **kwargs)
        except requests.RequestException as exc:
            elapsed = time.monotonic() - started
            logger.debug("%s %s failed after %.3fs: %s", method, url, elapsed, exc)
            return ApiResponse(
                self,
                config,
                options,
                url=url,
                elapsed=elapsed,
                transport_error=f"{type(exc).__name__}: {exc}",
            )
        elapsed = time.monotonic() - started
        logger.debug("%s %s -> %s in %.3fs", method, url, raw.status_code, elapsed)
        return ApiResponse(
            self,
            config,
            options,
            http_status=raw.status_code,
            raw_body=raw.text,
            url=raw.url or url,
            headers=raw.headers,
            elapsed=elapsed,
            reason=raw.reason,
        )

    # ------------------------------------------------------------------
    # Public convenience methods
    # ------------------------------------------------------------------
    def _call(
        self,
        method: str,
        path: str,
        url_args: tuple,
        data: Any,
        headers: Optional[Dict[str, str]],
        absolute: bool,
        override_config: Union[ClientConfig, Mapping[str, Any], None],
        extra: Dict[str, Any],
    ) -> ApiResponse:
        location = {"url_absolute": path} if absolute else {"url": path}
        options = RequestOptions(
            method=method,
            url_args=url_args,
            data=data if data is not None else {},
            headers=dict(headers or {}),
            **location,
            **extra,
        )
        return self.request(options, override_config)

    def get(
        self,
        path: str,
        *url_args: Any,
        data: Any = None,
        headers: Optional[Dict[str, str]] = None,
        absolute: bool = False,
        override_config: Union[ClientConfig, Mapping[str, Any], None] = None,
        **options: Any,
    ) -> ApiResponse:
        """Perform a GET request; ``data`` becomes the query string.

        See :meth:`request` for full documentation.
        """
        return self._call("GET", path, url_args, data, headers, absolute, override_config, options)

    def post(
        self,
        path: str,
        *url_args: Any,
        data: Any = None,
        headers: Optional[Dict[str, str]] = None,
        absolute: bool = False,
        override_config: Union[ClientConfig, Mapping[str, Any], None] = None,
        **options: Any,
    ) -> ApiResponse:
        """Perform a POST request.

        See :meth:`request` for full documentation.
        """
        return self._call("POST", path, url_args, data, headers, absolute, override_config, options)

    def put(
        self,
        path: str,
        *url_args: Any,
        data: Any = None,
        headers: Optional[Dict[str, str]] = None,
        absolute: bool = False,
        override_config: Union[ClientConfig, Mapping[str, Any], None] = None,
        **options: Any,
    ) -> ApiResponse:
        """Perform a PUT request.

        See :meth:`request` for full documentation.
        """
        return self._call("PUT", path, url_args, data, headers, absolute, override_config, options)

    def patch(
        self,
        path: str,
        *url_args: Any,
        data: Any = None,
        headers: Optional[Dict[str, str]] = None,
        absolute: bool = False,
        override_config: Union[ClientConfig, Mapping[str, Any], None] = None,
        **options: Any,
    ) -> ApiResponse:
        """Perform a PATCH request.

        See :meth:`request` for full documentation.
        """
        return self._call("PATCH", path, url_args, data, headers, absolute, override_config, options)

    def delete(
        self,
        path: str,
        *url_args: Any,
        data: Any = None,
        headers: Optional[Dict[str, str]] = None,
        absolute: bool = False,
        override_config: Union[ClientConfig, Mapping[str, Any], None] = None,
        **options: Any,
    ) -> ApiResponse:
        """Perform a DELETE request.

        See :meth:`request` for full documentation.
        """
        return self._call("DELETE", path, url_args, data, headers, absolute, override_config, options)
