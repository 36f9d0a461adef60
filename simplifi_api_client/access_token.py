"""
Access token acquisition and caching.

:class:`AccessTokenManager` answers "give me a valid token": it first
asks the :class:`~simplifi_api_client.token_store.TokenStore` for a
cached token and only exchanges credentials with the OAuth endpoint
(through :class:`TokenIssuer`) when the cached one is missing or about
to expire.  A failed exchange is returned as the failed
:class:`~simplifi_api_client.response.ApiResponse` so callers can tell
"could not get a token" apart from other failures.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any, Dict, Union

from .config import GRANT_PASSWORD, ClientConfig
from .options import RequestOptions
from .token_store import Token, TokenStore

if TYPE_CHECKING:
    from .client import SimplifiClient
    from .response import ApiResponse

logger = logging.getLogger(__name__)


class TokenIssuer:
    """Exchange credentials for a new token at the OAuth endpoint."""

    def __init__(self, client: "SimplifiClient") -> None:
        self._client = client

    def payload(self, config: ClientConfig) -> Dict[str, Any]:
        """Build the token request body, leaving out empty fields.

        The client credentials grant sends ``client_id``, ``client_secret``
        and ``scope``; the password grant adds ``username`` and ``password``.
        """
        fields = ["client_id", "client_secret", "scope"]
        if config.grant_type == GRANT_PASSWORD:
            fields[2:2] = ["username", "password"]
        payload: Dict[str, Any] = {"grant_type": config.grant_type}
        for name in fields:
            value = getattr(config, name)
            if value:
                payload[name] = value
        return payload

    def issue(self, config: ClientConfig) -> Union[Token, "ApiResponse"]:
        """Request a new token.

        Returns a :class:`Token` on success.  On a failed request, a body
        that is not JSON, or a body without ``access_token`` the response is
        returned with ``success`` forced to ``False``.
        """
        if config.token_url_absolute:
            location = {"url_absolute": config.token_url}
        else:
            location = {"url": config.token_url}
        options = RequestOptions(
            method="POST",
            data=self.payload(config),
            with_access_token=False,
            retry_on_auth_exception=False,
            form=True,
            **location,
        )
        response = self._client._send(options, config, notify=False)
        response.token_failure = True

        if not response.success:
            logger.warning("Access token request failed: %s", response.errors_to_string())
            response.set_success(False)
            return response

        data = response.body()
        if not isinstance(data, dict) or not data.get("access_token"):
            logger.warning("Access token response did not contain an access_token")
            response.set_success(False)
            return response

        response.token_failure = False
        token = Token.issue(data)
        logger.info("Issued new access token expiring at %d", token.expires_at)
        return token


class AccessTokenManager:
    """Cache-first access to a valid bearer token."""

    def __init__(self, store: TokenStore, issuer: TokenIssuer) -> None:
        self.store = store
        self.issuer = issuer

    def get_token(self, config: ClientConfig) -> Union[str, "ApiResponse"]:
        """Return a usable token string, or the failed issuance response.

        A cached token is reused only while it remains valid for more than
        ``config.access_token_expire_buffer`` seconds.
        """
        cached = self.store.read()
        if cached is not None and cached.is_fresh(config.access_token_expire_buffer, time.time()):
            logger.debug("Using cached access token")
            return cached.value

        result = self.issuer.issue(config)
        if not isinstance(result, Token):
            return result

        # Best effort: the store reports its own failures.
        self.store.write(result)
        return result.value

    def clear(self) -> None:
        self.store.clear()
