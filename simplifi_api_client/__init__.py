"""
Python client for interacting with the Simplifi accounting REST API.

This package provides a `SimplifiClient` class that handles OAuth2
authentication against the Simplifi token endpoint, caches access
tokens (in the system temp directory or an application supplied
cache) and wraps every HTTP exchange in an `ApiResponse`.

When the API reports ``{"type": "AuthenticationException"}`` for a
token that looked valid, the cached token is dropped and the request
is retried once with a freshly issued token.

Examples
--------

```python
from simplifi_api_client import ClientConfig, SimplifiClient

client = SimplifiClient(
    ClientConfig(
        client_id="YOUR_CLIENT_ID",
        client_secret="YOUR_CLIENT_SECRET",
    )
)

response = client.get("sales", data={"page": 1})
if not response.success:
    print(response.errors_to_string())

# Every item of every page
sales = response.all_pages()
```

Configuration can also be read from ``SIMPLIFI_API_CLIENT_ID``,
``SIMPLIFI_API_CLIENT_SECRET``, ``SIMPLIFI_URL_BASE`` and friends with
``ClientConfig.from_env()``; ``SimplifiClient()`` does that by default.
"""

__version__ = "1.0.0"

from .client import SimplifiClient
from .config import ClientConfig
from .exceptions import (
    SimplifiAPIError,
    SimplifiAuthError,
    SimplifiConfigurationError,
    SimplifiError,
    SimplifiPaginationError,
    SimplifiRequestError,
)
from .options import RequestOptions
from .response import NO_MORE_PAGES, ApiResponse
from .token_store import (
    CallbackCache,
    CallbackTokenStore,
    FileTokenStore,
    Token,
    TokenStore,
)

__all__ = [
    "SimplifiClient",
    "ClientConfig",
    "RequestOptions",
    "ApiResponse",
    "NO_MORE_PAGES",
    "Token",
    "TokenStore",
    "FileTokenStore",
    "CallbackTokenStore",
    "CallbackCache",
    "SimplifiError",
    "SimplifiConfigurationError",
    "SimplifiRequestError",
    "SimplifiAPIError",
    "SimplifiAuthError",
    "SimplifiPaginationError",
]
