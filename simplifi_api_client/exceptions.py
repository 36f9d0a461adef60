"""
Custom exception types for the Simplifi API client.

Runtime and network problems never surface as exceptions from
:meth:`SimplifiClient.request`; they come back as a failed
:class:`~simplifi_api_client.response.ApiResponse`.  The exceptions
below cover the remaining cases: configuration mistakes detected
before any network attempt, explicit ``raise_for_errors`` calls and
pagination traversal failures.
"""


class SimplifiError(Exception):
    """Base exception for all Simplifi client errors."""


class SimplifiConfigurationError(SimplifiError):
    """Raised when the client or token cache is misconfigured."""


class SimplifiRequestError(SimplifiConfigurationError):
    """Raised when a request cannot be constructed (no URL, bad method, bad URL template)."""


class SimplifiAPIError(SimplifiError):
    """Raised by :meth:`ApiResponse.raise_for_errors` for a failed response."""

    def __init__(self, message: str, response=None) -> None:
        super().__init__(message)
        self.response = response


class SimplifiAuthError(SimplifiAPIError):
    """Raised when the failed response came from access token issuance."""


class SimplifiPaginationError(SimplifiError):
    """Raised when walking a paginated response cannot continue."""
