"""Typed exception hierarchy for provider errors.

Provides structured exceptions for differentiated error handling
(auth errors vs transient network errors vs data issues). Raw SDK
errors are classified into these types once, inside the adapter, so
callers branch on exception type instead of matching error text.
"""


class ProviderError(Exception):
    """Base exception for all provider-related errors.

    Carries the provider name so callers can identify which provider failed.
    """

    def __init__(self, message: str, provider_name: str = ""):
        self.provider_name = provider_name
        super().__init__(message)


class ProviderAuthError(ProviderError):
    """Credentials missing, expired, or invalid (HTTP 401/403)."""

    pass


class BrokerNotInitializedError(ProviderAuthError):
    """The API credentials needed to build the SDK client are not configured."""

    pass


class ProviderUserNotRegisteredError(ProviderAuthError):
    """The remote side does not recognise the user id / secret pair."""

    pass


class ProviderConnectionError(ProviderError):
    """Network failures: timeouts, DNS resolution, refused connections.

    Retriable by default.
    """

    def __init__(self, message: str, provider_name: str = "", retriable: bool = True):
        self.retriable = retriable
        super().__init__(message, provider_name)


class ProviderAPIError(ProviderError):
    """HTTP 4xx/5xx responses from the provider API."""

    def __init__(
        self,
        message: str,
        provider_name: str = "",
        status_code: int | None = None,
        detail: str | None = None,
    ):
        self.status_code = status_code
        self.detail = detail
        super().__init__(message, provider_name)

    @property
    def retriable(self) -> bool:
        """425 (sync pending), 429 (rate limit) and 5xx errors are generally retriable."""
        if self.status_code is None:
            return False
        return self.status_code in (425, 429) or self.status_code >= 500


class ProviderUserExistsError(ProviderAPIError):
    """Registration conflict: the remote identity already exists."""

    pass


class ProviderSyncPendingError(ProviderAPIError):
    """HTTP 425: the provider has not finished its initial account sync."""

    pass


class ProviderDataError(ProviderError):
    """Malformed or unparseable response from the provider."""

    pass
