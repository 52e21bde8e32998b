"""Shared API helpers for route handlers.

Error mapping and response headers used across the SnapTrade route files.
"""

import logging

from fastapi import HTTPException, status

from integrations.exceptions import BrokerNotInitializedError, ProviderError

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, max-age=0, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

NO_CACHE_PREFIX = "/api/snaptrade"


def error_to_http(exc: Exception, action: str) -> HTTPException:
    """Translate a service or provider exception into an HTTPException.

    Args:
        exc: The exception raised by the service.
        action: Short description of the operation, used in the log line.

    Returns:
        HTTPException with 503 when SnapTrade is not configured and
        500 with the error message otherwise.
    """
    if isinstance(exc, BrokerNotInitializedError):
        logger.warning("SnapTrade not configured while %s", action)
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if isinstance(exc, ProviderError):
        logger.warning("Provider error while %s: %s", action, exc)
    else:
        logger.error("Error while %s", action, exc_info=exc)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=str(exc) or "Unknown error",
    )
