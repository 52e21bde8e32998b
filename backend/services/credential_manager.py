"""System keychain storage for the backend's own API credentials.

These are deployment secrets (SnapTrade partner keys, the bearer-token
verification secret), not per-user SnapTrade secrets, which live in the
``broker_connections`` table. ``keyring`` is imported on use so a missing
or broken keychain backend only disables this source.
"""

import logging

logger = logging.getLogger(__name__)

SERVICE_NAME = "networth-dashboard"

CREDENTIAL_KEYS: frozenset[str] = frozenset(
    {
        "SNAPTRADE_CLIENT_ID",
        "SNAPTRADE_CONSUMER_KEY",
        "AUTH_JWT_SECRET",
    }
)


def _keyring():
    """The ``keyring`` module, or None when it is not installed."""
    try:
        import keyring
    except ImportError:
        return None
    return keyring


def get_credential(key: str) -> str | None:
    """Read a credential from the keychain.

    Returns:
        The stored value, or None if it is absent or the keychain is unusable.
    """
    backend = _keyring()
    if backend is None:
        return None
    try:
        return backend.get_password(SERVICE_NAME, key)
    except Exception:
        logger.debug("Keychain read failed for %s", key, exc_info=True)
        return None


def set_credential(key: str, value: str) -> bool:
    """Write a credential to the keychain.

    Args:
        key: One of ``CREDENTIAL_KEYS``
        value: Non-blank secret value

    Returns:
        True if the value was stored
    """
    if key not in CREDENTIAL_KEYS:
        logger.warning("Refusing to store unknown credential %s", key)
        return False
    if not value or not value.strip():
        logger.warning("Refusing to store blank value for %s", key)
        return False

    backend = _keyring()
    if backend is None:
        logger.warning("keyring is not installed; cannot store %s", key)
        return False
    try:
        backend.set_password(SERVICE_NAME, key, value)
    except Exception:
        logger.warning("Keychain write failed for %s", key, exc_info=True)
        return False
    logger.info("Stored %s in keychain", key)
    return True


def delete_credential(key: str) -> bool:
    """Remove a credential from the keychain. Returns True on success."""
    if key not in CREDENTIAL_KEYS:
        logger.warning("Refusing to delete unknown credential %s", key)
        return False

    backend = _keyring()
    if backend is None:
        return False
    try:
        backend.delete_password(SERVICE_NAME, key)
    except Exception:
        logger.debug("Keychain delete failed for %s", key, exc_info=True)
        return False
    logger.info("Deleted %s from keychain", key)
    return True
