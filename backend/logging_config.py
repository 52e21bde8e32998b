"""Logging setup shared by the API server and the scripts."""

import logging
import re

from config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"

QUIET_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "httpx",
    "httpcore",
    "urllib3",
    "snaptrade_client",
    "jwt",
)

# userSecret=..., "userSecret": "...", user_secret='...'
_SECRET_PATTERN = re.compile(
    r"""(user_?secret["']?\s*[=:]\s*["']?)([^"'&\s,}]+)""", re.IGNORECASE
)


class SecretRedactingFilter(logging.Filter):
    """Masks SnapTrade user secrets in formatted log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _SECRET_PATTERN.sub(r"\1***", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging() -> None:
    """Configure the root logger from ``settings.LOG_LEVEL``.

    Third-party loggers listed in ``QUIET_LOGGERS`` stay at WARNING, and
    every root handler redacts user secrets.
    """
    logging.basicConfig(
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
        level=getattr(logging, settings.LOG_LEVEL),
        force=True,
    )
    for handler in logging.getLogger().handlers:
        handler.addFilter(SecretRedactingFilter())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
