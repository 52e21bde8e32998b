"""Broker connection store - persistence for per-user broker secrets."""

import logging
import threading
from contextlib import contextmanager

from sqlalchemy.orm import Session

from models.broker_connection import (
    SNAPTRADE_API_KEY_LABEL,
    SNAPTRADE_BROKER_ID,
    BrokerConnection,
)

logger = logging.getLogger(__name__)


class BrokerConnectionStore:
    """Read/update/upsert access to BrokerConnection rows.

    Every write commits immediately. Registration records failure markers
    before re-raising, and those markers must survive the request rollback.

    ``broker_data`` is a plain JSON column, so updates always assign a new
    dict rather than mutating the loaded one in place.
    """

    # Class-level lock registry shared across all instances. One re-entrant
    # lock per (user_id, broker_id) serializes read-modify-write of a row
    # within this process. Multi-worker deployments would need a row lock
    # (SELECT ... FOR UPDATE) or a version column instead.
    _locks: dict[tuple[str, str], threading.RLock] = {}
    _locks_guard = threading.Lock()

    @classmethod
    @contextmanager
    def locked(cls, user_id: str, broker_id: str = SNAPTRADE_BROKER_ID):
        """Hold the per-connection lock for the duration of the block."""
        key = (user_id, broker_id)
        with cls._locks_guard:
            lock = cls._locks.setdefault(key, threading.RLock())
        with lock:
            yield

    @staticmethod
    def get(
        db: Session, user_id: str, broker_id: str = SNAPTRADE_BROKER_ID
    ) -> BrokerConnection | None:
        """Get the connection row for a user, active or not."""
        return (
            db.query(BrokerConnection)
            .filter(
                BrokerConnection.user_id == user_id,
                BrokerConnection.broker_id == broker_id,
            )
            .first()
        )

    @staticmethod
    def upsert(
        db: Session,
        user_id: str,
        secret: str,
        broker_data: dict | None = None,
        is_active: bool = True,
        broker_id: str = SNAPTRADE_BROKER_ID,
        replace_data: bool = False,
    ) -> BrokerConnection:
        """Create or overwrite the connection row for a user.

        Args:
            db: Database session
            user_id: Application user ID
            secret: Secret to store
            broker_data: Metadata to merge into the existing metadata
            is_active: New active flag
            broker_id: Broker identifier
            replace_data: Replace the metadata instead of merging into it

        Returns:
            The stored BrokerConnection
        """
        connection = BrokerConnectionStore.get(db, user_id, broker_id)
        if connection is None:
            connection = BrokerConnection(
                user_id=user_id,
                broker_id=broker_id,
                api_key=SNAPTRADE_API_KEY_LABEL,
                broker_data={},
            )
            db.add(connection)

        merged = {} if replace_data else dict(connection.broker_data or {})
        merged.update(broker_data or {})

        connection.api_key = SNAPTRADE_API_KEY_LABEL
        connection.secret = secret
        connection.is_active = is_active
        connection.broker_data = merged
        db.commit()
        db.refresh(connection)
        logger.debug(
            "Stored %s connection for user %s (active=%s)", broker_id, user_id, is_active
        )
        return connection

    @staticmethod
    def update(
        db: Session,
        user_id: str,
        broker_data: dict | None = None,
        is_active: bool | None = None,
        broker_id: str = SNAPTRADE_BROKER_ID,
    ) -> BrokerConnection | None:
        """Merge metadata into (and optionally flip the flag of) an existing row.

        Returns:
            The updated row, or None if the user has no connection
        """
        connection = BrokerConnectionStore.get(db, user_id, broker_id)
        if connection is None:
            logger.warning("No %s connection to update for user %s", broker_id, user_id)
            return None

        merged = dict(connection.broker_data or {})
        merged.update(broker_data or {})
        connection.broker_data = merged
        if is_active is not None:
            connection.is_active = is_active
        db.commit()
        db.refresh(connection)
        return connection

    @staticmethod
    def deactivate(
        db: Session,
        user_id: str,
        broker_data: dict | None = None,
        broker_id: str = SNAPTRADE_BROKER_ID,
    ) -> BrokerConnection | None:
        """Soft-delete a connection, recording why in its metadata."""
        return BrokerConnectionStore.update(
            db, user_id, broker_data=broker_data, is_active=False, broker_id=broker_id
        )
