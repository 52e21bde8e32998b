"""Credential service - SnapTrade user registration and secret lifecycle."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from integrations.exceptions import (
    BrokerNotInitializedError,
    ProviderError,
    ProviderUserExistsError,
)
from integrations.provider_protocol import BrokerClient, RegisteredUser
from models.broker_connection import PENDING_REGISTRATION_SECRET, BrokerConnection
from models.utils import epoch_millis, parse_timestamp, utc_timestamp
from services.connection_store import BrokerConnectionStore

logger = logging.getLogger(__name__)


class SecretKind(str, Enum):
    """How much a stored secret can be trusted."""

    REAL = "real"  # Issued by SnapTrade
    FALLBACK = "fallback"  # Synthesized locally; remote calls with it will fail
    PENDING = "pending"  # Registration started but never completed


@dataclass(frozen=True)
class BrokerSecret:
    """A resolved secret tagged with its provenance.

    ``remote_user_id`` is the SnapTrade user the secret belongs to. It
    differs from the application user id after a modified-id registration.
    """

    value: str
    kind: SecretKind
    remote_user_id: str

    @property
    def is_degraded(self) -> bool:
        return self.kind is not SecretKind.REAL


def secret_kind(connection: BrokerConnection) -> SecretKind:
    """Classify the secret held by a connection row."""
    if not connection.secret or connection.is_placeholder:
        return SecretKind.PENDING
    if connection.is_fake_secret:
        return SecretKind.FALLBACK
    return SecretKind.REAL


def remote_user_id(connection: BrokerConnection | None, user_id: str) -> str:
    """SnapTrade user id for a connection, defaulting to the application id."""
    if connection is None:
        return user_id
    return (connection.broker_data or {}).get("snap_trade_user_id") or user_id


def to_broker_secret(connection: BrokerConnection) -> BrokerSecret:
    return BrokerSecret(
        value=connection.secret,
        kind=secret_kind(connection),
        remote_user_id=remote_user_id(connection, connection.user_id),
    )


class CredentialService:
    """Registers users with SnapTrade and hands out their session secrets."""

    def __init__(self, client: BrokerClient, max_age_days: int | None = None):
        """Initialize with a broker client.

        Args:
            client: SnapTrade adapter (or a fake in tests)
            max_age_days: Age after which a real secret is refreshed.
                          Defaults to settings.SECRET_MAX_AGE_DAYS.
        """
        self._client = client
        if max_age_days is None:
            max_age_days = settings.SECRET_MAX_AGE_DAYS
        self._max_age = timedelta(days=max_age_days)

    @property
    def client(self) -> BrokerClient:
        return self._client

    def get_secret(self, db: Session, user_id: str, force_refresh: bool = False) -> str:
        """Return a secret for the user, registering if needed.

        Raises:
            BrokerNotInitializedError: SnapTrade credentials are not configured
        """
        return self.resolve_secret(db, user_id, force_refresh=force_refresh).value

    def resolve_secret(
        self, db: Session, user_id: str, force_refresh: bool = False
    ) -> BrokerSecret:
        """Return the user's secret, refreshing or registering when required.

        Real secrets are reused until they are older than the configured
        maximum age. Fallback secrets are reused until a refresh is forced.
        When registration fails the previous usable secret is kept; with
        nothing to keep, an emergency fallback is synthesized and stored.

        Args:
            db: Database session
            user_id: Application user ID
            force_refresh: Re-register even if the stored secret is fresh

        Returns:
            BrokerSecret

        Raises:
            BrokerNotInitializedError: A registration was needed but SnapTrade
                credentials are not configured. Nothing is stored.
        """
        with BrokerConnectionStore.locked(user_id):
            previous: BrokerSecret | None = None
            try:
                connection = BrokerConnectionStore.get(db, user_id)
                if connection is not None and connection.has_usable_secret:
                    previous = to_broker_secret(connection)
                    if not force_refresh and (
                        previous.kind is SecretKind.FALLBACK or not self._is_stale(connection)
                    ):
                        return previous
                    logger.info(
                        "Refreshing %s secret for user %s (forced=%s)",
                        previous.kind.value,
                        user_id,
                        force_refresh,
                    )

                self.register_user(db, user_id, force=True)
                return to_broker_secret(BrokerConnectionStore.get(db, user_id))
            except BrokerNotInitializedError:
                raise
            except Exception as exc:
                logger.error(
                    "Could not obtain a SnapTrade secret for user %s: %s",
                    user_id,
                    exc,
                    exc_info=True,
                )
                self._safe_rollback(db)
                if previous is not None:
                    return self._restore_previous(db, user_id, previous, exc)
                return self._emergency_fallback(db, user_id, exc)

    def register_user(self, db: Session, user_id: str, force: bool = False) -> RegisteredUser:
        """Register the user with SnapTrade and store the issued secret.

        If SnapTrade reports that the user already exists, recovery is tried
        in a fixed order: reuse the secret stored before this attempt,
        register a modified user id, then synthesize a fallback secret.

        Args:
            db: Database session
            user_id: Application user ID
            force: Register even if an active secret is already stored

        Returns:
            RegisteredUser with the SnapTrade user id and stored secret

        Raises:
            BrokerNotInitializedError: SnapTrade credentials are not configured
            ProviderError: Registration failed for a reason other than an
                           existing user. The row is marked inactive first.
        """
        with BrokerConnectionStore.locked(user_id):
            existing = BrokerConnectionStore.get(db, user_id)
            if existing is not None and existing.has_usable_secret and not force:
                logger.info("User %s already registered with SnapTrade", user_id)
                return RegisteredUser(
                    user_id=remote_user_id(existing, user_id), user_secret=existing.secret
                )

            if not self._client.is_configured():
                raise BrokerNotInitializedError(
                    "SnapTrade SDK not initialized", provider_name=self._client.provider_name
                )

            previous: BrokerSecret | None = None
            if existing is not None and existing.secret:
                candidate = to_broker_secret(existing)
                if candidate.kind is SecretKind.REAL:
                    previous = candidate

            BrokerConnectionStore.upsert(
                db,
                user_id,
                PENDING_REGISTRATION_SECRET,
                {"registration_started_at": utc_timestamp()},
            )

            try:
                registered = self._client.register_user(user_id)
            except ProviderUserExistsError as exc:
                logger.warning("SnapTrade user %s already exists, recovering", user_id)
                return self._recover_existing_user(db, user_id, previous, exc)
            except Exception as exc:
                self._mark_failed(db, user_id, exc)
                raise

            BrokerConnectionStore.upsert(
                db,
                user_id,
                registered.user_secret,
                {
                    "registered_at": utc_timestamp(),
                    "snap_trade_user_id": registered.user_id,
                    "registration_method": "direct",
                },
                replace_data=True,
            )
            logger.info("Registered user %s with SnapTrade", user_id)
            return registered

    def deregister_user(self, db: Session, user_id: str) -> bool:
        """Delete the SnapTrade user (best effort) and deactivate the row.

        Raises:
            BrokerNotInitializedError: SnapTrade credentials are not configured
        """
        with BrokerConnectionStore.locked(user_id):
            connection = BrokerConnectionStore.get(db, user_id)
            try:
                self._client.delete_user(remote_user_id(connection, user_id))
            except BrokerNotInitializedError:
                raise
            except ProviderError as exc:
                logger.warning("Failed to delete SnapTrade user %s: %s", user_id, exc)

            if connection is not None:
                BrokerConnectionStore.deactivate(
                    db,
                    user_id,
                    {"deleted_at": utc_timestamp(), "user_deleted": True},
                )
            return True

    def get_connection(self, db: Session, user_id: str) -> BrokerConnection | None:
        return BrokerConnectionStore.get(db, user_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _is_stale(self, connection: BrokerConnection) -> bool:
        registered_at = parse_timestamp((connection.broker_data or {}).get("registered_at"))
        if registered_at is None:
            return True
        return datetime.now(timezone.utc) - registered_at > self._max_age

    def _recover_existing_user(
        self,
        db: Session,
        user_id: str,
        previous: BrokerSecret | None,
        error: ProviderUserExistsError,
    ) -> RegisteredUser:
        if previous is not None:
            BrokerConnectionStore.upsert(
                db,
                user_id,
                previous.value,
                {"registered_at": utc_timestamp(), "registration_method": "existing_secret"},
            )
            logger.info("Reusing stored SnapTrade secret for user %s", user_id)
            return RegisteredUser(user_id=previous.remote_user_id, user_secret=previous.value)

        modified_id = f"{user_id}_{epoch_millis()}"
        try:
            registered = self._client.register_user(modified_id)
        except ProviderError as exc:
            logger.warning(
                "Modified-id registration failed for user %s: %s", user_id, exc
            )
        else:
            BrokerConnectionStore.upsert(
                db,
                user_id,
                registered.user_secret,
                {
                    "registered_at": utc_timestamp(),
                    "snap_trade_user_id": registered.user_id,
                    "original_user_id": user_id,
                    "registration_method": "modified_id",
                },
                replace_data=True,
            )
            logger.info("Registered user %s with SnapTrade as %s", user_id, registered.user_id)
            return registered

        fake_secret = f"fake_secret_{epoch_millis()}"
        BrokerConnectionStore.upsert(
            db,
            user_id,
            fake_secret,
            {
                "registered_at": utc_timestamp(),
                "registration_method": "fallback",
                "is_fake_secret": True,
                "original_error": str(error),
            },
            replace_data=True,
        )
        logger.warning("Stored fallback secret for user %s", user_id)
        return RegisteredUser(user_id=user_id, user_secret=fake_secret)

    def _mark_failed(self, db: Session, user_id: str, error: Exception) -> None:
        try:
            BrokerConnectionStore.update(
                db,
                user_id,
                {"registration_failed_at": utc_timestamp(), "error_message": str(error)},
                is_active=False,
            )
        except SQLAlchemyError:
            logger.error("Failed to record registration failure for %s", user_id, exc_info=True)
            self._safe_rollback(db)

    def _restore_previous(
        self, db: Session, user_id: str, previous: BrokerSecret, error: Exception
    ) -> BrokerSecret:
        logger.warning("Keeping previous %s secret for user %s", previous.kind.value, user_id)
        try:
            BrokerConnectionStore.upsert(
                db,
                user_id,
                previous.value,
                {"last_refresh_error": str(error), "last_refresh_failed_at": utc_timestamp()},
            )
        except SQLAlchemyError:
            logger.error("Failed to restore secret for %s", user_id, exc_info=True)
            self._safe_rollback(db)
        return previous

    def _emergency_fallback(self, db: Session, user_id: str, error: Exception) -> BrokerSecret:
        fake_secret = f"emergency_fallback_{epoch_millis()}"
        try:
            BrokerConnectionStore.upsert(
                db,
                user_id,
                fake_secret,
                {
                    "registered_at": utc_timestamp(),
                    "registration_method": "emergency_fallback",
                    "is_fake_secret": True,
                    "original_error": str(error),
                },
                replace_data=True,
            )
        except SQLAlchemyError:
            logger.error("Failed to store emergency fallback for %s", user_id, exc_info=True)
            self._safe_rollback(db)
        logger.warning("Using emergency fallback secret for user %s", user_id)
        return BrokerSecret(value=fake_secret, kind=SecretKind.FALLBACK, remote_user_id=user_id)

    @staticmethod
    def _safe_rollback(db: Session) -> None:
        try:
            db.rollback()
        except SQLAlchemyError:
            logger.debug("Rollback failed", exc_info=True)
