"""Persistence for encrypted credentials and verification history."""

import threading
from typing import Dict, List, Optional, Protocol, Tuple
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..models.core import Credential, IntegrationVerification, VerificationCheck
from ..storage.database import describe_db_error
from ..storage.models import CredentialModel, IntegrationVerificationModel
from .exceptions import StorageError
from .logging import get_logger

logger = get_logger(__name__)

CredentialKey = Tuple[str, str, str, str]


class CredentialStore(Protocol):
    """Lookup and save of per-tenant, per-client, per-provider credential fields."""

    def get(self, tenant_id: str, client_id: str, provider: str, credential_type: str) -> Optional[Credential]:
        ...

    def save(self, tenant_id: str, client_id: str, provider: str, credential_type: str,
             encrypted_secret: str, user_id: Optional[str]) -> Credential:
        ...


class VerificationLog(Protocol):
    """Append-only history of integration verification attempts."""

    def append(self, record: IntegrationVerification) -> IntegrationVerification:
        ...

    def get_latest(self, tenant_id: str, client_id: str, provider: str,
                   check_type: str) -> Optional[IntegrationVerification]:
        ...


def _to_credential(row: CredentialModel) -> Credential:
    return Credential(
        id=row.id,
        tenant_id=row.tenant_id,
        client_id=row.client_id,
        provider=row.provider,
        credential_type=row.credential_type,
        encrypted_secret=row.encrypted_secret,
        user_id=row.user_id,
        created_at=row.created_at,
    )


def _to_verification(row: IntegrationVerificationModel) -> IntegrationVerification:
    return IntegrationVerification(
        id=row.id,
        tenant_id=row.tenant_id,
        client_id=row.client_id,
        provider=row.provider,
        check_type=row.check_type,
        status=row.status,
        checks=[VerificationCheck(**check) for check in (row.checks or [])],
        evidence=row.evidence or {},
        initiated_by=row.initiated_by,
        created_at=row.created_at,
    )


class SqlCredentialStore:
    """Credential store backed by the ``credentials`` table.

    Every save appends a row; reads return the newest row for the key, so the
    most recently saved secret is always the current one. Writes to the same
    key are serialised within the process.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        self._key_locks: Dict[CredentialKey, threading.Lock] = {}
        self._lock_manager = threading.Lock()

    def _get_key_lock(self, key: CredentialKey) -> threading.Lock:
        with self._lock_manager:
            if key not in self._key_locks:
                self._key_locks[key] = threading.Lock()
            return self._key_locks[key]

    def get(self, tenant_id: str, client_id: str, provider: str, credential_type: str) -> Optional[Credential]:
        """Return the current credential for the key, or None."""
        session = self._session_factory()
        try:
            row = (
                session.query(CredentialModel)
                .filter_by(
                    tenant_id=tenant_id,
                    client_id=client_id,
                    provider=provider,
                    credential_type=credential_type,
                )
                .order_by(CredentialModel.id.desc())
                .first()
            )
            return _to_credential(row) if row else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to load credential: {describe_db_error(e)}")
            raise StorageError("Failed to load credential", operation="get", table="credentials")
        finally:
            session.close()

    def save(self, tenant_id: str, client_id: str, provider: str, credential_type: str,
             encrypted_secret: str, user_id: Optional[str]) -> Credential:
        """Store a new encrypted secret for the key; it becomes the current one."""
        key = (tenant_id, client_id, provider, credential_type)
        with self._get_key_lock(key):
            session = self._session_factory()
            try:
                row = CredentialModel(
                    tenant_id=tenant_id,
                    client_id=client_id,
                    provider=provider,
                    credential_type=credential_type,
                    encrypted_secret=encrypted_secret,
                    user_id=user_id,
                )
                session.add(row)
                session.commit()
                session.refresh(row)
                logger.info(f"Saved credential {provider}.{credential_type} for client {client_id}")
                return _to_credential(row)
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Failed to save credential: {describe_db_error(e)}")
                raise StorageError("Failed to save credential", operation="save", table="credentials")
            finally:
                session.close()


class SqlVerificationLog:
    """Verification history backed by the ``integration_verifications`` table."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def append(self, record: IntegrationVerification) -> IntegrationVerification:
        """Persist a new record and return it with its id and creation time."""
        session = self._session_factory()
        try:
            row = IntegrationVerificationModel(
                tenant_id=record.tenant_id,
                client_id=record.client_id,
                provider=record.provider,
                check_type=record.check_type,
                status=record.status.value,
                checks=[check.model_dump() for check in record.checks],
                evidence=record.evidence,
                initiated_by=record.initiated_by,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_verification(row)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to append verification: {describe_db_error(e)}")
            raise StorageError(
                "Failed to append verification",
                operation="append",
                table="integration_verifications",
            )
        finally:
            session.close()

    def _query(self, session, tenant_id: str, client_id: str, provider: str, check_type: str):
        return (
            session.query(IntegrationVerificationModel)
            .filter_by(tenant_id=tenant_id, client_id=client_id, provider=provider, check_type=check_type)
            .order_by(IntegrationVerificationModel.created_at.desc(), IntegrationVerificationModel.id.desc())
        )

    def get_latest(self, tenant_id: str, client_id: str, provider: str,
                   check_type: str) -> Optional[IntegrationVerification]:
        """Return the most recent record for the key, or None."""
        session = self._session_factory()
        try:
            row = self._query(session, tenant_id, client_id, provider, check_type).first()
            return _to_verification(row) if row else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to load verification: {describe_db_error(e)}")
            raise StorageError(
                "Failed to load verification",
                operation="get_latest",
                table="integration_verifications",
            )
        finally:
            session.close()

    def list_history(self, tenant_id: str, client_id: str, provider: str, check_type: str,
                     limit: int = 20) -> List[IntegrationVerification]:
        """Return up to ``limit`` records for the key, newest first."""
        session = self._session_factory()
        try:
            rows = self._query(session, tenant_id, client_id, provider, check_type).limit(limit).all()
            return [_to_verification(row) for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"Failed to list verifications: {describe_db_error(e)}")
            raise StorageError(
                "Failed to list verifications",
                operation="list_history",
                table="integration_verifications",
            )
        finally:
            session.close()
