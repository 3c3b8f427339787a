# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Status state machine of issued credentials

    VALID --suspend--> SUSPENDED --reinstate--> VALID
    VALID | SUSPENDED --revoke--> REVOKED (terminal)

Status reads are cached per credential id, every transition evicts the entry and
bumps a generation marker. A read only keeps its cache entry when the marker did not
change while it was loading, so a concurrent transition never leaves a stale status
behind.
"""

import logging
import uuid

from pydantic import BaseModel
import sqlalchemy.orm as sa_orm

from common import errors
from common.cache import TTLCache
from common.clock import Clock, SystemClock
from common.config import FailurePolicy

import issuer.db.credential as db_credential
from issuer.db.credential import CredentialStatus, RevocationReason
from issuer.logging import IssuerOperationsLogEntry

_logger = logging.getLogger(__name__)


class CredentialStatusResponse(BaseModel):
    credential_id: str
    status: CredentialStatus
    is_valid: bool
    revoked_at: float | None = None
    revocation_reason: RevocationReason | None = None
    revoked_by: str | None = None
    reason_description: str | None = None


class RevocationService:
    def __init__(
        self,
        cache: TTLCache,
        cache_ttl: float = 300,
        missing_status_policy: FailurePolicy = FailurePolicy.FAIL_OPEN,
        clock: Clock | None = None,
    ) -> None:
        self._cache = cache
        self._cache_ttl = cache_ttl
        self._missing_status_policy = missing_status_policy
        self._clock = clock or SystemClock()

    @staticmethod
    def _generation_key(credential_id: uuid.UUID) -> str:
        return f"{credential_id}:generation"

    def _require_issuance(self, session: sa_orm.Session, credential_id: uuid.UUID) -> db_credential.IssuanceRecord:
        issuance = db_credential.get_issuance(session, credential_id)
        if issuance is None:
            raise errors.CredentialNotFoundError(additional_error_description=f"Credential {credential_id} not found")
        return issuance

    def _load_or_create(self, session: sa_orm.Session, credential_id: uuid.UUID) -> db_credential.CredentialStatusRecord:
        """Status record of the credential, a missing one is created in state VALID"""
        self._require_issuance(session, credential_id)
        record = db_credential.get_status_record(session, credential_id, for_update=True)
        if record is None:
            record = db_credential.CredentialStatusRecord(
                credential_id=credential_id,
                status=CredentialStatus.VALID.value,
                updated_at=self._clock.now(),
            )
            session.add(record)
        return record

    def _written(self, session: sa_orm.Session, record: db_credential.CredentialStatusRecord, actor: str | None) -> CredentialStatusResponse:
        record.updated_at = self._clock.now()
        session.commit()
        # Marker first, then evict: a reader caching the previous state either sees the new
        # marker or is evicted afterwards
        self._cache.put(self._generation_key(record.credential_id), str(uuid.uuid4()), 2 * self._cache_ttl)
        self._cache.evict(str(record.credential_id))
        _logger.info(
            IssuerOperationsLogEntry(
                message=f"Credential status changed to {record.status} by {actor}.",
                status=IssuerOperationsLogEntry.Status.success,
                operation=IssuerOperationsLogEntry.Operation.revocation,
                step=IssuerOperationsLogEntry.Step.status_change,
                reference_id=record.credential_id,
            )
        )
        return self._to_response(record)

    @staticmethod
    def _to_response(record: db_credential.CredentialStatusRecord) -> CredentialStatusResponse:
        return CredentialStatusResponse(
            credential_id=str(record.credential_id),
            status=CredentialStatus(record.status),
            is_valid=record.status == CredentialStatus.VALID.value,
            revoked_at=record.revoked_at,
            revocation_reason=RevocationReason(record.revocation_reason) if record.revocation_reason else None,
            revoked_by=record.revoked_by,
            reason_description=record.reason_description,
        )

    def initialize_status(self, session: sa_orm.Session, credential_id: uuid.UUID) -> CredentialStatusResponse:
        """Starts status tracking for a freshly issued credential"""
        record = self._load_or_create(session, credential_id)
        return self._written(session, record, "issuance")

    def revoke(
        self,
        session: sa_orm.Session,
        credential_id: uuid.UUID,
        reason: RevocationReason,
        actor: str,
        description: str | None = None,
    ) -> CredentialStatusResponse:
        record = self._load_or_create(session, credential_id)
        if record.status == CredentialStatus.REVOKED.value:
            raise errors.AlreadyRevokedError()
        record.status = CredentialStatus.REVOKED.value
        record.revoked_at = self._clock.now()
        record.revocation_reason = reason.value
        record.revoked_by = actor
        record.reason_description = description
        return self._written(session, record, actor)

    def suspend(self, session: sa_orm.Session, credential_id: uuid.UUID, actor: str, reason: str | None = None) -> CredentialStatusResponse:
        record = self._load_or_create(session, credential_id)
        if record.status == CredentialStatus.REVOKED.value:
            raise errors.CannotSuspendRevokedError()
        record.status = CredentialStatus.SUSPENDED.value
        record.revoked_by = actor
        record.reason_description = reason
        return self._written(session, record, actor)

    def reinstate(self, session: sa_orm.Session, credential_id: uuid.UUID, actor: str) -> CredentialStatusResponse:
        record = self._load_or_create(session, credential_id)
        if record.status == CredentialStatus.REVOKED.value:
            raise errors.CannotReinstateRevokedError()
        if record.status != CredentialStatus.SUSPENDED.value:
            raise errors.NotSuspendedError()
        record.status = CredentialStatus.VALID.value
        record.revoked_by = None
        record.reason_description = None
        return self._written(session, record, actor)

    def get_status(self, session: sa_orm.Session, credential_id: uuid.UUID) -> CredentialStatusResponse:
        cached = self._cache.get(str(credential_id))
        if cached is not None:
            return CredentialStatusResponse.model_validate(cached)

        generation = self._cache.get(self._generation_key(credential_id))
        self._require_issuance(session, credential_id)
        record = db_credential.get_status_record(session, credential_id)
        if record is not None:
            response = self._to_response(record)
        elif self._missing_status_policy == FailurePolicy.FAIL_OPEN:
            response = CredentialStatusResponse(credential_id=str(credential_id), status=CredentialStatus.VALID, is_valid=True)
        else:
            # Untracked credentials are reported valid in state but not trusted as such
            response = CredentialStatusResponse(credential_id=str(credential_id), status=CredentialStatus.VALID, is_valid=False)
        self._cache.put(str(credential_id), response.model_dump(mode="json"), self._cache_ttl)
        if self._cache.get(self._generation_key(credential_id)) != generation:
            # Status changed while loading
            self._cache.evict(str(credential_id))
        return response

    def list_revoked(self, session: sa_orm.Session, revoked_after: float | None = None, revoked_by: str | None = None) -> list[CredentialStatusResponse]:
        """Revoked credentials, optionally only those revoked after a point in time or by one actor"""
        return [self._to_response(record) for record in db_credential.get_revoked_status_records(session, revoked_after, revoked_by)]

    def is_valid(self, session: sa_orm.Session, credential_id: uuid.UUID) -> bool:
        return self.get_status(session, credential_id).is_valid
