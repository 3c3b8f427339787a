# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Signs passport credentials and their commitment tokens.

Every issuance produces two tokens sharing iss, sub, jti and iat:
* the credential JWT, carrying the claims as W3C verifiable credential under `vc`
* the commitment JWT, carrying only the SHA-256 hash of the canonical claims

The commitment lets a holder prove the issuance to a verifier without handing
over the claims. No status record is created here, see `issuer.revocation`.
"""

import logging
import uuid

from pydantic import BaseModel
import sqlalchemy.orm as sa_orm

from common import parsing as prs
from common.clock import Clock, SystemClock
from common.key_configuration import KeyConfiguration

import issuer.db.credential as db_credential
from issuer.logging import IssuerOperationsLogEntry

_logger = logging.getLogger(__name__)

CREDENTIAL_TYPE = "PassportCredential"
CREDENTIAL_TYPES = ["VerifiableCredential", CREDENTIAL_TYPE]
CREDENTIAL_CONTEXT = ["https://www.w3.org/2018/credentials/v1"]


class IssuedCredential(BaseModel):
    credential_id: str
    credential_jwt: str
    commitment_hash: str
    commitment_jwt: str


class CredentialIssuanceService:
    def __init__(self, key_configuration: KeyConfiguration, issuer_did: str, clock: Clock | None = None) -> None:
        self._key = key_configuration
        self.issuer_did = issuer_did
        self._clock = clock or SystemClock()

    def issue_credential(self, session: sa_orm.Session, holder_did: str, claims: dict) -> IssuedCredential:
        """
        Signs the credential & commitment for the holder and stores the issuance record.
        The caller is responsible for committing the session.
        """
        credential_id = uuid.uuid4()
        issued_at = int(self._clock.now())
        commitment_hash = prs.commitment_hash(claims)
        shared_claims = {
            "iss": self.issuer_did,
            "sub": holder_did,
            "jti": str(credential_id),
            "iat": issued_at,
        }

        credential_jwt = self._key.encode_jwt(
            {
                **shared_claims,
                "vc": {
                    "@context": CREDENTIAL_CONTEXT,
                    "type": CREDENTIAL_TYPES,
                    "credentialSubject": {**claims, "id": holder_did},
                },
            },
            header={"typ": "vc+jwt"},
        )
        commitment_jwt = self._key.encode_jwt({**shared_claims, "commitment_hash": commitment_hash})

        db_credential.add_issuance(
            session,
            db_credential.IssuanceRecord(
                id=credential_id,
                issuer_did=self.issuer_did,
                holder_did=holder_did,
                credential_jwt=credential_jwt,
                commitment_jwt=commitment_jwt,
                commitment_hash=commitment_hash,
                issued_at=issued_at,
            ),
        )
        _logger.info(
            IssuerOperationsLogEntry(
                message="Credential issued.",
                status=IssuerOperationsLogEntry.Status.success,
                operation=IssuerOperationsLogEntry.Operation.issuance,
                step=IssuerOperationsLogEntry.Step.issuance_delivery,
                reference_id=credential_id,
                holder_did=holder_did,
            )
        )
        return IssuedCredential(
            credential_id=str(credential_id),
            credential_jwt=credential_jwt,
            commitment_hash=commitment_hash,
            commitment_jwt=commitment_jwt,
        )

    def get_issuance(self, session: sa_orm.Session, credential_id: uuid.UUID) -> IssuedCredential | None:
        record = db_credential.get_issuance(session, credential_id)
        if record is None:
            return None
        return IssuedCredential(
            credential_id=str(record.id),
            credential_jwt=record.credential_jwt,
            commitment_hash=record.commitment_hash,
            commitment_jwt=record.commitment_jwt,
        )
