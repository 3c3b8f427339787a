# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import uuid

import pytest

from common import jwt_utils, parsing
from common.clock import FixedClock
from common.key_configuration import KeyConfiguration
from common.model import ietf
from common.test_helpers.wallet_helper import HolderWallet, sqlite_sessionmaker

import issuer.db.credential as db_credential
from issuer.credential_issuance import CredentialIssuanceService, CREDENTIAL_TYPES

PASSPORT_CLAIMS = {
    "name": "Ada Muster",
    "nationality": "CHE",
    "birthDate": "1990-01-01",
    "passportNumber": "X1234567",
}


@pytest.fixture()
def session():
    session = sqlite_sessionmaker()()
    yield session
    session.close()


@pytest.fixture()
def issuer_key() -> KeyConfiguration:
    return KeyConfiguration.generate()


@pytest.fixture()
def service(issuer_key: KeyConfiguration) -> CredentialIssuanceService:
    return CredentialIssuanceService(issuer_key, issuer_key.jwk_did, FixedClock(1_700_000_000))


def test_issue_credential_tokens_share_identity(session, service: CredentialIssuanceService, issuer_key: KeyConfiguration):
    holder = HolderWallet()
    issued = service.issue_credential(session, holder.did, PASSPORT_CLAIMS)

    keys = ietf.JSONWebKeySet.model_validate(issuer_key.jwks)
    credential = jwt_utils.verify_signature(issued.credential_jwt, keys)
    commitment = jwt_utils.verify_signature(issued.commitment_jwt, keys)

    for claim in ("iss", "sub", "jti", "iat"):
        assert credential[claim] == commitment[claim], f"{claim} has to be shared between credential and commitment"
    assert credential["iss"] == issuer_key.jwk_did
    assert credential["sub"] == holder.did
    assert credential["jti"] == issued.credential_id
    assert credential["iat"] == 1_700_000_000


def test_credential_carries_claims_as_verifiable_credential(session, service: CredentialIssuanceService):
    holder = HolderWallet()
    issued = service.issue_credential(session, holder.did, PASSPORT_CLAIMS)

    header, claims = jwt_utils.decode_unverified(issued.credential_jwt)
    assert header["typ"] == "vc+jwt"
    assert header["alg"] == "EdDSA"
    assert claims["vc"]["type"] == CREDENTIAL_TYPES
    assert claims["vc"]["credentialSubject"] == {"id": holder.did, **PASSPORT_CLAIMS}
    assert "commitment_hash" not in claims


def test_commitment_only_carries_the_hash(session, service: CredentialIssuanceService):
    issued = service.issue_credential(session, "did:example:holder", PASSPORT_CLAIMS)

    _, commitment = jwt_utils.decode_unverified(issued.commitment_jwt)
    assert commitment["commitment_hash"] == issued.commitment_hash
    assert "vc" not in commitment
    assert set(commitment) == {"iss", "sub", "jti", "iat", "commitment_hash"}


def test_commitment_hash_is_canonical(session, service: CredentialIssuanceService):
    reordered = dict(reversed(list(PASSPORT_CLAIMS.items())))
    first = service.issue_credential(session, "did:example:holder", PASSPORT_CLAIMS)
    second = service.issue_credential(session, "did:example:holder", reordered)

    assert first.commitment_hash == second.commitment_hash
    assert first.commitment_hash == parsing.sha256_hex(parsing.canonical_json(PASSPORT_CLAIMS))
    assert len(first.commitment_hash) == 64
    assert first.credential_id != second.credential_id, "Every issuance gets a fresh id"


def test_issuance_is_recorded_without_status(session, service: CredentialIssuanceService):
    issued = service.issue_credential(session, "did:example:holder", PASSPORT_CLAIMS)
    session.commit()

    record = db_credential.get_issuance(session, uuid.UUID(issued.credential_id))
    assert record is not None
    assert record.holder_did == "did:example:holder"
    assert record.commitment_hash == issued.commitment_hash
    assert db_credential.get_status_record(session, uuid.UUID(issued.credential_id)) is None

    assert service.get_issuance(session, uuid.UUID(issued.credential_id)) == issued
    assert service.get_issuance(session, uuid.uuid4()) is None


def test_claims_cannot_replace_the_subject(session, service: CredentialIssuanceService):
    holder = HolderWallet()
    issued = service.issue_credential(session, holder.did, {**PASSPORT_CLAIMS, "id": "did:example:mallory"})

    _, credential = jwt_utils.decode_unverified(issued.credential_jwt)
    assert credential["vc"]["credentialSubject"]["id"] == holder.did
    assert credential["vc"]["credentialSubject"]["name"] == "Ada Muster"
