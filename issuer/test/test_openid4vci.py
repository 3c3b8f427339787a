# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Pre-authorized code flow of the issuer service, without the HTTP layer.
Time is driven by a fixed clock.
"""

from unittest import mock
import uuid

import pytest

from common import errors, jwt_utils, parsing
from common.cache import InMemoryTTLCache
from common.challenge_store import ChallengeStore
from common.clock import FixedClock
from common.key_configuration import KeyConfiguration
from common.model import openid4vc as cr
from common.test_helpers.wallet_helper import HolderWallet, sqlite_sessionmaker

import issuer.config as conf
from issuer.credential_issuance import CredentialIssuanceService
import issuer.db.credential as db_credential
from issuer.openid4vci import OpenID4VCIService

PASSPORT_CLAIMS = {"name": "Ada Muster", "nationality": "CHE", "birthDate": "1990-01-01"}


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture()
def session():
    session = sqlite_sessionmaker()()
    yield session
    session.close()


@pytest.fixture()
def config() -> conf.IssuerConfig:
    config = conf.IssuerConfig()
    config.external_url = "http://localhost:8000"
    config.accept_unregistered_codes = True
    return config


@pytest.fixture()
def issuer_key() -> KeyConfiguration:
    return KeyConfiguration.generate()


@pytest.fixture()
def service(config: conf.IssuerConfig, issuer_key: KeyConfiguration, clock: FixedClock) -> OpenID4VCIService:
    return OpenID4VCIService(
        config,
        issuer_key,
        CredentialIssuanceService(issuer_key, issuer_key.jwk_did, clock),
        ChallengeStore(InMemoryTTLCache(clock), ttl=config.c_nonce_ttl, clock=clock),
        jwt_utils.DidJwkKeyResolver(),
        clock,
    )


@pytest.fixture()
def holder() -> HolderWallet:
    return HolderWallet()


def _token(service: OpenID4VCIService, session, code: str = "code-1234"):
    request = cr.TokenRequest(grant_type=cr.PRE_AUTHORIZED_CODE_GRANT_TYPE, pre_authorized_code=code)
    return errors.unwrap(service.exchange_token(session, request))


def _credential_request(holder: HolderWallet, nonce: str | None, **kwargs) -> cr.CredentialRequest:
    return cr.CredentialRequest(format="jwt_vc_json", proof=cr.CredentialProof(**holder.credential_proof(nonce, **kwargs)))


def test_metadata(service: OpenID4VCIService):
    metadata = service.metadata()
    assert metadata.credential_endpoint == "http://localhost:8000/credential"
    assert metadata.token_endpoint == "http://localhost:8000/token"
    supported = metadata.credentials_supported["PassportCredential"]
    assert supported.format == "jwt_vc_json"
    assert supported.types == ["VerifiableCredential", "PassportCredential"]
    assert supported.credential_signing_alg_values_supported == ["EdDSA"]
    assert supported.proof_types_supported == ["jwt"]


@pytest.mark.parametrize(
    "grant_type,code,kind",
    [
        ("authorization_code", "code-1234", errors.ErrorKind.UNSUPPORTED_GRANT),
        (None, "code-1234", errors.ErrorKind.UNSUPPORTED_GRANT),
        (cr.PRE_AUTHORIZED_CODE_GRANT_TYPE, None, errors.ErrorKind.INVALID_GRANT),
        (cr.PRE_AUTHORIZED_CODE_GRANT_TYPE, "   ", errors.ErrorKind.INVALID_GRANT),
    ],
)
def test_token_errors(service: OpenID4VCIService, session, grant_type, code, kind):
    result = service.exchange_token(session, cr.TokenRequest(grant_type=grant_type, pre_authorized_code=code))
    assert isinstance(result, errors.Err)
    assert result.kind == kind


def test_token_for_unregistered_code(service: OpenID4VCIService, session, issuer_key: KeyConfiguration, clock: FixedClock):
    token = _token(service, session)

    assert token.token_type == "Bearer"
    assert token.expires_in == 3600
    assert token.c_nonce
    assert token.c_nonce_expires_in == 300

    header, claims = jwt_utils.decode_unverified(token.access_token)
    assert header["kid"] == issuer_key.key_id
    assert claims["iss"] == issuer_key.jwk_did
    assert claims["sub"] == "code-1234"
    assert claims["exp"] == claims["iat"] + 3600
    assert claims["iat"] == int(clock.now())


def test_unregistered_code_rejected_when_configured(service: OpenID4VCIService, config: conf.IssuerConfig, session):
    config.accept_unregistered_codes = False
    result = service.exchange_token(session, cr.TokenRequest(grant_type=cr.PRE_AUTHORIZED_CODE_GRANT_TYPE, pre_authorized_code="code-1234"))
    assert result.kind == errors.ErrorKind.INVALID_GRANT


def test_offer_flow(service: OpenID4VCIService, session, holder: HolderWallet, issuer_key: KeyConfiguration):
    code, offer = service.create_offer(session, PASSPORT_CLAIMS)
    assert offer.grants[cr.PRE_AUTHORIZED_CODE_GRANT_TYPE]["pre-authorized_code"] == code
    assert OpenID4VCIService.offer_uri(offer).startswith("openid-credential-offer://?credential_offer=")

    token = _token(service, session, code)
    result = service.exchange_credential(session, token.access_token, _credential_request(holder, token.c_nonce))
    response = errors.unwrap(result)

    assert response.format == "jwt_vc_json"
    assert response.c_nonce != token.c_nonce, "A fresh c_nonce is returned for the next request"
    assert response.commitment_hash == parsing.commitment_hash(PASSPORT_CLAIMS)
    _, credential = jwt_utils.decode_unverified(response.credential)
    assert credential["sub"] == holder.did
    assert credential["jti"] == response.credential_id
    assert credential["vc"]["credentialSubject"]["nationality"] == "CHE"
    _, commitment = jwt_utils.decode_unverified(response.commitment_jwt)
    assert commitment["iss"] == issuer_key.jwk_did

    # Offer is used up
    redeemed = service.exchange_token(session, cr.TokenRequest(grant_type=cr.PRE_AUTHORIZED_CODE_GRANT_TYPE, pre_authorized_code=code))
    assert redeemed.kind == errors.ErrorKind.INVALID_GRANT
    again = service.exchange_credential(session, token.access_token, _credential_request(holder, response.c_nonce))
    assert again.kind == errors.ErrorKind.INVALID_TOKEN


def test_expired_offer(service: OpenID4VCIService, session, clock: FixedClock):
    code, _ = service.create_offer(session, PASSPORT_CLAIMS)
    clock.advance(86400)
    result = service.exchange_token(session, cr.TokenRequest(grant_type=cr.PRE_AUTHORIZED_CODE_GRANT_TYPE, pre_authorized_code=code))
    assert result.kind == errors.ErrorKind.INVALID_GRANT


def test_unregistered_code_issues_without_claims(service: OpenID4VCIService, session, holder: HolderWallet):
    token = _token(service, session)
    response = errors.unwrap(service.exchange_credential(session, token.access_token, _credential_request(holder, token.c_nonce)))
    _, credential = jwt_utils.decode_unverified(response.credential)
    assert credential["vc"]["credentialSubject"] == {"id": holder.did}


@pytest.mark.parametrize("access_token", [None, "", "not-a-jwt", "a.b.c"])
def test_invalid_access_token(service: OpenID4VCIService, session, holder: HolderWallet, access_token):
    result = service.exchange_credential(session, access_token, _credential_request(holder, "nonce"))
    assert result.kind == errors.ErrorKind.INVALID_TOKEN
    assert result.error.status_code == 401
    assert result.error.headers["WWW-Authenticate"] == 'Bearer error="invalid_token"'


def test_access_token_of_other_issuer(service: OpenID4VCIService, session, holder: HolderWallet):
    foreign = KeyConfiguration.generate().encode_jwt({"iss": "did:example:other", "scope": "credential_request", "exp": 2_000_000_000, "pre_authorized_code": "x"})
    result = service.exchange_credential(session, foreign, _credential_request(holder, "nonce"))
    assert result.kind == errors.ErrorKind.INVALID_TOKEN


def test_expired_access_token(service: OpenID4VCIService, session, holder: HolderWallet, clock: FixedClock):
    token = _token(service, session)
    clock.advance(3600)
    result = service.exchange_credential(session, token.access_token, _credential_request(holder, token.c_nonce))
    assert result.kind == errors.ErrorKind.INVALID_TOKEN


def test_unsupported_format(service: OpenID4VCIService, session, holder: HolderWallet):
    token = _token(service, session)
    request = cr.CredentialRequest(format="vc+sd-jwt", proof=cr.CredentialProof(**holder.credential_proof(token.c_nonce)))
    result = service.exchange_credential(session, token.access_token, request)
    assert isinstance(result.error, errors.UnsupportedCredentialFormatError)
    assert result.kind == errors.ErrorKind.INVALID_REQUEST


def _assert_invalid_proof(result):
    assert isinstance(result, errors.Err)
    assert result.kind == errors.ErrorKind.INVALID_PROOF
    content = result.error.render()
    assert content["error"] == "invalid_proof"
    assert content["c_nonce"], "Every invalid proof error carries a fresh c_nonce"
    assert content["c_nonce_expires_in"] == 300


def test_missing_proof(service: OpenID4VCIService, session):
    token = _token(service, session)
    _assert_invalid_proof(service.exchange_credential(session, token.access_token, cr.CredentialRequest(format="jwt_vc_json")))


def test_wrong_proof_type(service: OpenID4VCIService, session, holder: HolderWallet):
    token = _token(service, session)
    request = cr.CredentialRequest(format="jwt_vc_json", proof=cr.CredentialProof(proof_type="cwt", jwt=holder.proof_jwt(token.c_nonce)))
    _assert_invalid_proof(service.exchange_credential(session, token.access_token, request))


def test_unparsable_proof(service: OpenID4VCIService, session):
    token = _token(service, session)
    request = cr.CredentialRequest(format="jwt_vc_json", proof=cr.CredentialProof(proof_type="jwt", jwt="garbage"))
    _assert_invalid_proof(service.exchange_credential(session, token.access_token, request))


def test_proof_without_nonce(service: OpenID4VCIService, session, holder: HolderWallet):
    token = _token(service, session)
    _assert_invalid_proof(service.exchange_credential(session, token.access_token, _credential_request(holder, None)))


def test_proof_with_unknown_nonce(service: OpenID4VCIService, session, holder: HolderWallet):
    token = _token(service, session)
    _assert_invalid_proof(service.exchange_credential(session, token.access_token, _credential_request(holder, "made-up-nonce")))


def test_proof_with_expired_nonce(service: OpenID4VCIService, session, holder: HolderWallet, clock: FixedClock):
    token = _token(service, session)
    clock.advance(301)
    _assert_invalid_proof(service.exchange_credential(session, token.access_token, _credential_request(holder, token.c_nonce)))


def test_nonce_is_single_use(service: OpenID4VCIService, session, holder: HolderWallet):
    token = _token(service, session)
    errors.unwrap(service.exchange_credential(session, token.access_token, _credential_request(holder, token.c_nonce)))
    _assert_invalid_proof(service.exchange_credential(session, token.access_token, _credential_request(holder, token.c_nonce)))


def test_proof_signed_by_other_key(service: OpenID4VCIService, session, holder: HolderWallet):
    token = _token(service, session)
    impostor = HolderWallet()
    request = _credential_request(impostor, token.c_nonce, subject=holder.did)
    _assert_invalid_proof(service.exchange_credential(session, token.access_token, request))


def test_proof_subject_is_not_a_did(service: OpenID4VCIService, session, holder: HolderWallet):
    token = _token(service, session)
    result = service.exchange_credential(session, token.access_token, _credential_request(holder, token.c_nonce, subject="holder-1"))
    assert result.kind == errors.ErrorKind.INVALID_SUBJECT


def test_offer_redeemed_by_other_session(service: OpenID4VCIService, holder: HolderWallet):
    session_factory = sqlite_sessionmaker()
    first, second = session_factory(), session_factory()
    code, _ = service.create_offer(second, PASSPORT_CLAIMS)
    # first session holds the offer as not yet redeemed
    assert not db_credential.get_offer(first, uuid.UUID(code)).redeemed

    token = _token(service, second, code)
    redeemed = service.exchange_token(first, cr.TokenRequest(grant_type=cr.PRE_AUTHORIZED_CODE_GRANT_TYPE, pre_authorized_code=code))
    assert redeemed.kind == errors.ErrorKind.INVALID_GRANT

    assert db_credential.get_offer(first, uuid.UUID(code)).issued_credential_id is None
    response = errors.unwrap(service.exchange_credential(second, token.access_token, _credential_request(holder, token.c_nonce)))
    again = service.exchange_credential(first, token.access_token, _credential_request(holder, response.c_nonce))
    assert again.kind == errors.ErrorKind.INVALID_TOKEN
    first.close()
    second.close()


def test_offer_is_locked_while_redeemed(service: OpenID4VCIService, session, holder: HolderWallet):
    code, _ = service.create_offer(session, PASSPORT_CLAIMS)
    with mock.patch.object(db_credential, "get_offer", wraps=db_credential.get_offer) as get_offer:
        token = _token(service, session, code)
        errors.unwrap(service.exchange_credential(session, token.access_token, _credential_request(holder, token.c_nonce)))

    assert get_offer.call_count == 2
    assert all(call.kwargs == {"for_update": True} for call in get_offer.call_args_list)
