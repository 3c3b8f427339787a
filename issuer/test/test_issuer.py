# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Tests for Issuance flow using pytest & starlette / fastapi
Uses an in memory database and an in process holder wallet
"""

from functools import cache
import time

import pytest
from fastapi.testclient import TestClient

from common import jwt_utils, parsing
from common.model import openid4vc as cr
from common.model import ietf
from common.test_helpers.wallet_helper import API_KEY_HEADER, HolderWallet, liveness_proof, session_override, sqlite_sessionmaker
import common.db.postgres as db
import common.key_configuration as key

import issuer.config as conf

PASSPORT_CLAIMS = {
    "name": "Ada Muster",
    "nationality": "CHE",
    "birthDate": "1990-01-01",
    "passportNumber": "X1234567",
}


def t_config() -> conf.IssuerConfig:
    """
    Overriding Configuration injection function with parameters
    """
    config = conf.IssuerConfig()
    config.external_url = "http://testserver"
    config.accept_unregistered_codes = True
    return config


@cache
def t_key_inject() -> key.KeyConfiguration:
    """
    Override function for key configuration, one generated key for all tests
    """
    return key.KeyConfiguration.generate("test-issuer-key")


@pytest.fixture()
def client() -> TestClient:
    from issuer.issuer import app

    client = TestClient(app, headers=API_KEY_HEADER)
    app.dependency_overrides[db.env_session] = session_override(sqlite_sessionmaker())
    app.dependency_overrides[key.get_key_configuration] = t_key_inject
    app.dependency_overrides[conf.IssuerConfig] = t_config
    yield client
    app.dependency_overrides.clear()
    client.close()


def _redeem(client: TestClient, holder: HolderWallet, code: str) -> dict:
    """Runs token & credential exchange, returns the credential response"""
    response = client.post(
        "/token",
        data={"grant_type": cr.PRE_AUTHORIZED_CODE_GRANT_TYPE, "pre-authorized_code": code},
    )
    assert response.status_code == 200, response.text
    token = ietf.OpenID4VCToken.model_validate(response.json())

    response = client.post(
        "/credential",
        json={"format": "jwt_vc_json", "proof": holder.credential_proof(token.c_nonce, audience="http://testserver")},
        headers={"Authorization": f"Bearer {token.access_token}"},
    )
    assert response.status_code == 200, response.text
    return response.json()


def test_metadata(client: TestClient):
    response = client.get("/.well-known/openid-credential-issuer")
    assert response.status_code == 200
    metadata = cr.CredentialIssuerMetadata.model_validate(response.json())
    assert metadata.credential_endpoint == "http://testserver/credential"
    assert "PassportCredential" in metadata.credentials_supported

    response = client.get("/.well-known/jwks.json")
    assert response.status_code == 200
    jwks = response.json()
    assert jwks["keys"][0]["kid"] == "test-issuer-key"
    assert "d" not in jwks["keys"][0], "Private key material must never be published"


def test_openid4vc_preauth_flow(client: TestClient):
    response = client.post("/credential-offer", json={"claims": PASSPORT_CLAIMS})
    assert response.status_code == 200, response.text
    offer = response.json()
    assert offer["offer_uri"].startswith("openid-credential-offer://")

    holder = HolderWallet()
    credential_response = cr.CredentialResponse.model_validate(_redeem(client, holder, offer["pre_authorized_code"]))

    # The credential is signed by the key published at the jwks endpoint
    keys = ietf.JSONWebKeySet.model_validate(client.get("/.well-known/jwks.json").json())
    credential = jwt_utils.verify_signature(credential_response.credential, keys)
    assert credential["sub"] == holder.did
    assert credential["vc"]["credentialSubject"]["passportNumber"] == "X1234567"
    commitment = jwt_utils.verify_signature(credential_response.commitment_jwt, keys)
    assert commitment["commitment_hash"] == parsing.commitment_hash(PASSPORT_CLAIMS)

    # Pre-authorized code can only be used once
    response = client.post(
        "/token",
        data={"grant_type": cr.PRE_AUTHORIZED_CODE_GRANT_TYPE, "pre-authorized_code": offer["pre_authorized_code"]},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_grant"


def test_token_json_body(client: TestClient):
    response = client.post("/token", json={"grant_type": cr.PRE_AUTHORIZED_CODE_GRANT_TYPE, "pre-authorized_code": "abc"})
    assert response.status_code == 200, response.text
    assert response.json()["token_type"] == "Bearer"


def test_token_errors(client: TestClient):
    response = client.post("/token", data={"grant_type": "authorization_code", "pre-authorized_code": "abc"})
    assert response.status_code == 400
    assert response.json()["error"] == "unsupported_grant_type"
    assert response.headers["Cache-Control"] == "no-store"

    response = client.post("/token", data={"grant_type": cr.PRE_AUTHORIZED_CODE_GRANT_TYPE})
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_grant"


def test_credential_errors(client: TestClient):
    holder = HolderWallet()
    response = client.post("/credential", json={"format": "jwt_vc_json", "proof": holder.credential_proof("nonce")})
    assert response.status_code == 401
    assert response.json()["error"] == "invalid_token"

    response = client.post("/token", data={"grant_type": cr.PRE_AUTHORIZED_CODE_GRANT_TYPE, "pre-authorized_code": "abc"})
    token = response.json()
    response = client.post(
        "/credential",
        json={"format": "jwt_vc_json", "proof": holder.credential_proof("wrong-nonce")},
        headers={"Authorization": f"Bearer {token['access_token']}"},
    )
    assert response.status_code == 400
    error = response.json()
    assert error["error"] == "invalid_proof"
    assert error["c_nonce"]

    # Malformed body is reported as invalid request instead of 422
    response = client.post("/credential", json={"proof": "nope"}, headers={"Authorization": f"Bearer {token['access_token']}"})
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request"


def test_issue_and_revocation_lifecycle(client: TestClient):
    holder = HolderWallet()
    response = client.post("/issue", json={"holder_did": holder.did, "claims": PASSPORT_CLAIMS})
    assert response.status_code == 200, response.text
    issued = response.json()
    credential_id = issued["credential_id"]
    assert issued["status"]["status"] == "VALID"
    assert issued["commitment_hash"] == parsing.commitment_hash(PASSPORT_CLAIMS)

    response = client.get(f"/credentials/{credential_id}/valid")
    assert response.json() == {"credential_id": credential_id, "is_valid": True}

    response = client.post(f"/credentials/{credential_id}/suspend", json={"actor": "support", "reason": "Lost phone"})
    assert response.status_code == 200, response.text
    assert response.json()["status"] == "SUSPENDED"
    assert client.get(f"/credentials/{credential_id}/valid").json()["is_valid"] is False

    response = client.post(f"/credentials/{credential_id}/reinstate", json={"actor": "support"})
    assert response.status_code == 200, response.text
    assert response.json()["status"] == "VALID"

    response = client.post(f"/credentials/{credential_id}/revoke", json={"reason": "FRAUD", "actor": "admin"})
    assert response.status_code == 200, response.text
    status = client.get(f"/credentials/{credential_id}/status").json()
    assert status["status"] == "REVOKED"
    assert status["revocation_reason"] == "FRAUD"

    response = client.post(f"/credentials/{credential_id}/revoke", json={"reason": "FRAUD", "actor": "admin"})
    assert response.status_code == 409
    assert response.json()["error_code"] == "already_revoked"

    response = client.post(f"/credentials/{credential_id}/reinstate", json={"actor": "admin"})
    assert response.status_code == 409
    assert response.json()["error_code"] == "cannot_reinstate_revoked"


def test_unknown_credential_status(client: TestClient):
    response = client.get("/credentials/7d5f34cf-4d2e-4b1a-9a55-91c1bd1a7e0c/status")
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_management_requires_api_key(client: TestClient):
    response = client.post("/issue", json={"holder_did": "did:example:holder", "claims": {}}, headers={"x-api-key": "wrong"})
    assert response.status_code == 401
    response = client.post("/credential-offer", json={"claims": {}}, headers={"x-api-key": "wrong"})
    assert response.status_code == 401
    response = client.post(
        "/credentials/7d5f34cf-4d2e-4b1a-9a55-91c1bd1a7e0c/revoke",
        json={"reason": "FRAUD", "actor": "admin"},
        headers={"x-api-key": "wrong"},
    )
    assert response.status_code == 401


def test_issue_with_liveness_proof(client: TestClient):
    holder = HolderWallet()
    request = {"holder_did": holder.did, "claims": PASSPORT_CLAIMS, "liveness_proof": liveness_proof(time.time())}
    response = client.post("/issue-with-proof", json=request)
    assert response.status_code == 200, response.text
    issued = response.json()
    assert issued["status"]["status"] == "VALID"
    _, credential = jwt_utils.decode_unverified(issued["credential_jwt"])
    assert credential["sub"] == holder.did

    request["liveness_proof"]["is_live"] = False
    response = client.post("/issue-with-proof", json=request)
    assert response.status_code == 400
    assert response.json()["error_code"] == "liveness_check_failed"

    request["liveness_proof"] = liveness_proof(time.time() - 3600)
    response = client.post("/issue-with-proof", json=request)
    assert response.status_code == 400
    assert "too old" in response.json()["additional_error_description"]

    del request["liveness_proof"]
    response = client.post("/issue-with-proof", json=request)
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request"


def test_list_revoked_credentials(client: TestClient):
    credential_ids = []
    for _ in range(3):
        response = client.post("/issue", json={"holder_did": HolderWallet().did, "claims": PASSPORT_CLAIMS})
        credential_ids.append(response.json()["credential_id"])
    client.post(f"/credentials/{credential_ids[0]}/revoke", json={"reason": "FRAUD", "actor": "admin"})
    client.post(f"/credentials/{credential_ids[1]}/revoke", json={"reason": "USER_REQUEST", "actor": "holder"})
    client.post(f"/credentials/{credential_ids[2]}/suspend", json={"actor": "support"})

    response = client.get("/credentials/revoked")
    assert response.status_code == 200, response.text
    assert {entry["credential_id"] for entry in response.json()} == set(credential_ids[:2])
    assert all(entry["status"] == "REVOKED" for entry in response.json())

    response = client.get("/credentials/revoked", params={"revoked_by": "holder"})
    assert [entry["credential_id"] for entry in response.json()] == [credential_ids[1]]
    assert response.json()[0]["revocation_reason"] == "USER_REQUEST"

    response = client.get("/credentials/revoked", params={"revoked_after": time.time() + 60})
    assert response.json() == []

    response = client.get("/credentials/revoked", headers={"x-api-key": "wrong"})
    assert response.status_code == 401
