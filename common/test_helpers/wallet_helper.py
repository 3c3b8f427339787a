# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
In process stand-in for a holder wallet and a throw away database, used by the tests
of the issuer and the verifier.
"""

import base64
import os
import time
import uuid
from typing import Generator

from sqlalchemy.orm import Session, sessionmaker

import common.db.postgres as db
from common import parsing
from common.key_configuration import KeyConfiguration
from common.model import ietf

api_key = os.getenv("API_KEY", "tergum_dev_key")
API_KEY_HEADER = {'x-api-key': api_key}


class HolderWallet:
    """Holder identified by a did:jwk, signing proofs of possession and presentations"""

    def __init__(self, key_configuration: KeyConfiguration | None = None) -> None:
        self.key = key_configuration or KeyConfiguration.generate()

    @property
    def did(self) -> str:
        return self.key.jwk_did

    def proof_jwt(self, nonce: str | None, audience: str = "http://localhost:8000", subject: str | None = None, issued_at: int | None = None) -> str:
        """OpenID4VCI proof of possession over the c_nonce"""
        claims = {
            "iss": self.did,
            "sub": subject or self.did,
            "aud": audience,
            "iat": issued_at or int(time.time()),
        }
        if nonce is not None:
            claims["nonce"] = nonce
        return self.key.encode_jwt(claims, header={"typ": "openid4vci-proof+jwt"})

    def credential_proof(self, nonce: str | None, **kwargs) -> dict:
        return {"proof_type": "jwt", "jwt": self.proof_jwt(nonce, **kwargs)}

    def vp_token(
        self,
        nonce: str | None,
        credentials: list[str] | str,
        predicate: str = "over_18",
        result: bool = True,
        proof: str | None = "zk-proof",
        nested: bool = True,
    ) -> str:
        """
        Verifiable presentation of the commitment JWTs, bound to the session nonce.
        nested=False places the credentials top level instead of under `vp`.
        """
        claims = {
            "iss": self.did,
            "sub": self.did,
            "jti": str(uuid.uuid4()),
            "iat": int(time.time()),
            "public_signals": {"predicate": predicate, "result": result},
        }
        if nonce is not None:
            claims["nonce"] = nonce
        if proof is not None:
            claims["proof"] = proof
        if nested:
            claims["vp"] = {"type": ["VerifiablePresentation"], "verifiableCredential": credentials}
        else:
            claims["verifiableCredential"] = credentials
        return self.key.encode_jwt(claims, header={"typ": "vp+jwt"})


def liveness_proof(captured_at: float, frame_count: int = 4) -> dict:
    """Liveness proof of the wallet's face capture: a live face moving 10 pixels per frame"""
    return {
        "score": 0.92,
        "is_live": True,
        "confidence": 0.88,
        "timestamp": int(captured_at * 1000),
        "frames": [
            {
                "timestamp": int(captured_at * 1000) + 100 * i,
                "image_data": base64.b64encode(f"frame-{i}".encode()).decode(),
                "face_detected": True,
                "face_confidence": 0.9,
                "bounding_box": {"x": 200 + 10 * i, "y": 140, "width": 200, "height": 200},
            }
            for i in range(frame_count)
        ],
        "details": {"face_detected": True, "motion_detected": True, "blink_detected": True, "frame_count": frame_count},
        "device_info": {"user_agent": "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X)"},
    }


def sqlite_sessionmaker() -> sessionmaker:
    """Session factory of a fresh in memory database with all tables created"""
    return sessionmaker(bind=db.create_db_engine("sqlite://"))


def session_override(session_factory: sessionmaker):
    """Replacement for `db.env_session` in `app.dependency_overrides`"""

    def t_session() -> Generator[Session, None, None]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    return t_session


class CommitmentIssuer:
    """
    Issuer with an arbitrary DID (e.g. did:iss:A), signing commitments the way the issuer service does.
    Verifiers learn its keys through `jwks`, e.g. with a StaticKeyResolver.
    """

    def __init__(self, did: str, key_configuration: KeyConfiguration | None = None) -> None:
        self.did = did
        self.key = key_configuration or KeyConfiguration.generate()

    @property
    def jwks(self) -> ietf.JSONWebKeySet:
        return ietf.JSONWebKeySet.model_validate(self.key.jwks)

    def commitment(self, holder_did: str, claims: dict | None = None, credential_id: str | None = None, **overrides) -> str:
        """Commitment JWT over the claims, overrides replace (or with None remove) single claims"""
        payload = {
            "iss": self.did,
            "sub": holder_did,
            "jti": credential_id or str(uuid.uuid4()),
            "iat": int(time.time()),
            "commitment_hash": parsing.commitment_hash(claims or {"birthDate": "1990-01-01"}),
        }
        payload.update(overrides)
        return self.key.encode_jwt({name: value for name, value in payload.items() if value is not None})
