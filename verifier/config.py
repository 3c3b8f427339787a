# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import json
import os
import common.config as conf
from typing import Annotated
from fastapi import Depends

from common.model import ietf


class VerifierConfig(conf.Config):
    def __init__(self):
        super().__init__()
        self.app_name = os.getenv("APP_NAME", "Verifier Agent")
        self.external_url = os.getenv("EXTERNAL_URL", "http://localhost:8001")
        self.verifier_id = os.getenv("VERIFIER_ID")
        """
        DID of the verifier, iss of the decision tokens.
        Defaults to the did:jwk of the signing key.
        """
        self.display_name = os.getenv("VERIFIER_DISPLAY_NAME", "FinPass Verifier")

        self.challenge_ttl = int(os.getenv("CHALLENGE_TTL", 300))
        """Lifetime in seconds of the challenges handed out by /challenge"""
        self.decision_ttl = int(os.getenv("DECISION_TOKEN_TTL", 300))
        """Lifetime in seconds of the decision tokens"""
        self.session_ttl = int(os.getenv("AUTHORIZATION_SESSION_TTL", 600))
        """Lifetime in seconds of an OpenID4VP authorization session (its nonce)"""
        self.trust_cache_ttl = int(os.getenv("TRUST_CACHE_TTL", 3600))
        """Lifetime in seconds of cached trust registry lookups"""
        self.revocation_cache_ttl = int(os.getenv("REVOCATION_CACHE_TTL", 60))
        """Lifetime in seconds of cached revocation status lookups"""

        self.trust_policy = conf.failure_policy("TRUST_POLICY", conf.FailurePolicy.FAIL_CLOSED)
        """Outcome of a trust lookup while the trust registry is unavailable"""
        self.revocation_policy = conf.failure_policy("REVOCATION_POLICY", conf.FailurePolicy.FAIL_OPEN)
        """Outcome of a revocation lookup while the issuer status endpoint is unavailable"""

        self.trust_registry_url = os.getenv("TRUST_REGISTRY_URL")
        """
        Base url of the trust registry, asked at {url}/issuers/{did}.
        The statically configured issuers are used if not set.
        """
        self.trusted_issuers: dict[str, float] = self._load_trusted_issuers(os.getenv("TRUSTED_ISSUERS", "[]"))
        """
        Statically trusted issuers, JSON list of DIDs or JSON object DID -> trusted since (epoch seconds)
        """
        self.trusted_issuer_keys: dict[str, ietf.JSONWebKeySet] = {
            did: ietf.JSONWebKeySet.model_validate(jwks) for did, jwks in json.loads(os.getenv("TRUSTED_ISSUER_KEYS", "{}")).items()
        }
        """
        Verification keys of issuers which neither use did:jwk nor are published on the key registry.
        JSON object DID -> JSON Web Key Set
        """
        self.issuer_status_url = os.getenv("ISSUER_STATUS_URL")
        """
        Base url of the issuer status endpoints, asked at {url}/credentials/{id}/valid.
        Revocation checks follow the revocation policy if not set.
        """

    @staticmethod
    def _load_trusted_issuers(raw: str) -> dict[str, float]:
        loaded = json.loads(raw)
        if isinstance(loaded, list):
            return {did: 0.0 for did in loaded}
        return {did: float(added_at) for did, added_at in loaded.items()}

    def verifier_did(self, default: str) -> str:
        return self.verifier_id or default

    def endpoint(self, path: str) -> str:
        return f'{self.external_url.rstrip("/")}{path}'


inject = Annotated[VerifierConfig, Depends(VerifierConfig)]
