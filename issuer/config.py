# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import os
from typing import Annotated

from fastapi import Depends

import common.config as conf
from common.parsing import interpret_as_bool


class IssuerConfig(conf.Config):
    def __init__(self):
        super().__init__()
        self.app_name = os.getenv("APP_NAME", "Issuer Agent")
        self.external_url = os.getenv("EXTERNAL_URL", "http://localhost:8000")
        self.issuer_id = os.getenv("ISSUER_ID")
        """
        DID of the issuer, used as iss of all issued tokens.
        Defaults to the did:jwk of the signing key.
        """
        self.display_name = os.getenv("ISSUER_DISPLAY_NAME", "FinPass Passport Issuer")

        self.access_token_ttl = int(os.getenv("ACCESS_TOKEN_TTL", 3600))
        """Lifetime in seconds of the access tokens issued by /token"""
        self.c_nonce_ttl = int(os.getenv("C_NONCE_TTL", 300))
        """Lifetime in seconds of the c_nonce binding the next proof of possession"""
        self.offer_ttl = int(os.getenv("CREDENTIAL_OFFER_TTL", 86400))
        """Lifetime in seconds of a credential offer (pre-authorized code)"""
        self.status_cache_ttl = int(os.getenv("STATUS_CACHE_TTL", 300))
        """Lifetime in seconds of cached credential status reads"""

        self.accept_unregistered_codes: bool = interpret_as_bool(os.getenv("ACCEPT_UNREGISTERED_CODES", "True"))
        """
        Accept pre-authorized codes which do not belong to a registered credential offer.
        Credentials issued for such codes carry no claims.
        """

        self.liveness_min_score = float(os.getenv("LIVENESS_MIN_SCORE", 0.7))
        self.liveness_min_confidence = float(os.getenv("LIVENESS_MIN_CONFIDENCE", 0.6))
        """Minimum confidence of the proof and average face confidence of its frames"""
        self.liveness_max_age = int(os.getenv("LIVENESS_MAX_AGE", 300))
        """Maximum age in seconds of a liveness proof accepted by /issue-with-proof"""

        self.missing_status_policy = conf.failure_policy("MISSING_STATUS_POLICY", conf.FailurePolicy.FAIL_OPEN)
        """
        How credentials without a status record are reported.
        FAIL_OPEN treats them as VALID, FAIL_CLOSED as not valid.
        """

    def issuer_did(self, default: str) -> str:
        return self.issuer_id or default

    def endpoint(self, path: str) -> str:
        return f'{self.external_url.rstrip("/")}{path}'


inject = Annotated[IssuerConfig, Depends(IssuerConfig)]
