# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Decision tokens, the short lived outcome of a successful verification.

The verifier signs which claims it verified for which holder. Relying parties
(the payment gate) accept the token instead of repeating the verification,
as long as it is signed by the verifier and not expired.
"""

import logging
import uuid

from pydantic import BaseModel

from common import errors, jwt_utils
from common import parsing as prs
from common.clock import Clock, SystemClock
from common.key_configuration import KeyConfiguration
from common.model import ietf

_logger = logging.getLogger(__name__)

ASSURANCE_LEVEL = "LOW"
DEFAULT_TTL = 300


class DecisionToken(BaseModel):
    token: str
    """Compact serialized JWT"""
    verified_claims: list[str]
    assurance_level: str
    expires_in: int


class DecisionTokenClaims(BaseModel):
    iss: str
    sub: str
    iat: int
    exp: int
    jti: str
    verified_at: int
    verified_claims: list[str]
    assurance_level: str
    expires_in: int

    def has_claim(self, claim: str) -> bool:
        return claim in self.verified_claims

    @property
    def subject_did(self) -> str:
        return self.sub


class DecisionTokenSigner:
    def __init__(self, key_configuration: KeyConfiguration, verifier_did: str, ttl: int = DEFAULT_TTL, clock: Clock | None = None) -> None:
        self._key = key_configuration
        self.verifier_did = verifier_did
        self.ttl = ttl
        self._clock = clock or SystemClock()

    def mint(self, holder_did: str, verified_claims: list[str]) -> DecisionToken:
        now = int(self._clock.now())
        claims = DecisionTokenClaims(
            iss=self.verifier_did,
            sub=holder_did,
            iat=now,
            exp=now + self.ttl,
            jti=str(uuid.uuid4()),
            verified_at=now,
            verified_claims=verified_claims,
            assurance_level=ASSURANCE_LEVEL,
            expires_in=self.ttl,
        )
        token = self._key.encode_jwt(claims.model_dump(), header={"typ": "JWT"})
        return DecisionToken(token=token, verified_claims=verified_claims, assurance_level=ASSURANCE_LEVEL, expires_in=self.ttl)


class DecisionTokenValidator:
    """Accepts only decision tokens signed by this verifier which are not expired"""

    def __init__(self, key_configuration: KeyConfiguration, verifier_did: str, clock: Clock | None = None) -> None:
        self._keys = ietf.JSONWebKeySet.model_validate(key_configuration.jwks)
        self.verifier_did = verifier_did
        self._clock = clock or SystemClock()

    def validate(self, token: str | None) -> errors.Result[DecisionTokenClaims]:
        if prs.is_blank(token):
            return errors.Err(errors.InvalidDecisionTokenError(additional_error_description="Missing decision token"))
        try:
            claims = jwt_utils.verify_signature(token, self._keys)
        except (jwt_utils.MalformedJWTError, jwt_utils.InvalidJWTSignatureError) as e:
            return errors.Err(errors.InvalidDecisionTokenError(additional_error_description=str(e)))
        if claims.get("iss") != self.verifier_did:
            return errors.Err(errors.InvalidDecisionTokenError(additional_error_description="Decision token was not issued by this verifier"))
        if prs.is_blank(claims.get("sub")):
            return errors.Err(errors.InvalidDecisionTokenError(additional_error_description="Decision token has no subject"))
        if not isinstance(claims.get("exp"), int):
            return errors.Err(errors.InvalidDecisionTokenError(additional_error_description="Decision token has no expiry"))
        if claims["exp"] <= self._clock.now():
            return errors.Err(errors.DecisionTokenExpiredError())
        if not isinstance(claims.get("verified_claims"), list):
            return errors.Err(errors.InvalidDecisionTokenError(additional_error_description="Decision token has no verified claims"))
        try:
            return errors.Ok(DecisionTokenClaims.model_validate(claims))
        except ValueError as e:
            return errors.Err(errors.InvalidDecisionTokenError(additional_error_description=str(e)))
