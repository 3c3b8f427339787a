# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""Data transfer objects of the verifier endpoints"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelCaseModel(BaseModel):
    """Accepts both snake_case and camelCase field names"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChallengeResponse(BaseModel):
    challenge: str
    ttl_seconds: int


class VerifyRequest(CamelCaseModel):
    """
    * challenge: challenge handed out by /challenge, consumed by the verification
    * holder_did: DID of the presenting holder, has to be the subject of the commitment
    * commitment_jwt: commitment signed by the issuer at issuance
    * proof: the predicate proof
    * public_signals: public inputs of the proof {challenge, predicate, result}
    """

    challenge: str | None = None
    holder_did: str | None = None
    commitment_jwt: str | None = None
    proof: str | None = None
    public_signals: dict[str, Any] = Field(default_factory=dict)


class VerificationResult(BaseModel):
    decision_token: str
    verified_claims: list[str]
    assurance_level: str
    expires_in: int


class AuthorizationRequest(BaseModel):
    """
    https://openid.net/specs/openid-4-verifiable-presentations-1_0-18.html#name-authorization-request
    """

    response_type: str | None = None
    client_id: str | None = None
    response_mode: str = "direct_post"
    state: str | None = None
    presentation_definition: dict | None = None
    """Own presentation definition, the passport definition is used if not set"""


class AuthorizationResponse(BaseModel):
    session_id: str
    nonce: str
    presentation_definition: dict
    response_uri: str
    response_mode: str
    expires_in: int
    state: str | None = None


class PresentationResponse(BaseModel):
    """
    https://openid.net/specs/openid-4-verifiable-presentations-1_0-18.html#name-response
    """

    vp_token: str | None = None
    presentation_submission: dict | None = None
    state: str | None = None


class PresentationResult(BaseModel):
    success: bool
    decision_token: str
    verified_claims: list[str]
    assurance_level: str
    expires_in: int


class VerifierMetadata(BaseModel):
    verifier: str
    verifier_did: str
    authorization_endpoint: str
    response_uri: str
    presentation_definition_uri: str
    jwks_uri: str
    vp_formats_supported: dict
    response_types_supported: list[str]
    response_modes_supported: list[str]


class TrustedIssuerRequest(BaseModel):
    issuer_did: str = Field(min_length=1)
    added_at: float | None = None
    """Point in time since the issuer is trusted, now if not set"""


class KycCheckRequest(BaseModel):
    payer_did: str = Field(min_length=1)
    decision_token: str = Field(min_length=1)


class KycCheckResponse(BaseModel):
    approved: bool
    payer_did: str
    verified_claims: list[str]
    assurance_level: str
