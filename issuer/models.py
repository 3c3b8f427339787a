# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""Data transfer objects of the issuer management endpoints"""

from pydantic import BaseModel, Field

import common.model.openid4vc as cr
from issuer.db.credential import RevocationReason
from issuer.credential_issuance import IssuedCredential
from issuer.liveness import LivenessProof
from issuer.revocation import CredentialStatusResponse


class IssueRequest(BaseModel):
    holder_did: str = Field(min_length=1)
    claims: dict = Field(description="Passport claims, e.g. name, nationality, birthDate, passportNumber")


class IssueWithProofRequest(IssueRequest):
    liveness_proof: LivenessProof


class IssueResponse(IssuedCredential):
    status: CredentialStatusResponse


class CredentialOfferRequest(BaseModel):
    claims: dict


class CredentialOfferResponse(BaseModel):
    pre_authorized_code: str
    credential_offer: cr.CredentialOffer
    offer_uri: str


class RevokeRequest(BaseModel):
    reason: RevocationReason
    actor: str = Field(min_length=1)
    description: str | None = None


class SuspendRequest(BaseModel):
    actor: str = Field(min_length=1)
    reason: str | None = None


class ReinstateRequest(BaseModel):
    actor: str = Field(min_length=1)


class ValidityResponse(BaseModel):
    credential_id: str
    is_valid: bool
