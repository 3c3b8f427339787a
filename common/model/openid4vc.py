# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Based on OID4VC as of 2023-09-21
"""

##############
# OpenID4VCI #
##############
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

PRE_AUTHORIZED_CODE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:pre-authorized_code"


class TokenRequest(BaseModel):
    """
    https://openid.net/specs/openid-4-verifiable-credential-issuance-1_0-11.html#name-token-request
    """

    model_config = ConfigDict(populate_by_name=True)

    grant_type: str | None = None
    pre_authorized_code: str | None = Field(default=None, alias="pre-authorized_code")


class CredentialDefinition(BaseModel):
    types: list[str]


class CredentialProof(BaseModel):
    proof_type: str
    jwt: str | None = None


class CredentialRequest(BaseModel):
    """
    https://openid.bitbucket.io/connect/openid-4-verifiable-credential-issuance-1_0.html#section-7.2
    * format: Requested format; has to be one of the offered formats
    * credential_definition: Requested credential types
    * proof: proof of possession of the key material
    """

    format: str
    """
    Requested format; has to be one of the offered formats. is jwt_vc_json (or its older name jwt_vc) for now.
    """
    credential_definition: Optional[CredentialDefinition] = None
    """
    Type gotten from .well-known/openid-credential-issuer credentials_supported
    """
    proof: Optional[CredentialProof] = None
    """
    Proof of possession. the key material the issued Credential shall be bound to.
    Must be of proof_type jwt, signed by the key of the subject DID & carry the c_nonce.
    https://openid.net/specs/openid-4-verifiable-credential-issuance-1_0.html#name-key-proof-types
    """


class CredentialResponse(BaseModel):
    """
    https://openid.net/specs/openid-4-verifiable-credential-issuance-1_0-11.html#name-credential-response
    Extended with the commitment issued along with the credential.
    """

    format: str
    credential: str
    c_nonce: str
    c_nonce_expires_in: int
    credential_id: str
    commitment_jwt: str
    commitment_hash: str


class CredentialOffer(BaseModel):
    """
    https://openid.net/specs/openid-4-verifiable-credential-issuance-1_0-11.html#name-credential-offer-parameters
    """

    credential_issuer: str
    credentials: list[str]
    grants: dict


class CredentialIssuerDisplay(BaseModel):
    name: str
    locale: str = "en-US"


class CredentialSupported(BaseModel):
    format: str
    types: list[str]
    cryptographic_binding_methods_supported: list[str]
    credential_signing_alg_values_supported: list[str]
    proof_types_supported: list[str]
    display: list[CredentialIssuerDisplay]


class CredentialIssuerMetadata(BaseModel):
    """
    https://openid.net/specs/openid-4-verifiable-credential-issuance-1_0-11.html#name-credential-issuer-metadata-p
    """

    credential_issuer: str
    credential_endpoint: str
    token_endpoint: str
    jwks_uri: str
    display: list[CredentialIssuerDisplay]
    credentials_supported: dict[str, CredentialSupported]
