# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Collection of Pydantic models for IETF Objects
"""
from jwcrypto import jwk
from pydantic import BaseModel, ConfigDict
from typing import Literal, Union, Optional


class JSONWebKey(BaseModel):
    """
    represents a cryptographic key
    https://datatracker.ietf.org/doc/html/rfc7517
    """

    model_config = ConfigDict(extra='allow')

    kty: str
    """
    key type
    https://datatracker.ietf.org/doc/html/rfc7517#section-4.1
    """

    use: str | None = None
    """
    Intended Use of the public key
    https://datatracker.ietf.org/doc/html/rfc7517#section-4.2
    """

    key_ops: list[str] | None = None
    """
    https://datatracker.ietf.org/doc/html/rfc7517#section-4.3
    """

    alg: str | None = None
    """
    Alogirhtm inteded for use with the key
    https://datatracker.ietf.org/doc/html/rfc7517#section-4.4
    """

    kid: str | None = None
    """
    Key ID, used to match sepcific keys
    https://datatracker.ietf.org/doc/html/rfc7517#section-4.5
    """

    def as_crypto_jwk(self) -> jwk.JWK:
        """Returns the crypto library object"""
        return jwk.JWK(**self.model_dump(exclude_none=True))


class JSONWebKeyOctetKeyPair(JSONWebKey):
    """
    https://www.rfc-editor.org/rfc/rfc8037#section-2
    """

    kty: Literal['OKP']

    crv: str
    """
    Subtype of the key, Ed25519 for EdDSA signatures
    """

    x: str
    """Public key"""


class JSONWebKeySet(BaseModel):
    keys: list[Union[JSONWebKeyOctetKeyPair, JSONWebKey]]

    def as_crypto_jwks(self) -> jwk.JWKSet:
        return jwk.JWKSet.from_json(self.model_dump_json(exclude_none=True))


class OAuth2Token(BaseModel):
    """
    https://www.rfc-editor.org/rfc/rfc6749.txt
    * access_token: The access token issued by the authorization server.
    * token_type: The type of the token issued
    * expires_in: The lifetime in seconds of the access token
    * refresh_token (Optional): The refresh token, which can be used to obtain new
         access tokens using the same authorization grant
    * scope (Optional): The scope of the access token
    """

    access_token: str
    """The access token issued by the authorization server."""
    token_type: str
    """The type of the token issued (eg. BEARER)"""
    expires_in: int
    """The lifetime in seconds of the access token"""
    refresh_token: Optional[str] = None
    """The refresh token, which can be used to obtain new
        access tokens using the same authorization grant"""
    scope: Optional[str] = None
    """The scope of the access token"""


class OpenID4VCToken(OAuth2Token):
    """
    Extended OAuth2.0 Token (https://www.rfc-editor.org/rfc/rfc6749.txt)
    * c_nonce (Optional): nonce to be used to create a proof of possession of key material when requesting a Credential
    * c_nonce_expires_in (Optional): integer denoting the lifetime in seconds of the c_nonce
    """

    c_nonce: Optional[str] = None
    """
    nonce to be used to create a proof of possession of key material when requesting a Credential
    """
    c_nonce_expires_in: Optional[int] = None
    """
    integer denoting the lifetime in seconds of the c_nonce
    """
