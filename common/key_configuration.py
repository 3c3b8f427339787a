# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Collection for loading and returning the signing key in the required formats.

The key is an Ed25519 (OKP) key used with the EdDSA algorithm. It is either
loaded from the configuration (private JSON Web Key) or generated once for the
lifetime of the process. Generated keys are not persisted, use
`export_private_jwk` to store them externally.
"""

import logging
import uuid
from typing import Annotated
from functools import cache

from cryptography.exceptions import InvalidSignature
from fastapi import Depends
from jwcrypto import jwk, jws, common as jw_common

from common import config as conf
from common.parsing import object_to_url_safe
import common.model.ietf as ietf

_logger = logging.getLogger(__name__)

SIGNING_ALGORITHM = "EdDSA"


class InvalidKeyConfiguration(Exception):
    """Configured key material can not be used. Fatal at startup."""


class KeyConfiguration:
    """
    Holds the Ed25519 signing key
    """

    @staticmethod
    def load(private_jwk: str | None) -> "KeyConfiguration":
        """Loads the key from the private JWK JSON, generates a new one if nothing is configured."""
        if not private_jwk:
            _logger.warning("No signing key configured, generating an ephemeral key for this process.")
            return KeyConfiguration.generate()
        try:
            key = jwk.JWK.from_json(private_jwk)
        except (ValueError, TypeError, jw_common.JWException) as e:
            raise InvalidKeyConfiguration(f"Signing key can not be parsed: {e}") from e
        return KeyConfiguration(key)

    @staticmethod
    def generate(key_id: str | None = None) -> "KeyConfiguration":
        return KeyConfiguration(jwk.JWK.generate(kty="OKP", crv="Ed25519", kid=key_id or str(uuid.uuid4())))

    def __init__(self, private_jwk: jwk.JWK):
        if private_jwk.get("kty") != "OKP" or private_jwk.get("crv") != "Ed25519":
            raise InvalidKeyConfiguration("Signing key has to be an Ed25519 OKP key.")
        if not private_jwk.has_private:
            raise InvalidKeyConfiguration("Signing key does not contain private key material.")
        if not private_jwk.get("kid"):
            private_jwk = jwk.JWK(**private_jwk.export(as_dict=True), kid=private_jwk.thumbprint())
        self.private_jwk = private_jwk
        self.public_jwk = jwk.JWK(**private_jwk.export_public(as_dict=True))

    @property
    def key_id(self) -> str:
        return self.private_jwk.get("kid")

    @property
    def algorithm(self) -> str:
        return SIGNING_ALGORITHM

    def sign(self, payload: bytes) -> bytes:
        """Raw Ed25519 signature over the payload bytes"""
        return self.private_jwk.get_op_key("sign").sign(payload)

    def verify(self, payload: bytes, signature: bytes) -> bool:
        try:
            self.public_jwk.get_op_key("verify").verify(signature, payload)
            return True
        except InvalidSignature:
            return False

    def encode_jwt(self, payload: dict, header: dict = None) -> str:
        """
        Compact serialized JWS over the JSON payload.
        The key id is always part of the protected header for key resolution.
        """
        header = dict(header or {})
        header.setdefault("typ", "JWT")
        header["alg"] = self.algorithm
        header["kid"] = self.key_id

        signer = jws.JWS(jw_common.json_encode(payload))
        signer.add_signature(key=self.private_jwk, protected=jw_common.json_encode(header))
        return signer.serialize(compact=True)

    def export_private_jwk(self) -> str:
        """Private key as JSON, to be stored in SIGNING_KEY_PRIVATE"""
        return self.private_jwk.export_private()

    @property
    def jwks(self) -> dict:
        """
        JSON Web Key Set with public signing key
        """
        return {"keys": [self.public_jwk.export_public(as_dict=True)]}

    @property
    def jwk_did(self) -> str:
        """
        DID JWK with public signing key
        """
        return f'did:jwk:{object_to_url_safe(self.public_jwk.export_public(as_dict=True))}'

    def public_key_as_dto(self) -> ietf.JSONWebKey:
        """Returns the public key as pydantic data transfer object"""
        return ietf.JSONWebKey.model_validate(self.public_jwk.export_public(as_dict=True))


@cache
def get_key_configuration() -> KeyConfiguration:
    return KeyConfiguration.load(conf.Config().signing_key_private)


inject = Annotated[KeyConfiguration, Depends(get_key_configuration)]
