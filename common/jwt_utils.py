# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
JWT parsing & signature verification, and the resolution of verification keys
from the identifier (DID, registry id) of the signer.

No claim of a signed token should be trusted before `verify_jwt` succeeded,
`decode_unverified` only exists to find out who claims to have signed it.
"""

import logging
from typing import Protocol

import httpx
from jwcrypto import jws, common as jw_common

from common import parsing as prs
import common.httpx_wrapper as httpxw
from common.model import ietf
from common import config as conf
from common import errors

_logger = logging.getLogger(__name__)


class MalformedJWTError(ValueError):
    """Not a compact serialized JWT with JSON header & payload"""


class InvalidJWTSignatureError(ValueError):
    """Signature does not verify with any of the resolved keys"""


class KeyResolutionError(LookupError):
    """No verification key can be found for the identifier"""


def split_jwt(jwt: str) -> list[str]:
    """
    Splits a JWT into its head at index 0, body at index 1, signature at index 2.
    """
    return jwt.split(".")


def decode_unverified(jwt: str) -> tuple[dict, dict]:
    """
    Returns header and claims of the JWT WITHOUT verifying the signature.
    Throws MalformedJWTError
    """
    if not isinstance(jwt, str):
        raise MalformedJWTError("JWT has to be a string")
    parts = split_jwt(jwt.strip())
    if len(parts) != 3 or not all(parts[:2]):
        raise MalformedJWTError("JWT has to consist of header, payload and signature")
    try:
        header = prs.object_from_url_safe(parts[0])
        claims = prs.object_from_url_safe(parts[1])
    except (ValueError, UnicodeDecodeError) as e:
        raise MalformedJWTError(f"JWT can not be decoded: {e}") from e
    if not isinstance(header, dict) or not isinstance(claims, dict):
        raise MalformedJWTError("JWT header and payload have to be JSON objects")
    return header, claims


def verify_signature(jwt: str, keys: ietf.JSONWebKeySet) -> dict:
    """
    Verifies the JWS signature with the key matching the kid of the header,
    or with any key of the set if no key matches. Returns the claims.
    Throws MalformedJWTError, InvalidJWTSignatureError
    """
    header, _ = decode_unverified(jwt)
    candidates = [key for key in keys.keys if header.get("kid") and key.kid == header.get("kid")] or keys.keys
    token = jws.JWS()
    try:
        token.deserialize(jwt.strip())
    except jw_common.JWException as e:
        raise MalformedJWTError(f"JWT can not be deserialized: {e}") from e
    for key in candidates:
        try:
            token.verify(key.as_crypto_jwk())
            return jw_common.json_decode(token.payload)
        except (jw_common.JWException, ValueError, TypeError):
            continue
    raise InvalidJWTSignatureError(f"Signature could not be verified with {len(candidates)} candidate key(s)")


class KeyResolver(Protocol):
    def resolve(self, identifier: str) -> ietf.JSONWebKeySet:
        """
        Returns the published verification keys of the identifier.
        Throws KeyResolutionError if the identifier has no known keys,
        UpstreamUnavailableError if the key source can not be reached.
        """
        ...


class StaticKeyResolver:
    """Keys known upfront, e.g. configured trusted issuers or the own key."""

    def __init__(self, keys: dict[str, ietf.JSONWebKeySet] | None = None) -> None:
        self._keys = dict(keys or {})

    def register(self, identifier: str, keys: ietf.JSONWebKeySet) -> None:
        self._keys[identifier] = keys

    def resolve(self, identifier: str) -> ietf.JSONWebKeySet:
        if identifier not in self._keys:
            raise KeyResolutionError(f"No static keys for {identifier}")
        return self._keys[identifier]


class DidJwkKeyResolver:
    """did:jwk carries the public key in the identifier itself."""

    def resolve(self, identifier: str) -> ietf.JSONWebKeySet:
        if not is_did_jwk_identifier(identifier):
            raise KeyResolutionError(f"{identifier} is not a did:jwk")
        try:
            return ietf.JSONWebKeySet(keys=[get_jwk_from_did_jwk(identifier)])
        except ValueError as e:
            raise KeyResolutionError(f"Can not decode key of {identifier}") from e


class RegistryKeyResolver:
    """
    Key sets published on the key registry at
    {REGISTRY_BASE_URL}/{identifier}/.well-known/jwks.json
    """

    def __init__(self, config: conf.Config) -> None:
        self._config = config

    def resolve(self, identifier: str) -> ietf.JSONWebKeySet:
        if not self._config.registry_key_url:
            raise KeyResolutionError("No key registry configured")
        url = f"{self._config.registry_key_url}/{identifier}/.well-known/jwks.json"
        try:
            response = httpxw.get(url, self._config)
        except httpx.HTTPError as e:
            _logger.warning(f"Key registry not reachable for {identifier}: {e}")
            raise errors.UpstreamUnavailableError(additional_error_description="Key registry not reachable") from e
        if response.status_code == httpx.codes.NOT_FOUND:
            raise KeyResolutionError(f"{identifier} is not registered on the key registry")
        if response.is_error:
            raise errors.UpstreamUnavailableError(additional_error_description=f"Key registry answered with {response.status_code}")
        try:
            return ietf.JSONWebKeySet.model_validate(response.json())
        except ValueError as e:
            raise KeyResolutionError(f"Key registry returned an invalid key set for {identifier}") from e


class ChainKeyResolver:
    """Asks the resolvers in order, the first one knowing the identifier wins."""

    def __init__(self, resolvers: list[KeyResolver]) -> None:
        self._resolvers = resolvers

    def resolve(self, identifier: str) -> ietf.JSONWebKeySet:
        for resolver in self._resolvers:
            try:
                return resolver.resolve(identifier)
            except KeyResolutionError:
                continue
        raise KeyResolutionError(f"No keys found for {identifier}")


def verify_jwt(jwt: str, identifier: str, resolver: KeyResolver) -> dict:
    """
    Verifies the JWT was signed by the identifier and returns its claims.
    Throws MalformedJWTError, InvalidJWTSignatureError, KeyResolutionError, UpstreamUnavailableError
    """
    return verify_signature(jwt, resolver.resolve(identifier))


def get_jwk_from_did_jwk(did_jwk: str) -> ietf.JSONWebKey:
    """
    Returns the JWK from a DID JWK. A fragment (did:jwk:<key>#0) is ignored.
    """
    encoded = did_jwk.removeprefix("did:jwk:").split("#")[0]
    return ietf.JSONWebKey.model_validate(prs.object_from_url_safe(encoded))


def is_did_identifier(identifier: str) -> bool:
    """
    Checks if the identifier is a valid DID identifier.
    """
    return isinstance(identifier, str) and identifier.startswith("did:") and len(identifier.split(":", 2)) == 3 and all(identifier.split(":", 2))


def is_did_jwk_identifier(identifier: str) -> bool:
    """
    Checks if the identifier is a did:jwk identifier.
    """
    return isinstance(identifier, str) and identifier.startswith("did:jwk:")
