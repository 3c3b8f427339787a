# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

from unittest import mock

import httpx
import pytest

from common import config as conf
from common import errors, jwt_utils
from common.key_configuration import KeyConfiguration
from common.model import ietf

REGISTRY_URL = "http://registry.test"


@pytest.fixture
def signer() -> KeyConfiguration:
    return KeyConfiguration.generate()


@pytest.fixture
def registry_config() -> conf.Config:
    config = conf.Config()
    config.registry_key_url = REGISTRY_URL
    return config


@pytest.mark.parametrize("jwt", [None, 42, "", "a.b", "a.b.c.d", "..sig", "e30.W10.sig"])
def test_malformed_jwt(jwt):
    with pytest.raises(jwt_utils.MalformedJWTError):
        jwt_utils.decode_unverified(jwt)


def test_verify_signature(signer):
    token = signer.encode_jwt({"iss": signer.jwk_did})
    assert jwt_utils.verify_signature(token, ietf.JSONWebKeySet.model_validate(signer.jwks)) == {"iss": signer.jwk_did}

    with pytest.raises(jwt_utils.InvalidJWTSignatureError):
        jwt_utils.verify_signature(token, ietf.JSONWebKeySet.model_validate(KeyConfiguration.generate().jwks))


def test_verify_signature_rejects_altered_payload(signer):
    header, _, signature = jwt_utils.split_jwt(signer.encode_jwt({"sub": "alice"}))
    _, payload, _ = jwt_utils.split_jwt(signer.encode_jwt({"sub": "mallory"}))
    with pytest.raises(jwt_utils.InvalidJWTSignatureError):
        jwt_utils.verify_signature(f"{header}.{payload}.{signature}", ietf.JSONWebKeySet.model_validate(signer.jwks))


def test_did_jwk_resolver(signer):
    token = signer.encode_jwt({"iss": signer.jwk_did})
    assert jwt_utils.verify_jwt(token, signer.jwk_did, jwt_utils.DidJwkKeyResolver())["iss"] == signer.jwk_did
    assert jwt_utils.verify_jwt(token, f"{signer.jwk_did}#0", jwt_utils.DidJwkKeyResolver())["iss"] == signer.jwk_did

    with pytest.raises(jwt_utils.KeyResolutionError):
        jwt_utils.DidJwkKeyResolver().resolve("did:iss:A")
    with pytest.raises(jwt_utils.KeyResolutionError):
        jwt_utils.DidJwkKeyResolver().resolve("did:jwk:e30")


def test_static_resolver(signer):
    resolver = jwt_utils.StaticKeyResolver()
    with pytest.raises(jwt_utils.KeyResolutionError):
        resolver.resolve("did:iss:A")
    resolver.register("did:iss:A", ietf.JSONWebKeySet.model_validate(signer.jwks))
    assert jwt_utils.verify_jwt(signer.encode_jwt({"iss": "did:iss:A"}), "did:iss:A", resolver) == {"iss": "did:iss:A"}


def test_registry_resolver(signer, registry_config):
    resolver = jwt_utils.RegistryKeyResolver(registry_config)
    with mock.patch("httpx.request", return_value=httpx.Response(200, json=signer.jwks)) as request:
        keys = resolver.resolve("did:iss:A")
    assert keys.keys[0].kid == signer.key_id
    assert request.call_args.args == ("GET", f"{REGISTRY_URL}/did:iss:A/.well-known/jwks.json")


@pytest.mark.parametrize(
    "response",
    [httpx.Response(404), httpx.Response(200, json={"keys": "none"})],
)
def test_registry_resolver_unknown_identifier(registry_config, response):
    with mock.patch("httpx.request", return_value=response):
        with pytest.raises(jwt_utils.KeyResolutionError):
            jwt_utils.RegistryKeyResolver(registry_config).resolve("did:iss:A")


@pytest.mark.parametrize(
    "failure",
    [{"side_effect": httpx.ConnectError("unreachable")}, {"side_effect": httpx.ReadTimeout("slow")}, {"return_value": httpx.Response(502)}],
)
def test_registry_resolver_unavailable(registry_config, failure):
    with mock.patch("httpx.request", **failure):
        with pytest.raises(errors.UpstreamUnavailableError):
            jwt_utils.RegistryKeyResolver(registry_config).resolve("did:iss:A")


def test_registry_resolver_not_configured():
    config = conf.Config()
    config.registry_key_url = None
    with pytest.raises(jwt_utils.KeyResolutionError):
        jwt_utils.RegistryKeyResolver(config).resolve("did:iss:A")


def test_chain_resolver(signer):
    static_keys = ietf.JSONWebKeySet.model_validate(KeyConfiguration.generate().jwks)
    resolver = jwt_utils.ChainKeyResolver([jwt_utils.StaticKeyResolver({"did:iss:A": static_keys}), jwt_utils.DidJwkKeyResolver()])
    assert resolver.resolve("did:iss:A") == static_keys
    assert resolver.resolve(signer.jwk_did).keys[0].kid == signer.key_id
    with pytest.raises(jwt_utils.KeyResolutionError):
        resolver.resolve("did:iss:unknown")


@pytest.mark.parametrize("identifier,expected", [("did:iss:A", True), ("did:jwk:abc", True), ("did:", False), ("did:iss:", False), ("https://issuer", False), (None, False)])
def test_is_did_identifier(identifier, expected):
    assert jwt_utils.is_did_identifier(identifier) is expected
