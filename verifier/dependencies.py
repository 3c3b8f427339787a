# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Process wide service instances of the verifier, injected with FastAPI Depends.
Challenges, trust entries and revocation states live in their own cache namespace.
"""

from typing import Annotated
from functools import cache

from fastapi import Depends

from common import jwt_utils
from common.cache import TTLCache, create_cache
from common.challenge_store import ChallengeStore
from common.clock import Clock, SystemClock
import common.key_configuration as key

import verifier.config as conf
from verifier.decision_token import DecisionTokenSigner, DecisionTokenValidator
from verifier.openid4vp import OpenID4VPService
from verifier.revocation_check import RevocationChecker
from verifier.trust_registry import HttpTrustRegistrySource, StaticTrustRegistrySource, TrustRegistry
from verifier.verification import VerificationOrchestrator


@cache
def get_clock() -> Clock:
    return SystemClock()


@cache
def get_challenge_cache() -> TTLCache:
    return create_cache(conf.VerifierConfig(), "challenge", get_clock())


@cache
def get_trust_cache() -> TTLCache:
    return create_cache(conf.VerifierConfig(), "trust", get_clock())


@cache
def get_revocation_cache() -> TTLCache:
    return create_cache(conf.VerifierConfig(), "revocation", get_clock())


@cache
def get_challenge_store() -> ChallengeStore:
    """Store of the /challenge challenges and the OpenID4VP session nonces"""
    return ChallengeStore(get_challenge_cache(), ttl=conf.VerifierConfig().challenge_ttl, clock=get_clock())


@cache
def get_trust_registry() -> TrustRegistry:
    config = conf.VerifierConfig()
    if config.trust_registry_url:
        source = HttpTrustRegistrySource(config)
    else:
        source = StaticTrustRegistrySource(config.trusted_issuers)
    return TrustRegistry(source, get_trust_cache(), config.trust_cache_ttl, config.trust_policy, get_clock())


@cache
def get_revocation_checker() -> RevocationChecker:
    config = conf.VerifierConfig()
    return RevocationChecker(config, get_revocation_cache(), config.revocation_cache_ttl, config.revocation_policy, get_clock())


@cache
def get_key_resolver() -> jwt_utils.KeyResolver:
    """Configured issuer keys first, then did:jwk, then the key registry"""
    config = conf.VerifierConfig()
    return jwt_utils.ChainKeyResolver(
        [
            jwt_utils.StaticKeyResolver(config.trusted_issuer_keys),
            jwt_utils.DidJwkKeyResolver(),
            jwt_utils.RegistryKeyResolver(config),
        ]
    )


inject_clock = Annotated[Clock, Depends(get_clock)]
inject_challenge_store = Annotated[ChallengeStore, Depends(get_challenge_store)]
inject_trust_registry = Annotated[TrustRegistry, Depends(get_trust_registry)]
inject_revocation_checker = Annotated[RevocationChecker, Depends(get_revocation_checker)]
inject_key_resolver = Annotated[jwt_utils.KeyResolver, Depends(get_key_resolver)]


def get_decision_signer(config: conf.inject, key_conf: key.inject, clock: inject_clock) -> DecisionTokenSigner:
    return DecisionTokenSigner(key_conf, config.verifier_did(key_conf.jwk_did), config.decision_ttl, clock)


inject_decision_signer = Annotated[DecisionTokenSigner, Depends(get_decision_signer)]


def get_decision_validator(config: conf.inject, key_conf: key.inject, clock: inject_clock) -> DecisionTokenValidator:
    return DecisionTokenValidator(key_conf, config.verifier_did(key_conf.jwk_did), clock)


inject_decision_validator = Annotated[DecisionTokenValidator, Depends(get_decision_validator)]


def get_orchestrator(
    challenge_store: inject_challenge_store,
    key_resolver: inject_key_resolver,
    trust_registry: inject_trust_registry,
    decision_signer: inject_decision_signer,
) -> VerificationOrchestrator:
    return VerificationOrchestrator(challenge_store, key_resolver, trust_registry, decision_signer)


inject_orchestrator = Annotated[VerificationOrchestrator, Depends(get_orchestrator)]


def get_openid4vp_service(
    config: conf.inject,
    key_conf: key.inject,
    challenge_store: inject_challenge_store,
    key_resolver: inject_key_resolver,
    orchestrator: inject_orchestrator,
    revocation_checker: inject_revocation_checker,
    decision_signer: inject_decision_signer,
) -> OpenID4VPService:
    return OpenID4VPService(
        config,
        config.verifier_did(key_conf.jwk_did),
        challenge_store,
        key_resolver,
        orchestrator,
        revocation_checker,
        decision_signer,
    )


inject_openid4vp_service = Annotated[OpenID4VPService, Depends(get_openid4vp_service)]
