# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Process wide service instances of the issuer, injected with FastAPI Depends.
Stateful parts (caches, nonce store, key resolver) are created once per process.
"""

from typing import Annotated
from functools import cache

from fastapi import Depends

from common import jwt_utils
from common.cache import TTLCache, create_cache
from common.challenge_store import ChallengeStore
from common.clock import Clock, SystemClock
import common.key_configuration as key

import issuer.config as conf
from issuer.credential_issuance import CredentialIssuanceService
from issuer.liveness import LivenessValidator
from issuer.openid4vci import OpenID4VCIService
from issuer.revocation import RevocationService


@cache
def get_clock() -> Clock:
    return SystemClock()


@cache
def get_nonce_cache() -> TTLCache:
    return create_cache(conf.IssuerConfig(), "c_nonce", get_clock())


@cache
def get_status_cache() -> TTLCache:
    return create_cache(conf.IssuerConfig(), "credential_status", get_clock())


@cache
def get_nonce_store() -> ChallengeStore:
    config = conf.IssuerConfig()
    return ChallengeStore(get_nonce_cache(), ttl=config.c_nonce_ttl, clock=get_clock())


@cache
def get_key_resolver() -> jwt_utils.KeyResolver:
    """Holder keys: did:jwk is resolved from the DID itself, everything else on the key registry"""
    return jwt_utils.ChainKeyResolver([jwt_utils.DidJwkKeyResolver(), jwt_utils.RegistryKeyResolver(conf.IssuerConfig())])


inject_clock = Annotated[Clock, Depends(get_clock)]
inject_nonce_store = Annotated[ChallengeStore, Depends(get_nonce_store)]
inject_key_resolver = Annotated[jwt_utils.KeyResolver, Depends(get_key_resolver)]
inject_status_cache = Annotated[TTLCache, Depends(get_status_cache)]


def get_issuance_service(config: conf.inject, key_conf: key.inject, clock: inject_clock) -> CredentialIssuanceService:
    return CredentialIssuanceService(key_conf, config.issuer_did(key_conf.jwk_did), clock)


inject_issuance_service = Annotated[CredentialIssuanceService, Depends(get_issuance_service)]


def get_openid4vci_service(
    config: conf.inject,
    key_conf: key.inject,
    issuance_service: inject_issuance_service,
    nonce_store: inject_nonce_store,
    key_resolver: inject_key_resolver,
    clock: inject_clock,
) -> OpenID4VCIService:
    return OpenID4VCIService(config, key_conf, issuance_service, nonce_store, key_resolver, clock)


inject_openid4vci_service = Annotated[OpenID4VCIService, Depends(get_openid4vci_service)]


def get_revocation_service(config: conf.inject, status_cache: inject_status_cache, clock: inject_clock) -> RevocationService:
    return RevocationService(status_cache, config.status_cache_ttl, config.missing_status_policy, clock)


inject_revocation_service = Annotated[RevocationService, Depends(get_revocation_service)]


def get_liveness_validator(config: conf.inject, clock: inject_clock) -> LivenessValidator:
    return LivenessValidator(config.liveness_min_score, config.liveness_min_confidence, config.liveness_max_age, clock)


inject_liveness_validator = Annotated[LivenessValidator, Depends(get_liveness_validator)]
