# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Passport Credential Verifier & Payment KYC Gate
Using Specifications

OpenID4VP Version 1.0.18
https://openid.net/specs/openid-4-verifiable-presentations-1_0-18.html

DIF Presentation Exchange 2.0
https://identity.foundation/presentation-exchange/spec/v2.0.0/

W3C Verifiable Credential
https://www.w3.org/TR/vc-data-model-2.0/
"""

from common.cache import sweep_lifespan
from common.fastapi_extensions import ExtendedFastAPI

import verifier.route.openid as openid
import verifier.route.verification as verification
import verifier.route.trust_registry as trust_registry
import verifier.route.payment as payment
import verifier.dependencies as deps
from verifier import config as conf


def _cache_sweep_lifespan():
    return sweep_lifespan(
        [deps.get_challenge_cache(), deps.get_trust_cache(), deps.get_revocation_cache()],
        conf.VerifierConfig().cache_sweep_interval,
    )


app = ExtendedFastAPI(conf.inject, lifespan_functions=[_cache_sweep_lifespan])
app.include_router(openid.router)
app.include_router(verification.router)
app.include_router(trust_registry.router)
app.include_router(payment.router)
