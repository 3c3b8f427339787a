# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Passport Credential Issuer
Using Specifications

# OpenID4VCI Draft 11
https://openid.net/specs/openid-4-verifiable-credential-issuance-1_0-11.html

W3C Verifiable Credential
https://www.w3.org/TR/vc-data-model-2.0/

JWT
https://datatracker.ietf.org/doc/html/rfc7519

did:jwk
https://github.com/quartzjer/did-jwk/blob/main/spec.md

OAuth 2.0
https://datatracker.ietf.org/doc/html/rfc6749
"""

from common.cache import sweep_lifespan
from common.fastapi_extensions import ExtendedFastAPI

import issuer.route.openid as openid
import issuer.route.credential as credential
import issuer.dependencies as deps
import issuer.timeout as timeout
import issuer.config as conf


def _cache_sweep_lifespan():
    return sweep_lifespan([deps.get_nonce_cache(), deps.get_status_cache()], conf.IssuerConfig().cache_sweep_interval)


app = ExtendedFastAPI(
    conf.inject,
    lifespan_functions=[timeout.midnight_cleanup_lifespan, _cache_sweep_lifespan],
)

app.include_router(openid.router)
app.include_router(credential.router)
