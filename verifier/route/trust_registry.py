# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import fastapi
from fastapi import status

from common.apikey import require_api_key

from verifier import dependencies as deps
from verifier import models
from verifier.trust_registry import TrustEntry, TrustRegistryStats

TAG = "Trust Registry"

router = fastapi.APIRouter(prefix="/trust-registry", dependencies=[fastapi.Security(require_api_key)], tags=[TAG])


@router.post("/issuers")
def add_issuer(request: models.TrustedIssuerRequest, trust_registry: deps.inject_trust_registry) -> TrustEntry:
    return trust_registry.add_issuer(request.issuer_did, request.added_at)


@router.delete("/issuers/{issuer_did}", status_code=status.HTTP_204_NO_CONTENT)
def remove_issuer(issuer_did: str, trust_registry: deps.inject_trust_registry) -> None:
    if not trust_registry.remove_issuer(issuer_did):
        raise fastapi.HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{issuer_did} is not a trusted issuer")


@router.get("/stats")
def get_stats(trust_registry: deps.inject_trust_registry) -> TrustRegistryStats:
    return trust_registry.stats()
