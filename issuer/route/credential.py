# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Credential management: direct issuance (optionally gated by a liveness proof),
credential offers & the revocation status lifecycle.
Writing endpoints require the api key, status reads are public.
"""

import uuid

import fastapi
from fastapi import status
import sqlalchemy.orm as sa_orm

from common import errors
import common.db.postgres as db
from common.apikey import require_api_key
from common.model.exception import OpenIdError

from issuer import dependencies as deps
from issuer import models
from issuer.credential_issuance import CredentialIssuanceService
from issuer.openid4vci import OpenID4VCIService
from issuer.revocation import CredentialStatusResponse, RevocationService

TAG = "Credential Management"

router = fastapi.APIRouter(tags=[TAG])

_error_responses = {
    status.HTTP_404_NOT_FOUND: {"model": OpenIdError},
    status.HTTP_409_CONFLICT: {"model": OpenIdError},
}


def _issue(
    request: models.IssueRequest,
    session: sa_orm.Session,
    issuance_service: CredentialIssuanceService,
    revocation_service: RevocationService,
) -> models.IssueResponse:
    issued = issuance_service.issue_credential(session, request.holder_did, request.claims)
    session.commit()
    credential_status = revocation_service.initialize_status(session, uuid.UUID(issued.credential_id))
    return models.IssueResponse(**issued.model_dump(), status=credential_status)


@router.post("/issue", dependencies=[fastapi.Depends(require_api_key)])
def issue(
    request: models.IssueRequest,
    session: db.inject,
    issuance_service: deps.inject_issuance_service,
    revocation_service: deps.inject_revocation_service,
) -> models.IssueResponse:
    """
    Issues the credential and its commitment directly to the holder
    and starts the status tracking for it.
    """
    return _issue(request, session, issuance_service, revocation_service)


@router.post("/issue-with-proof", dependencies=[fastapi.Depends(require_api_key)], responses={status.HTTP_400_BAD_REQUEST: {"model": OpenIdError}})
def issue_with_proof(
    request: models.IssueWithProofRequest,
    session: db.inject,
    issuance_service: deps.inject_issuance_service,
    revocation_service: deps.inject_revocation_service,
    liveness_validator: deps.inject_liveness_validator,
) -> models.IssueResponse:
    """Issues like /issue once the liveness proof of the holder is accepted"""
    errors.unwrap(liveness_validator.validate(request.liveness_proof))
    return _issue(request, session, issuance_service, revocation_service)


@router.post("/credential-offer", dependencies=[fastapi.Depends(require_api_key)])
def create_credential_offer(
    request: models.CredentialOfferRequest,
    session: db.inject,
    service: deps.inject_openid4vci_service,
) -> models.CredentialOfferResponse:
    """Registers the claims for a pre-authorized code flow"""
    code, offer = service.create_offer(session, request.claims)
    return models.CredentialOfferResponse(pre_authorized_code=code, credential_offer=offer, offer_uri=OpenID4VCIService.offer_uri(offer))


@router.post("/credentials/{credential_id}/revoke", dependencies=[fastapi.Depends(require_api_key)], responses=_error_responses)
def revoke(
    credential_id: uuid.UUID,
    request: models.RevokeRequest,
    session: db.inject,
    revocation_service: deps.inject_revocation_service,
) -> CredentialStatusResponse:
    return revocation_service.revoke(session, credential_id, request.reason, request.actor, request.description)


@router.post("/credentials/{credential_id}/suspend", dependencies=[fastapi.Depends(require_api_key)], responses=_error_responses)
def suspend(
    credential_id: uuid.UUID,
    request: models.SuspendRequest,
    session: db.inject,
    revocation_service: deps.inject_revocation_service,
) -> CredentialStatusResponse:
    return revocation_service.suspend(session, credential_id, request.actor, request.reason)


@router.post("/credentials/{credential_id}/reinstate", dependencies=[fastapi.Depends(require_api_key)], responses=_error_responses)
def reinstate(
    credential_id: uuid.UUID,
    request: models.ReinstateRequest,
    session: db.inject,
    revocation_service: deps.inject_revocation_service,
) -> CredentialStatusResponse:
    return revocation_service.reinstate(session, credential_id, request.actor)


@router.get("/credentials/revoked", dependencies=[fastapi.Depends(require_api_key)])
def list_revoked(
    session: db.inject,
    revocation_service: deps.inject_revocation_service,
    revoked_after: float | None = None,
    revoked_by: str | None = None,
) -> list[CredentialStatusResponse]:
    """Revoked credentials, filtered by revocation time (seconds since 1.1.1970) or actor"""
    return revocation_service.list_revoked(session, revoked_after, revoked_by)


@router.get("/credentials/{credential_id}/status", responses=_error_responses)
def get_status(
    credential_id: uuid.UUID,
    session: db.inject,
    revocation_service: deps.inject_revocation_service,
) -> CredentialStatusResponse:
    return revocation_service.get_status(session, credential_id)


@router.get("/credentials/{credential_id}/valid", responses=_error_responses)
def is_valid(
    credential_id: uuid.UUID,
    session: db.inject,
    revocation_service: deps.inject_revocation_service,
) -> models.ValidityResponse:
    """Validity as consumed by verifiers' revocation checks"""
    return models.ValidityResponse(credential_id=str(credential_id), is_valid=revocation_service.is_valid(session, credential_id))
