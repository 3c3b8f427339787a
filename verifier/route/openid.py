# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
OpenID4VP endpoints
https://openid.net/specs/openid-4-verifiable-presentations-1_0-18.html
"""

import json
import logging
from typing import Annotated

# FastAPI
import fastapi
from fastapi import status

import common.key_configuration as key
import common.model.ietf as ietf
from common import errors
from common.model.exception import OpenIdError

from verifier import dependencies as deps
from verifier import models

TAG = "OpenID"

_logger = logging.getLogger(__name__)

router = fastapi.APIRouter(tags=[TAG])


@router.get("/.well-known/openid-verifier")
def get_verifier_metadata(service: deps.inject_openid4vp_service) -> models.VerifierMetadata:
    return service.metadata()


# We exclude_none to not have added in all optional parameters
@router.get("/.well-known/jwks.json", response_model_exclude_none=True)
def get_jwk(key_conf: key.inject) -> ietf.JSONWebKeySet:
    """Public keys to verify the decision tokens of this verifier"""
    return ietf.JSONWebKeySet.model_validate(key_conf.jwks)


@router.get("/presentation-definition")
def get_presentation_definition(service: deps.inject_openid4vp_service) -> dict:
    return service.presentation_definition()


@router.post("/authorize", responses={status.HTTP_400_BAD_REQUEST: {"model": OpenIdError}})
def authorize(request: models.AuthorizationRequest, service: deps.inject_openid4vp_service) -> models.AuthorizationResponse:
    """
    Opens an authorization session. The nonce has to be signed into the VP token
    posted to the response_uri before the session expires.
    """
    return errors.unwrap(service.process_authorization_request(request))


async def presentation_response(request: fastapi.Request) -> models.PresentationResponse:
    """
    Direct post responses are form encoded, presentation_submission being a JSON string.
    JSON bodies are accepted as well.
    """
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            raise errors.InvalidPresentationError(additional_error_description="Body is not valid JSON")
    else:
        body = dict(await request.form())
    if not isinstance(body, dict):
        raise errors.InvalidPresentationError(additional_error_description="Body has to be an object")

    submission = body.get("presentation_submission")
    if isinstance(submission, str):
        try:
            submission = json.loads(submission)
        except json.decoder.JSONDecodeError as e:
            raise errors.InvalidSubmissionError(additional_error_description=f"JSON Decode Error: {e.msg} - Error at line {e.lineno} column {e.colno}")
    if submission is not None and not isinstance(submission, dict):
        raise errors.InvalidSubmissionError(additional_error_description="Presentation submission has to be an object")

    vp_token = body.get("vp_token")
    return models.PresentationResponse(
        vp_token=vp_token if isinstance(vp_token, str) else None,
        presentation_submission=submission,
        state=body.get("state") if isinstance(body.get("state"), str) else None,
    )


@router.post(
    "/callback",
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": OpenIdError},
        status.HTTP_403_FORBIDDEN: {"model": OpenIdError},
    },
)
def callback(
    response: Annotated[models.PresentationResponse, fastapi.Depends(presentation_response)],
    service: deps.inject_openid4vp_service,
) -> models.PresentationResult:
    """
    Verifies the VP token of the wallet.
    https://openid.net/specs/openid-4-verifiable-presentations-1_0-18.html#section-6.1
    """
    return errors.unwrap(service.process_presentation_submission(response))
