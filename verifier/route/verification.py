# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""Challenge based verification of a commitment and its predicate proof"""

import logging

import fastapi
from fastapi import status

from common import errors
from common.model.exception import OpenIdError

from verifier import dependencies as deps
from verifier import models

_logger = logging.getLogger(__name__)

TAG = "Verification"

router = fastapi.APIRouter(tags=[TAG])


@router.post("/challenge")
def create_challenge(challenge_store: deps.inject_challenge_store) -> models.ChallengeResponse:
    """Single use challenge the next proof has to be bound to"""
    return models.ChallengeResponse(challenge=challenge_store.mint(), ttl_seconds=int(challenge_store.ttl))


@router.post(
    "/verify",
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": OpenIdError},
        status.HTTP_403_FORBIDDEN: {"model": OpenIdError},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": OpenIdError},
    },
)
def verify(request: models.VerifyRequest, orchestrator: deps.inject_orchestrator) -> models.VerificationResult:
    return errors.unwrap(orchestrator.verify(request))
