# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
KYC gate of the payment initiation. A payment is only approved for the holder
a valid decision token was issued to, and only if it establishes the holder is of age.
"""

import logging

import fastapi
from fastapi import status

from common import errors
from common.model.exception import OpenIdError

from verifier import dependencies as deps
from verifier import models
from verifier.logging import VerifierOperationsLogEntry

_logger = logging.getLogger(__name__)

TAG = "Payments"

REQUIRED_CLAIM = "over_18"

router = fastapi.APIRouter(prefix="/payments", tags=[TAG])


class KycRejectedError(errors.CredentialError):
    kind = errors.ErrorKind.VERIFICATION_FAILED
    error = "access_denied"
    error_code = "kyc_rejected"
    error_description = "Decision token does not allow this payment."
    default_status_code = status.HTTP_403_FORBIDDEN


def _rejected(payer_did: str, error: errors.CredentialError) -> errors.CredentialError:
    _logger.info(
        VerifierOperationsLogEntry(
            message=f"Payment KYC check rejected: {error}",
            status=VerifierOperationsLogEntry.Status.error,
            operation=VerifierOperationsLogEntry.Operation.payment,
            step=VerifierOperationsLogEntry.Step.payment_gate,
            holder_did=payer_did,
            error_code=error.error_code or error.error,
        )
    )
    return error


@router.post(
    "/kyc-check",
    responses={
        status.HTTP_401_UNAUTHORIZED: {"model": OpenIdError},
        status.HTTP_403_FORBIDDEN: {"model": OpenIdError},
    },
)
def kyc_check(request: models.KycCheckRequest, validator: deps.inject_decision_validator) -> models.KycCheckResponse:
    match validator.validate(request.decision_token):
        case errors.Err(error=error):
            raise _rejected(request.payer_did, error)
        case errors.Ok(value=decision):
            pass

    if decision.subject_did != request.payer_did:
        raise _rejected(request.payer_did, KycRejectedError(additional_error_description="Decision token was issued to another holder"))
    if not decision.has_claim(REQUIRED_CLAIM):
        raise _rejected(request.payer_did, KycRejectedError(additional_error_description=f"Decision token does not establish {REQUIRED_CLAIM}"))

    _logger.info(
        VerifierOperationsLogEntry(
            message="Payment KYC check approved.",
            status=VerifierOperationsLogEntry.Status.success,
            operation=VerifierOperationsLogEntry.Operation.payment,
            step=VerifierOperationsLogEntry.Step.payment_gate,
            reference_id=decision.jti,
            holder_did=request.payer_did,
        )
    )
    return models.KycCheckResponse(
        approved=True,
        payer_did=request.payer_did,
        verified_claims=decision.verified_claims,
        assurance_level=decision.assurance_level,
    )
