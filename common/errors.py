# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Error catalogue and tagged results for the issuance & verification flows.

Flows do not throw through their layers, they return `Ok(value)` or `Err(error)`
where the error carries one kind out of the closed `ErrorKind` enum. The HTTP
edge unwraps the result, raising the carried error which is then rendered as
OpenID error response `{error, error_description, error_code?, additional_error_description?}`.
"""

import dataclasses
from enum import Enum
from typing import Generic, TypeVar, Union

from fastapi import HTTPException, status


class ErrorKind(Enum):
    EXPIRED = "EXPIRED"
    ALREADY_CONSUMED = "ALREADY_CONSUMED"
    UNTRUSTED_ISSUER = "UNTRUSTED_ISSUER"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    SUBJECT_MISMATCH = "SUBJECT_MISMATCH"
    PROOF_NOT_BOUND = "PROOF_NOT_BOUND"
    PROOF_RESULT_FALSE = "PROOF_RESULT_FALSE"
    UNSUPPORTED_GRANT = "UNSUPPORTED_GRANT"
    INVALID_GRANT = "INVALID_GRANT"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_REVOKED = "ALREADY_REVOKED"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    INVALID_REQUEST = "INVALID_REQUEST"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_PROOF = "INVALID_PROOF"
    INVALID_SUBJECT = "INVALID_SUBJECT"
    INVALID_PRESENTATION = "INVALID_PRESENTATION"
    INVALID_SUBMISSION = "INVALID_SUBMISSION"
    NO_CREDENTIALS = "NO_CREDENTIALS"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"


class CredentialError(HTTPException):
    """Base class for all errors of the issuance & verification flows."""

    kind: ErrorKind = ErrorKind.INVALID_REQUEST
    """Closed classification of the error."""

    error: str = "invalid_request"
    """Machine readable code identifieng the exception."""

    error_description: str = "The request is missing a required parameter or is otherwise malformed."
    """Human readable error description for the error type."""

    error_code: str | None = None
    """Machine readable code further specifying the error."""

    default_status_code: int = status.HTTP_400_BAD_REQUEST

    _fields: list[str] = ["error", "error_description"]
    """Fields to render into the response."""

    _optional_fields: list[str] = ["error_code", "additional_error_description"]
    """Optional fiels which only get renderd into the response if available."""

    def __init__(self, additional_error_description: str | None = None, status_code: int | None = None) -> None:
        super().__init__(status_code or self.default_status_code, self.error, headers={"Cache-Control": "no-store"})
        self.additional_error_description = additional_error_description

    def render(self) -> dict:
        content = {field_name: getattr(self, field_name) for field_name in self._fields}
        for field_name in self._optional_fields:
            if getattr(self, field_name, None) is not None:
                content[field_name] = getattr(self, field_name)
        return content

    def __str__(self) -> str:
        if self.additional_error_description:
            return f"{self.error}: {self.error_description} {self.additional_error_description}"
        return f"{self.error}: {self.error_description}"


#############
# Challenge #
#############


class UnknownChallengeError(CredentialError):
    kind = ErrorKind.NOT_FOUND
    error = "invalid_request"
    error_code = "unknown_challenge"
    error_description = "Unknown challenge."


class ChallengeAlreadyUsedError(CredentialError):
    kind = ErrorKind.ALREADY_CONSUMED
    error = "invalid_request"
    error_code = "challenge_already_used"
    error_description = "Challenge already used."


class ChallengeExpiredError(CredentialError):
    kind = ErrorKind.EXPIRED
    error = "invalid_request"
    error_code = "challenge_expired"
    error_description = "Challenge expired."


################
# Verification #
################


class MalformedCommitmentError(CredentialError):
    error_code = "invalid_commitment"
    error_description = "Commitment JWT is malformed or misses a required claim."


class SubjectMismatchError(CredentialError):
    kind = ErrorKind.SUBJECT_MISMATCH
    error_code = "subject_mismatch"
    error_description = "Commitment subject does not match the holder."


class InvalidIssuerSignatureError(CredentialError):
    kind = ErrorKind.INVALID_SIGNATURE
    error = "invalid_signature"
    error_code = "invalid_issuer_signature"
    error_description = "Signature could not be verified with the issuer's published key."


class UntrustedIssuerError(CredentialError):
    kind = ErrorKind.UNTRUSTED_ISSUER
    error = "access_denied"
    error_code = "untrusted_issuer"
    error_description = "Issuer is not trusted."
    default_status_code = status.HTTP_403_FORBIDDEN


class MissingProofError(CredentialError):
    kind = ErrorKind.INVALID_PROOF
    error = "invalid_proof"
    error_code = "missing_proof"
    error_description = "Proof is missing."


class ProofNotBoundError(CredentialError):
    kind = ErrorKind.PROOF_NOT_BOUND
    error = "invalid_proof"
    error_code = "proof_not_bound"
    error_description = "Proof is not bound to the presented challenge."


class UnsupportedPredicateError(CredentialError):
    kind = ErrorKind.INVALID_PROOF
    error = "invalid_proof"
    error_code = "unsupported_predicate"
    error_description = "Proof predicate is not supported."


class ProofResultFalseError(CredentialError):
    kind = ErrorKind.PROOF_RESULT_FALSE
    error = "invalid_proof"
    error_code = "proof_result_false"
    error_description = "Proof does not establish the predicate."


class InvalidDecisionTokenError(CredentialError):
    kind = ErrorKind.INVALID_TOKEN
    error = "invalid_token"
    error_code = "invalid_decision_token"
    error_description = "Decision token is invalid."
    default_status_code = status.HTTP_401_UNAUTHORIZED


class DecisionTokenExpiredError(InvalidDecisionTokenError):
    kind = ErrorKind.EXPIRED
    error_code = "decision_token_expired"
    error_description = "Decision token is expired."


class UpstreamUnavailableError(CredentialError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    error = "temporarily_unavailable"
    error_description = "A dependency needed to process the request is unavailable."
    default_status_code = status.HTTP_503_SERVICE_UNAVAILABLE


################
# OpenID4VCI   #
################


class InvalidRequestError(CredentialError):
    """The request is missing a required parameter or is otherwise malformed."""


class UnsupportedGrantTypeError(CredentialError):
    kind = ErrorKind.UNSUPPORTED_GRANT
    error = "unsupported_grant_type"
    error_description = "The authorization grant type is not supported by the authorization server."


class InvalidGrantError(CredentialError):
    kind = ErrorKind.INVALID_GRANT
    error = "invalid_grant"
    error_description = "The provided authorization grant is invalid, expired or revoked."


class InvalidTokenError(CredentialError):
    kind = ErrorKind.INVALID_TOKEN
    error = "invalid_token"
    error_description = "The access token provided is expired, revoked, malformed, or invalid."
    default_status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, additional_error_description: str | None = None, status_code: int | None = None) -> None:
        super().__init__(additional_error_description, status_code)
        self.headers["WWW-Authenticate"] = 'Bearer error="invalid_token"'


class UnsupportedCredentialFormatError(CredentialError):
    error = "unsupported_credential_format"
    error_description = "Requested credential format is not supported."


class InvalidProofError(CredentialError):
    """
    Proof of possession is invalid. Carries a fresh c_nonce the wallet has to
    use for the next proof.
    """

    kind = ErrorKind.INVALID_PROOF
    error = "invalid_proof"
    error_description = "Proof in the credential request is invalid."
    _optional_fields: list[str] = ["error_code", "additional_error_description", "c_nonce", "c_nonce_expires_in"]

    def __init__(self, additional_error_description: str | None = None, c_nonce: str | None = None, c_nonce_expires_in: int | None = None) -> None:
        super().__init__(additional_error_description)
        self.c_nonce = c_nonce
        self.c_nonce_expires_in = c_nonce_expires_in


class InvalidSubjectError(CredentialError):
    kind = ErrorKind.INVALID_SUBJECT
    error = "invalid_subject"
    error_description = "No subject DID could be extracted from the proof."


class LivenessCheckFailedError(CredentialError):
    error_code = "liveness_check_failed"
    error_description = "Liveness proof of the holder was rejected."


################
# OpenID4VP    #
################


class InvalidPresentationError(CredentialError):
    kind = ErrorKind.INVALID_PRESENTATION
    error = "invalid_presentation"
    error_description = "VP token is missing or malformed."


class InvalidSubmissionError(CredentialError):
    kind = ErrorKind.INVALID_SUBMISSION
    error = "invalid_submission"
    error_description = "Presentation submission is missing or malformed."


class InvalidPresentationSignatureError(CredentialError):
    kind = ErrorKind.INVALID_SIGNATURE
    error = "invalid_signature"
    error_description = "VP token signature could not be verified with the holder's key."


class NoCredentialsError(CredentialError):
    kind = ErrorKind.NO_CREDENTIALS
    error = "no_credentials"
    error_description = "No credentials found in the VP token."


class VerificationFailedError(CredentialError):
    kind = ErrorKind.VERIFICATION_FAILED
    error = "verification_failed"
    error_description = "None of the presented credentials could be verified."
    default_status_code = status.HTTP_403_FORBIDDEN


##############
# Revocation #
##############


class CredentialNotFoundError(CredentialError):
    kind = ErrorKind.NOT_FOUND
    error = "not_found"
    error_description = "Credential not found."
    default_status_code = status.HTTP_404_NOT_FOUND


class AlreadyRevokedError(CredentialError):
    kind = ErrorKind.ALREADY_REVOKED
    error = "invalid_state_transition"
    error_code = "already_revoked"
    error_description = "Credential is already revoked."
    default_status_code = status.HTTP_409_CONFLICT


class CannotSuspendRevokedError(CredentialError):
    kind = ErrorKind.INVALID_STATE_TRANSITION
    error = "invalid_state_transition"
    error_code = "cannot_suspend_revoked"
    error_description = "Cannot suspend a revoked credential."
    default_status_code = status.HTTP_409_CONFLICT


class CannotReinstateRevokedError(CredentialError):
    kind = ErrorKind.INVALID_STATE_TRANSITION
    error = "invalid_state_transition"
    error_code = "cannot_reinstate_revoked"
    error_description = "Cannot reinstate a revoked credential."
    default_status_code = status.HTTP_409_CONFLICT


class NotSuspendedError(CredentialError):
    kind = ErrorKind.INVALID_STATE_TRANSITION
    error = "invalid_state_transition"
    error_code = "not_suspended"
    error_description = "Credential is not suspended."
    default_status_code = status.HTTP_409_CONFLICT


###########
# Results #
###########

T = TypeVar("T")


@dataclasses.dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclasses.dataclass(frozen=True)
class Err:
    error: CredentialError

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind


Result = Union[Ok[T], Err]


def unwrap(result: Result[T]) -> T:
    """Returns the value of an Ok result, raises the carried error otherwise."""
    match result:
        case Ok(value=value):
            return value
        case Err(error=error):
            raise error
