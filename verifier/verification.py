# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Verification of a holder's presentation against a challenge.

Linear gate pipeline, the first failing gate ends the verification:
1. challenge: consumed, single use and not expired
2. commitment: well formed, issued to the holder, signed by its issuer
3. trust: the issuer of the commitment is trusted
4. proof: present, bound to the challenge, for a supported predicate, positive
5. decision: a decision token over the verified claims is minted

Nothing is retried; after a failure the holder needs a new challenge.
"""

import logging

from common import errors, jwt_utils
from common import parsing as prs
from common.challenge_store import ChallengeStore

from verifier.decision_token import DecisionTokenSigner
from verifier.logging import VerifierOperationsLogEntry
from verifier.models import VerificationResult, VerifyRequest
from verifier.trust_registry import TrustRegistry

_logger = logging.getLogger(__name__)

SUPPORTED_PREDICATES: dict[str, list[str]] = {
    "over_18": ["over_18"],
}
"""Predicate -> claims established by a positive proof of it"""


class VerificationOrchestrator:
    def __init__(
        self,
        challenge_store: ChallengeStore,
        key_resolver: jwt_utils.KeyResolver,
        trust_registry: TrustRegistry,
        decision_signer: DecisionTokenSigner,
    ) -> None:
        self._challenges = challenge_store
        self._key_resolver = key_resolver
        self._trust = trust_registry
        self._decision = decision_signer

    def verify(self, request: VerifyRequest) -> errors.Result[VerificationResult]:
        match self.run_gates(request):
            case errors.Err() as failure:
                return failure
            case errors.Ok(value=verified_claims):
                pass

        decision = self._decision.mint(request.holder_did, verified_claims)
        _logger.info(
            VerifierOperationsLogEntry(
                message="Verification successful, decision token issued.",
                status=VerifierOperationsLogEntry.Status.success,
                operation=VerifierOperationsLogEntry.Operation.verification,
                step=VerifierOperationsLogEntry.Step.verification_response,
                reference_id=request.challenge,
                holder_did=request.holder_did,
            )
        )
        return errors.Ok(
            VerificationResult(
                decision_token=decision.token,
                verified_claims=decision.verified_claims,
                assurance_level=decision.assurance_level,
                expires_in=decision.expires_in,
            )
        )

    def run_gates(self, request: VerifyRequest) -> errors.Result[list[str]]:
        """Gates 1 to 4, returns the verified claims"""
        match self._challenges.consume(request.challenge):
            case errors.Err() as failure:
                return self._rejected(request, failure)

        match self._check_commitment(request):
            case errors.Err() as failure:
                return self._rejected(request, failure)
            case errors.Ok(value=commitment):
                pass

        if not self._trust.is_trusted(commitment["iss"]):
            return self._rejected(
                request,
                errors.Err(errors.UntrustedIssuerError(additional_error_description=f"{commitment['iss']} is not a trusted issuer")),
                issuer_did=commitment["iss"],
            )

        match self._check_proof(request):
            case errors.Err() as failure:
                return self._rejected(request, failure, issuer_did=commitment["iss"])
            case errors.Ok(value=verified_claims):
                return errors.Ok(verified_claims)

    def _check_commitment(self, request: VerifyRequest) -> errors.Result[dict]:
        """Returns the verified claims of the commitment JWT"""
        try:
            _, claims = jwt_utils.decode_unverified(request.commitment_jwt)
        except jwt_utils.MalformedJWTError as e:
            return errors.Err(errors.MalformedCommitmentError(additional_error_description=str(e)))
        if prs.is_blank(claims.get("iss")) or prs.is_blank(claims.get("sub")):
            return errors.Err(errors.MalformedCommitmentError(additional_error_description="Commitment has to contain the claims iss and sub"))
        if claims["sub"] != request.holder_did:
            return errors.Err(errors.SubjectMismatchError())
        if prs.is_blank(claims.get("commitment_hash")):
            return errors.Err(errors.MalformedCommitmentError(additional_error_description="Commitment has no commitment_hash"))

        try:
            verified = jwt_utils.verify_jwt(request.commitment_jwt, claims["iss"], self._key_resolver)
        except (jwt_utils.KeyResolutionError, jwt_utils.InvalidJWTSignatureError, jwt_utils.MalformedJWTError) as e:
            return errors.Err(errors.InvalidIssuerSignatureError(additional_error_description=str(e)))
        except errors.UpstreamUnavailableError as e:
            return errors.Err(e)
        return errors.Ok(verified)

    @staticmethod
    def _check_proof(request: VerifyRequest) -> errors.Result[list[str]]:
        if prs.is_blank(request.proof):
            return errors.Err(errors.MissingProofError())
        signals = request.public_signals or {}
        if signals.get("challenge") != request.challenge:
            return errors.Err(errors.ProofNotBoundError())
        predicate = signals.get("predicate")
        if not isinstance(predicate, str) or predicate not in SUPPORTED_PREDICATES:
            return errors.Err(errors.UnsupportedPredicateError(additional_error_description=f"Supported predicates are {list(SUPPORTED_PREDICATES)}"))
        if signals.get("result") is not True:
            return errors.Err(errors.ProofResultFalseError())
        return errors.Ok(list(SUPPORTED_PREDICATES[predicate]))

    @staticmethod
    def _rejected(request: VerifyRequest, failure: errors.Err, issuer_did: str | None = None) -> errors.Err:
        _logger.info(
            VerifierOperationsLogEntry(
                message=f"Verification rejected: {failure.error}",
                status=VerifierOperationsLogEntry.Status.error,
                operation=VerifierOperationsLogEntry.Operation.verification,
                step=VerifierOperationsLogEntry.Step.verification_evaluation,
                reference_id=request.challenge,
                holder_did=request.holder_did,
                issuer_did=issuer_did,
                error_code=failure.error.error_code or failure.error.error,
            )
        )
        return failure
