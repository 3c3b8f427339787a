# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
OpenID4VP direct post flow

1. /authorize opens a session, its nonce is a challenge of the challenge store
2. the wallet posts the VP token, signed by the holder over the nonce, to /callback
3. every credential (commitment JWT) of the presentation runs through the verification
   gates with a server minted challenge bound to the public signals of the presentation,
   and through the revocation check
4. the verified claims of all credentials are combined into one decision token
"""

import logging
import uuid

from common import errors, jwt_utils
from common import parsing as prs
from common.challenge_store import ChallengeStore

import verifier.config as conf
from verifier import models
from verifier.decision_token import DecisionTokenSigner
from verifier.logging import VerifierOperationsLogEntry
from verifier.revocation_check import RevocationChecker
from verifier.verification import VerificationOrchestrator

_logger = logging.getLogger(__name__)

PRESENTATION_DEFINITION_ID = "passport_verification_definition"
INPUT_DESCRIPTOR_ID = "passport_credential"
RESPONSE_TYPE = "vp_token"


def _field(name: str, optional: bool = False) -> dict:
    field = {"path": [f"$.vc.credentialSubject.{name}"]}
    if optional:
        field["optional"] = True
    return field


class OpenID4VPService:
    def __init__(
        self,
        config: conf.VerifierConfig,
        verifier_did: str,
        session_store: ChallengeStore,
        key_resolver: jwt_utils.KeyResolver,
        orchestrator: VerificationOrchestrator,
        revocation_checker: RevocationChecker,
        decision_signer: DecisionTokenSigner,
    ) -> None:
        self._config = config
        self._verifier_did = verifier_did
        self._sessions = session_store
        self._key_resolver = key_resolver
        self._orchestrator = orchestrator
        self._revocation = revocation_checker
        self._decision = decision_signer

    def metadata(self) -> models.VerifierMetadata:
        return models.VerifierMetadata(
            verifier=self._config.display_name,
            verifier_did=self._verifier_did,
            authorization_endpoint=self._config.endpoint("/authorize"),
            response_uri=self._config.endpoint("/callback"),
            presentation_definition_uri=self._config.endpoint("/presentation-definition"),
            jwks_uri=self._config.endpoint("/.well-known/jwks.json"),
            vp_formats_supported={"jwt_vp": {"alg": ["EdDSA"]}, "jwt_vc": {"alg": ["EdDSA"]}},
            response_types_supported=[RESPONSE_TYPE],
            response_modes_supported=["direct_post"],
        )

    @staticmethod
    def presentation_definition() -> dict:
        """
        DIF presentation definition asking for a passport credential
        https://identity.foundation/presentation-exchange/spec/v2.0.0/#presentation-definition
        """
        return {
            "id": PRESENTATION_DEFINITION_ID,
            "name": "Passport Verification",
            "purpose": "Verify your passport credential to access this service",
            "format": {"jwt_vp": {"alg": ["EdDSA"]}, "jwt_vc": {"alg": ["EdDSA"]}},
            "input_descriptors": [
                {
                    "id": INPUT_DESCRIPTOR_ID,
                    "name": "Passport Credential",
                    "purpose": "Proof of identity",
                    "group": ["A"],
                    "constraints": {
                        "fields": [
                            _field("name"),
                            _field("nationality"),
                            _field("birthDate"),
                            _field("passportNumber", optional=True),
                        ]
                    },
                }
            ],
            "submission_requirements": [{"name": "Passport", "rule": "all", "from": "A"}],
        }

    def process_authorization_request(self, request: models.AuthorizationRequest) -> errors.Result[models.AuthorizationResponse]:
        if request.response_type != RESPONSE_TYPE:
            return errors.Err(errors.InvalidRequestError(additional_error_description=f"Unsupported response type {request.response_type!r}"))
        nonce = self._sessions.mint(self._config.session_ttl)
        session_id = str(uuid.uuid4())
        _logger.info(
            VerifierOperationsLogEntry(
                message="Authorization session opened.",
                status=VerifierOperationsLogEntry.Status.success,
                operation=VerifierOperationsLogEntry.Operation.presentation,
                step=VerifierOperationsLogEntry.Step.verification_request,
                reference_id=session_id,
            )
        )
        return errors.Ok(
            models.AuthorizationResponse(
                session_id=session_id,
                nonce=nonce,
                presentation_definition=request.presentation_definition or self.presentation_definition(),
                response_uri=self._config.endpoint("/callback"),
                response_mode=request.response_mode,
                expires_in=self._config.session_ttl,
                state=request.state,
            )
        )

    @staticmethod
    def _extract_credentials(claims: dict) -> list[str]:
        """Credentials of vp.verifiableCredential or a top level verifiableCredential"""
        vp = claims.get("vp")
        embedded = vp.get("verifiableCredential") if isinstance(vp, dict) else None
        if embedded is None:
            embedded = claims.get("verifiableCredential")
        if isinstance(embedded, str):
            embedded = [embedded]
        if not isinstance(embedded, list):
            return []
        return [credential for credential in embedded if not prs.is_blank(credential)]

    def _verify_credential(self, holder_did: str, credential: str, vp_claims: dict) -> list[str]:
        """Verified claims of a single credential, empty if it does not pass"""
        signals = vp_claims.get("public_signals") if isinstance(vp_claims.get("public_signals"), dict) else {}
        challenge = self._sessions.mint()
        request = models.VerifyRequest(
            challenge=challenge,
            holder_did=holder_did,
            commitment_jwt=credential,
            proof=vp_claims.get("proof") if isinstance(vp_claims.get("proof"), str) else None,
            public_signals={"challenge": challenge, "predicate": signals.get("predicate"), "result": signals.get("result")},
        )
        match self._orchestrator.run_gates(request):
            case errors.Err(error=error):
                _logger.info(f"Presented credential not verified: {error}")
                return []
            case errors.Ok(value=verified_claims):
                pass

        _, commitment = jwt_utils.decode_unverified(credential)
        if not self._revocation.is_valid(commitment.get("jti")):
            _logger.info(f"Presented credential {commitment.get('jti')} is revoked or suspended")
            return []
        return verified_claims

    def process_presentation_submission(self, response: models.PresentationResponse) -> errors.Result[models.PresentationResult]:
        if prs.is_blank(response.vp_token):
            return errors.Err(errors.InvalidPresentationError(additional_error_description="VP token is required"))
        if response.presentation_submission is None:
            return errors.Err(errors.InvalidSubmissionError(additional_error_description="Presentation submission is required"))

        try:
            _, claims = jwt_utils.decode_unverified(response.vp_token)
        except jwt_utils.MalformedJWTError as e:
            return errors.Err(errors.InvalidPresentationError(additional_error_description=str(e)))
        holder_did = claims.get("sub")
        if prs.is_blank(holder_did):
            return errors.Err(errors.InvalidPresentationError(additional_error_description="VP token has no subject"))

        try:
            claims = jwt_utils.verify_jwt(response.vp_token, holder_did, self._key_resolver)
        except (jwt_utils.KeyResolutionError, jwt_utils.InvalidJWTSignatureError, jwt_utils.MalformedJWTError) as e:
            return errors.Err(errors.InvalidPresentationSignatureError(additional_error_description=str(e)))
        except errors.UpstreamUnavailableError as e:
            return errors.Err(e)

        match self._sessions.consume(claims.get("nonce")):
            case errors.Err() as failure:
                return failure

        credentials = self._extract_credentials(claims)
        if not credentials:
            return errors.Err(errors.NoCredentialsError())

        verified_claims: list[str] = []
        for credential in credentials:
            for claim in self._verify_credential(holder_did, credential, claims):
                if claim not in verified_claims:
                    verified_claims.append(claim)
        if not verified_claims:
            return errors.Err(errors.VerificationFailedError())

        decision = self._decision.mint(holder_did, verified_claims)
        _logger.info(
            VerifierOperationsLogEntry(
                message=f"Presentation verified with {len(credentials)} credential(s).",
                status=VerifierOperationsLogEntry.Status.success,
                operation=VerifierOperationsLogEntry.Operation.presentation,
                step=VerifierOperationsLogEntry.Step.verification_response,
                holder_did=holder_did,
            )
        )
        return errors.Ok(
            models.PresentationResult(
                success=True,
                decision_token=decision.token,
                verified_claims=decision.verified_claims,
                assurance_level=decision.assurance_level,
                expires_in=decision.expires_in,
            )
        )
