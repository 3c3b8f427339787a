# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
OpenID4VCI pre-authorized code flow

1. (optional) the business system registers a credential offer, getting a pre-authorized code
2. /token exchanges the pre-authorized code for an access token and a c_nonce
3. /credential exchanges the access token and a proof of possession, signed by the
   holder's key over the c_nonce, for the credential & its commitment

Both exchanges return an `Ok` / `Err` result instead of raising.
"""

import logging
import uuid

import sqlalchemy.orm as sa_orm

from common import errors, jwt_utils
from common import parsing as prs
from common.challenge_store import ChallengeStore
from common.clock import Clock, SystemClock
from common.key_configuration import KeyConfiguration
import common.model.ietf as ietf
import common.model.openid4vc as cr

import issuer.config as conf
import issuer.credential_issuance as issuance
import issuer.db.credential as db_credential
from issuer.logging import IssuerOperationsLogEntry

_logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("jwt_vc_json", "jwt_vc")
ACCESS_TOKEN_SCOPE = "credential_request"
CREDENTIAL_OFFER_URI_SCHEME = "openid-credential-offer://"


class OpenID4VCIService:
    def __init__(
        self,
        config: conf.IssuerConfig,
        key_configuration: KeyConfiguration,
        issuance_service: issuance.CredentialIssuanceService,
        nonce_store: ChallengeStore,
        key_resolver: jwt_utils.KeyResolver,
        clock: Clock | None = None,
    ) -> None:
        self._config = config
        self._key = key_configuration
        self._issuance = issuance_service
        self._nonces = nonce_store
        self._key_resolver = key_resolver
        self._clock = clock or SystemClock()

    @property
    def issuer_did(self) -> str:
        return self._issuance.issuer_did

    ############
    # Metadata #
    ############

    def metadata(self) -> cr.CredentialIssuerMetadata:
        display = [cr.CredentialIssuerDisplay(name=self._config.display_name)]
        return cr.CredentialIssuerMetadata(
            credential_issuer=self._config.external_url,
            credential_endpoint=self._config.endpoint("/credential"),
            token_endpoint=self._config.endpoint("/token"),
            jwks_uri=self._config.endpoint("/.well-known/jwks.json"),
            display=display,
            credentials_supported={
                issuance.CREDENTIAL_TYPE: cr.CredentialSupported(
                    format=SUPPORTED_FORMATS[0],
                    types=issuance.CREDENTIAL_TYPES,
                    cryptographic_binding_methods_supported=["did:jwk"],
                    credential_signing_alg_values_supported=[self._key.algorithm],
                    proof_types_supported=["jwt"],
                    display=display,
                )
            },
        )

    ##########
    # Offers #
    ##########

    def create_offer(self, session: sa_orm.Session, claims: dict) -> tuple[str, cr.CredentialOffer]:
        """Registers the claims to be issued, returns the pre-authorized code and the offer for the wallet"""
        code = db_credential.register_offer(session, claims, self._clock.now() + self._config.offer_ttl)
        session.commit()
        offer = cr.CredentialOffer(
            credential_issuer=self._config.external_url,
            credentials=[issuance.CREDENTIAL_TYPE],
            grants={cr.PRE_AUTHORIZED_CODE_GRANT_TYPE: {"pre-authorized_code": str(code)}},
        )
        _logger.info(
            IssuerOperationsLogEntry(
                message="Credential offer registered.",
                status=IssuerOperationsLogEntry.Status.success,
                operation=IssuerOperationsLogEntry.Operation.issuance,
                step=IssuerOperationsLogEntry.Step.issuance_preparation,
                reference_id=code,
            )
        )
        return str(code), offer

    @staticmethod
    def offer_uri(offer: cr.CredentialOffer) -> str:
        return f"{CREDENTIAL_OFFER_URI_SCHEME}?credential_offer={offer.model_dump_json()}"

    def _find_offer(self, session: sa_orm.Session, code: str) -> db_credential.CredentialOffer | None:
        """Offer behind the pre-authorized code, locked until the session commits"""
        try:
            return db_credential.get_offer(session, uuid.UUID(code), for_update=True)
        except ValueError:
            return None

    ##################
    # Token exchange #
    ##################

    def exchange_token(self, session: sa_orm.Session, request: cr.TokenRequest) -> errors.Result[ietf.OpenID4VCToken]:
        if request.grant_type != cr.PRE_AUTHORIZED_CODE_GRANT_TYPE:
            return errors.Err(errors.UnsupportedGrantTypeError(additional_error_description=f"Grant type {request.grant_type!r} is not supported"))
        if prs.is_blank(request.pre_authorized_code):
            return errors.Err(errors.InvalidGrantError(additional_error_description="Missing pre-authorized code"))

        code = request.pre_authorized_code.strip()
        offer = self._find_offer(session, code)
        if offer is None and not self._config.accept_unregistered_codes:
            return errors.Err(errors.InvalidGrantError(additional_error_description="Unknown pre-authorized code"))
        if offer is not None:
            if not offer.validity_check(self._clock.now()):
                session.commit()  # Save changes from validity check
                return errors.Err(errors.InvalidGrantError(additional_error_description="Offer expired or already redeemed"))
            offer.redeemed = True
            session.commit()

        now = int(self._clock.now())
        access_token = self._key.encode_jwt(
            {
                "iss": self.issuer_did,
                "aud": self._config.external_url,
                "sub": code,
                "pre_authorized_code": code,
                "jti": str(uuid.uuid4()),
                "iat": now,
                "exp": now + self._config.access_token_ttl,
                "scope": ACCESS_TOKEN_SCOPE,
            },
            header={"typ": "at+jwt"},
        )
        _logger.info(
            IssuerOperationsLogEntry(
                message="Access token issued.",
                status=IssuerOperationsLogEntry.Status.success,
                operation=IssuerOperationsLogEntry.Operation.token,
                step=IssuerOperationsLogEntry.Step.token_exchange,
            )
        )
        return errors.Ok(
            ietf.OpenID4VCToken(
                access_token=access_token,
                token_type="Bearer",
                expires_in=self._config.access_token_ttl,
                c_nonce=self._nonces.mint(self._config.c_nonce_ttl),
                c_nonce_expires_in=self._config.c_nonce_ttl,
            )
        )

    #######################
    # Credential exchange #
    #######################

    def _validate_access_token(self, access_token: str | None) -> errors.Result[dict]:
        if prs.is_blank(access_token):
            return errors.Err(errors.InvalidTokenError(additional_error_description="Missing access token"))
        try:
            claims = jwt_utils.verify_signature(access_token, ietf.JSONWebKeySet.model_validate(self._key.jwks))
        except (jwt_utils.MalformedJWTError, jwt_utils.InvalidJWTSignatureError) as e:
            return errors.Err(errors.InvalidTokenError(additional_error_description=str(e)))
        if claims.get("iss") != self.issuer_did or claims.get("scope") != ACCESS_TOKEN_SCOPE:
            return errors.Err(errors.InvalidTokenError(additional_error_description="Access token was not issued for credential requests"))
        if not isinstance(claims.get("exp"), (int, float)) or claims["exp"] <= self._clock.now():
            return errors.Err(errors.InvalidTokenError(additional_error_description="Access token expired"))
        if prs.is_blank(claims.get("pre_authorized_code")):
            return errors.Err(errors.InvalidTokenError(additional_error_description="Access token misses the pre-authorized code"))
        return errors.Ok(claims)

    def _invalid_proof(self, description: str) -> errors.Err:
        """Invalid proof error carrying a fresh c_nonce for the next attempt"""
        _logger.info(
            IssuerOperationsLogEntry(
                message=f"Proof rejected: {description}",
                status=IssuerOperationsLogEntry.Status.error,
                operation=IssuerOperationsLogEntry.Operation.credential,
                step=IssuerOperationsLogEntry.Step.proof_validation,
                error_code=errors.InvalidProofError.error,
            )
        )
        return errors.Err(
            errors.InvalidProofError(
                additional_error_description=description,
                c_nonce=self._nonces.mint(self._config.c_nonce_ttl),
                c_nonce_expires_in=self._config.c_nonce_ttl,
            )
        )

    def _validate_proof(self, proof: cr.CredentialProof | None) -> errors.Result[str]:
        """Returns the subject DID the proof of possession was signed for"""
        if proof is None or proof.proof_type != "jwt" or prs.is_blank(proof.jwt):
            return self._invalid_proof("Proof of type jwt is required")
        try:
            _, claims = jwt_utils.decode_unverified(proof.jwt)
        except jwt_utils.MalformedJWTError as e:
            return self._invalid_proof(f"Proof can not be parsed: {e}")
        if prs.is_blank(claims.get("sub")) or prs.is_blank(claims.get("iss")):
            return self._invalid_proof("Proof has to contain the claims sub and iss")

        subject = claims["sub"].strip()
        if not jwt_utils.is_did_identifier(subject):
            return errors.Err(errors.InvalidSubjectError(additional_error_description=f"{subject} is not a DID"))

        try:
            verified_claims = jwt_utils.verify_jwt(proof.jwt, subject, self._key_resolver)
        except (jwt_utils.KeyResolutionError, jwt_utils.InvalidJWTSignatureError, jwt_utils.MalformedJWTError) as e:
            return self._invalid_proof(f"Proof signature could not be verified for {subject}: {e}")
        except errors.UpstreamUnavailableError as e:
            return errors.Err(e)

        match self._nonces.consume(verified_claims.get("nonce")):
            case errors.Err(error=error):
                return self._invalid_proof(f"c_nonce rejected: {error.error_description}")
        return errors.Ok(subject)

    def exchange_credential(
        self,
        session: sa_orm.Session,
        access_token: str | None,
        request: cr.CredentialRequest,
    ) -> errors.Result[cr.CredentialResponse]:
        match self._validate_access_token(access_token):
            case errors.Err() as failure:
                return failure
            case errors.Ok(value=token_claims):
                pass

        if request.format not in SUPPORTED_FORMATS:
            return errors.Err(errors.UnsupportedCredentialFormatError(additional_error_description=f"Supported formats are {SUPPORTED_FORMATS}"))

        match self._validate_proof(request.proof):
            case errors.Err() as failure:
                return failure
            case errors.Ok(value=subject):
                pass

        offer = self._find_offer(session, token_claims["pre_authorized_code"])
        if offer is not None and offer.issued_credential_id is not None:
            return errors.Err(errors.InvalidTokenError(additional_error_description="Credential for this access token has already been issued"))
        claims = dict(offer.offer_data) if offer is not None else {}

        issued = self._issuance.issue_credential(session, subject, claims)
        if offer is not None:
            offer.issued_credential_id = uuid.UUID(issued.credential_id)
            offer.remove_offer_data()
        session.commit()

        return errors.Ok(
            cr.CredentialResponse(
                format=request.format,
                credential=issued.credential_jwt,
                c_nonce=self._nonces.mint(self._config.c_nonce_ttl),
                c_nonce_expires_in=self._config.c_nonce_ttl,
                credential_id=issued.credential_id,
                commitment_jwt=issued.commitment_jwt,
                commitment_hash=issued.commitment_hash,
            )
        )
