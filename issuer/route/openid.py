# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Endpoints relating to the OpenID4VC, OpenId & OAuth 2.0 endpoints
"""

import logging
from typing import Annotated

import fastapi
from fastapi import status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

import common.key_configuration as key
import common.db.postgres as db
import common.model.openid4vc as cr
import common.model.ietf as ietf
from common import errors
from common.model.exception import OpenIdError

from issuer import dependencies as deps

TAG = "OpenID"

_logger = logging.getLogger(__name__)

router = fastapi.APIRouter(tags=[TAG])

_bearer = HTTPBearer(auto_error=False)

#############
# OAuth 2.0 #
#############


async def token_request(request: fastapi.Request) -> cr.TokenRequest:
    """
    Token requests are form encoded (RFC 6749), JSON bodies are accepted as well.
    """
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            raise errors.InvalidRequestError(additional_error_description="Body is not valid JSON")
    else:
        body = dict(await request.form())
    if not isinstance(body, dict):
        raise errors.InvalidRequestError(additional_error_description="Body has to be an object")
    return cr.TokenRequest.model_validate({key: value for key, value in body.items() if isinstance(value, str)})


@router.post(
    "/token",
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": OpenIdError},
    },
)
def issue_access_token(
    token_request: Annotated[cr.TokenRequest, fastapi.Depends(token_request)],
    session: db.inject,
    service: deps.inject_openid4vci_service,
) -> ietf.OpenID4VCToken:
    """
    https://www.rfc-editor.org/rfc/rfc6749.txt
    Must be TLS!
    https://openid.net/specs/openid-4-verifiable-credential-issuance-1_0-11.html#name-token-endpoint

    Exchanges the pre-authorized code for a bearer access token and a c_nonce.
    """
    return errors.unwrap(service.exchange_token(session, token_request))


##########
# OpenID #
##########


# We exclude_none to not have added in all optional parameters
@router.get("/.well-known/jwks.json", response_model_exclude_none=True)
def get_jwk(key_conf: key.inject) -> ietf.JSONWebKeySet:
    """Public keys to verify credentials, commitments & access tokens of this issuer"""
    return ietf.JSONWebKeySet.model_validate(key_conf.jwks)


@router.get("/.well-known/openid-credential-issuer")
def get_credential_issuer_metadata(service: deps.inject_openid4vci_service) -> cr.CredentialIssuerMetadata:
    return service.metadata()


@router.post(
    "/credential",
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": OpenIdError},
        status.HTTP_401_UNAUTHORIZED: {"model": OpenIdError},
    },
)
def credential_endpoint(
    credential_request: cr.CredentialRequest,
    session: db.inject,
    service: deps.inject_openid4vci_service,
    authorization: Annotated[HTTPAuthorizationCredentials | None, fastapi.Depends(_bearer)],
) -> cr.CredentialResponse:
    """
    https://openid.net/specs/openid-4-verifiable-credential-issuance-1_0-11.html#name-credential-endpoint

    Issues the credential for the subject of the proof of possession.
    The proof has to be signed by the key of the subject DID and carry the current c_nonce.
    """
    access_token = authorization.credentials if authorization else None
    return errors.unwrap(service.exchange_credential(session, access_token, credential_request))
