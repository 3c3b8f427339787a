# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import logging
from fastapi import Request, FastAPI
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from common import errors

_logger = logging.getLogger(__name__)


def configure_exception_handlers(app: FastAPI) -> None:
    """
    Configure exception handlers on the FastAPI app instance to conform to the OID4VC error responses.
    Changed 422 Unprocessable Entity to 400 Bad Request

    Args:
        app (FastAPI): the instance to configure the handlers for.
    """

    @app.exception_handler(errors.CredentialError)
    async def credential_exception_handler(request: Request, exc: errors.CredentialError):
        content = exc.render()
        _logger.info(f"OID4VC Exception {exc.status_code=} {exc.kind.value} {content}")
        return JSONResponse(
            status_code=exc.status_code,
            headers=exc.headers,
            content=content,
        )

    @app.exception_handler(RequestValidationError)
    async def invalid_request_exception_handler(request: Request, exc: RequestValidationError):
        """
        Recasts Validation Errors to OpenID4VC conform exceptions
        """
        wrapper_exception = errors.InvalidRequestError(additional_error_description=f"Details: {exc.errors()}")
        return await credential_exception_handler(request, wrapper_exception)
