# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

from pydantic import BaseModel


class HTTPError(BaseModel):
    """
    General HTTPException raised
    """
    detail: str


class OpenIdError(BaseModel):
    """
    Error response as defined in OpenID4VC/RFC 6749 standard.
    * error: Machine readable code identifying the exception
    * error_description: Human readable error description of the error to help the developer
    * error_code: Machine readable code further specifying the error
    * additional_error_description: Further human readable information on the error
    """

    error: str
    error_description: str
    error_code: str | None = None
    additional_error_description: str | None = None
    c_nonce: str | None = None
    c_nonce_expires_in: int | None = None
