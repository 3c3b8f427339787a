# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""Guard for the privileged endpoints (credential issuance, revocation, trust registry management)"""

import secrets

from fastapi import Security, HTTPException, status
from fastapi.security import APIKeyHeader

from common import config

API_KEY_HEADER = "x-api-key"


def require_api_key(conf: config.inject, api_key: str = Security(APIKeyHeader(name=API_KEY_HEADER, auto_error=False))) -> None:
    if not api_key or not secrets.compare_digest(api_key.encode(), conf.api_key.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing API Key")
