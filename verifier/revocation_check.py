# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Revocation status of presented credentials, asked at the issuing authority.

Answers are cached for a short TTL. A cache miss always asks the issuer, a missing
entry never implies validity. Failed lookups follow the revocation failure policy
and are not cached.
"""

import logging

import httpx
from pydantic import BaseModel

from common import errors
from common import parsing as prs
import common.httpx_wrapper as httpxw
from common.cache import TTLCache
from common.clock import Clock, SystemClock
from common.config import FailurePolicy

import verifier.config as conf

_logger = logging.getLogger(__name__)

DEFAULT_TTL = 60


class RevocationStatus(BaseModel):
    credential_id: str
    is_valid: bool
    cached_at: float
    from_policy: bool = False
    """Set if the status could not be looked up and was decided by the failure policy"""


class RevocationChecker:
    def __init__(
        self,
        config: conf.VerifierConfig,
        cache: TTLCache,
        ttl: float = DEFAULT_TTL,
        policy: FailurePolicy = FailurePolicy.FAIL_OPEN,
        clock: Clock | None = None,
    ) -> None:
        self._config = config
        self._cache = cache
        self._ttl = ttl
        self._policy = policy
        self._clock = clock or SystemClock()

    def _fetch(self, credential_id: str) -> bool:
        """
        Asks the issuer, GET {ISSUER_STATUS_URL}/credentials/{id}/valid.
        An unknown credential is not valid.
        Throws UpstreamUnavailableError
        """
        if not self._config.issuer_status_url:
            raise errors.UpstreamUnavailableError(additional_error_description="No issuer status endpoint configured")
        url = f"{self._config.issuer_status_url.rstrip('/')}/credentials/{credential_id}/valid"
        try:
            response = httpxw.get(url, self._config)
        except httpx.HTTPError as e:
            raise errors.UpstreamUnavailableError(additional_error_description="Issuer status endpoint not reachable") from e
        if response.status_code == httpx.codes.NOT_FOUND:
            return False
        if response.is_error:
            raise errors.UpstreamUnavailableError(additional_error_description=f"Issuer status endpoint answered with {response.status_code}")
        try:
            return response.json()["is_valid"] is True
        except (ValueError, KeyError, TypeError) as e:
            raise errors.UpstreamUnavailableError(additional_error_description="Issuer status endpoint answered with an invalid body") from e

    def status(self, credential_id: str) -> RevocationStatus:
        if prs.is_blank(credential_id):
            return RevocationStatus(credential_id=str(credential_id), is_valid=False, cached_at=self._clock.now())

        cached = self._cache.get(credential_id)
        if cached is not None:
            return RevocationStatus.model_validate(cached)

        try:
            is_valid = self._fetch(credential_id)
        except errors.UpstreamUnavailableError as e:
            _logger.warning(f"Revocation check for {credential_id} failed, applying {self._policy.value}: {e}")
            return RevocationStatus(
                credential_id=credential_id,
                is_valid=self._policy == FailurePolicy.FAIL_OPEN,
                cached_at=self._clock.now(),
                from_policy=True,
            )

        revocation_status = RevocationStatus(credential_id=credential_id, is_valid=is_valid, cached_at=self._clock.now())
        self._cache.put(credential_id, revocation_status.model_dump(mode="json"), self._ttl)
        return revocation_status

    def is_valid(self, credential_id: str) -> bool:
        return self.status(credential_id).is_valid
