# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Trust registry answering "is issuer X trusted (at time T)?".

Lookups go to the authoritative source, either the statically configured issuers
or the trust registry service, and are cached for the trust TTL. Registry mutations
evict the cached entry. Failed lookups are decided by the trust failure policy and
never cached, so the next request asks the source again.
"""

import logging
import threading
from typing import Protocol

import httpx
from pydantic import BaseModel

from common import errors
from common import parsing as prs
import common.httpx_wrapper as httpxw
from common.cache import TTLCache
from common.clock import Clock, SystemClock
from common.config import FailurePolicy

import verifier.config as conf
from verifier.logging import VerifierOperationsLogEntry

_logger = logging.getLogger(__name__)

DEFAULT_TTL = 3600


class TrustEntry(BaseModel):
    issuer_did: str
    trusted: bool
    added_at: float | None = None
    """Point in time since the issuer is trusted, unknown if None"""
    cached_at: float


class TrustRegistryStats(BaseModel):
    source: str
    trusted_issuers: int | None = None
    """Number of trusted issuers, None if the source can not tell"""
    cached_entries: int
    ttl_seconds: float
    failure_policy: FailurePolicy


class TrustRegistrySource(Protocol):
    def lookup(self, issuer_did: str) -> float | None:
        """
        Returns since when the issuer is trusted, None if it is not trusted.
        Throws UpstreamUnavailableError if the source can not be asked.
        """
        ...

    def add(self, issuer_did: str, added_at: float) -> None: ...

    def remove(self, issuer_did: str) -> bool: ...

    def count(self) -> int | None: ...


class StaticTrustRegistrySource:
    """Trusted issuers kept in process, seeded from the configuration"""

    def __init__(self, trusted_issuers: dict[str, float] | None = None) -> None:
        self._issuers = dict(trusted_issuers or {})
        self._lock = threading.Lock()

    def lookup(self, issuer_did: str) -> float | None:
        with self._lock:
            return self._issuers.get(issuer_did)

    def add(self, issuer_did: str, added_at: float) -> None:
        with self._lock:
            self._issuers[issuer_did] = added_at

    def remove(self, issuer_did: str) -> bool:
        with self._lock:
            return self._issuers.pop(issuer_did, None) is not None

    def count(self) -> int | None:
        with self._lock:
            return len(self._issuers)


class HttpTrustRegistrySource:
    """
    Trust registry service, managed outside of this verifier.
    GET {TRUST_REGISTRY_URL}/issuers/{did} answers {"trusted": bool, "added_at": float?}, 404 if unknown.
    """

    def __init__(self, config: conf.VerifierConfig) -> None:
        self._config = config

    def lookup(self, issuer_did: str) -> float | None:
        url = f"{self._config.trust_registry_url.rstrip('/')}/issuers/{issuer_did}"
        try:
            response = httpxw.get(url, self._config)
        except httpx.HTTPError as e:
            raise errors.UpstreamUnavailableError(additional_error_description="Trust registry not reachable") from e
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        if response.is_error:
            raise errors.UpstreamUnavailableError(additional_error_description=f"Trust registry answered with {response.status_code}")
        try:
            body = response.json()
        except ValueError as e:
            raise errors.UpstreamUnavailableError(additional_error_description="Trust registry answered with invalid JSON") from e
        if not isinstance(body, dict) or body.get("trusted") is not True:
            return None
        try:
            return float(body.get("added_at") or 0.0)
        except (TypeError, ValueError) as e:
            raise errors.UpstreamUnavailableError(additional_error_description="Trust registry answered with an invalid added_at") from e

    def add(self, issuer_did: str, added_at: float) -> None:
        raise errors.InvalidRequestError(additional_error_description="Trust registry is managed externally")

    def remove(self, issuer_did: str) -> bool:
        raise errors.InvalidRequestError(additional_error_description="Trust registry is managed externally")

    def count(self) -> int | None:
        return None


class TrustRegistry:
    def __init__(
        self,
        source: TrustRegistrySource,
        cache: TTLCache,
        ttl: float = DEFAULT_TTL,
        policy: FailurePolicy = FailurePolicy.FAIL_CLOSED,
        clock: Clock | None = None,
    ) -> None:
        self._source = source
        self._cache = cache
        self._ttl = ttl
        self._policy = policy
        self._clock = clock or SystemClock()

    def _lookup(self, issuer_did: str) -> TrustEntry | None:
        """Cached entry or a fresh lookup at the source, None if the source is unavailable"""
        cached = self._cache.get(issuer_did)
        if cached is not None:
            return TrustEntry.model_validate(cached)
        try:
            added_at = self._source.lookup(issuer_did)
        except errors.UpstreamUnavailableError as e:
            _logger.warning(f"Trust lookup for {issuer_did} failed, applying {self._policy.value}: {e}")
            return None
        entry = TrustEntry(issuer_did=issuer_did, trusted=added_at is not None, added_at=added_at, cached_at=self._clock.now())
        self._cache.put(issuer_did, entry.model_dump(mode="json"), self._ttl)
        return entry

    def is_trusted(self, issuer_did: str, at: float | None = None) -> bool:
        """
        True if the issuer is trusted, and already was at the point in time `at` if given.
        """
        if prs.is_blank(issuer_did):
            return False
        entry = self._lookup(issuer_did)
        if entry is None:
            return self._policy == FailurePolicy.FAIL_OPEN
        if not entry.trusted:
            return False
        return at is None or entry.added_at is None or entry.added_at <= at

    def add_issuer(self, issuer_did: str, added_at: float | None = None) -> TrustEntry:
        added_at = self._clock.now() if added_at is None else added_at
        self._source.add(issuer_did, added_at)
        self._cache.evict(issuer_did)
        self._log_change(f"Issuer {issuer_did} added to the trust registry.", issuer_did)
        return TrustEntry(issuer_did=issuer_did, trusted=True, added_at=added_at, cached_at=self._clock.now())

    def remove_issuer(self, issuer_did: str) -> bool:
        """Returns False if the issuer was not trusted before"""
        removed = self._source.remove(issuer_did)
        self._cache.evict(issuer_did)
        if removed:
            self._log_change(f"Issuer {issuer_did} removed from the trust registry.", issuer_did)
        return removed

    def clear_expired(self) -> int:
        return self._cache.sweep()

    def stats(self) -> TrustRegistryStats:
        return TrustRegistryStats(
            source=type(self._source).__name__,
            trusted_issuers=self._source.count(),
            cached_entries=self._cache.size(),
            ttl_seconds=self._ttl,
            failure_policy=self._policy,
        )

    @staticmethod
    def _log_change(message: str, issuer_did: str) -> None:
        _logger.info(
            VerifierOperationsLogEntry(
                message=message,
                status=VerifierOperationsLogEntry.Status.success,
                operation=VerifierOperationsLogEntry.Operation.trust,
                step=VerifierOperationsLogEntry.Step.trust_change,
                issuer_did=issuer_did,
            )
        )
