# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Single use, time bounded challenges (nonces).

A challenge is stored as two cache entries:
* `<id>` the challenge record with its expiry
* `<id>:used` the consumption marker, written with compare and set

Only the caller which manages to write the marker consumes the challenge, so two
concurrent consumers of the same id can never both succeed. Records are retained
past their expiry for a grace period so late consumers see "expired" instead of
"unknown"; the expired record is evicted on that first late access.
"""

import logging
import uuid

from pydantic import BaseModel

from common.cache import TTLCache
from common.clock import Clock, SystemClock
from common import errors

_logger = logging.getLogger(__name__)

DEFAULT_TTL = 300


class Challenge(BaseModel):
    id: str
    expires_at: float
    ttl: float
    used: bool = False


class ChallengeStore:
    def __init__(self, cache: TTLCache, ttl: float = DEFAULT_TTL, clock: Clock | None = None) -> None:
        self._cache = cache
        self.ttl = ttl
        self._clock = clock or SystemClock()

    @staticmethod
    def _used_key(challenge_id: str) -> str:
        return f'{challenge_id}:used'

    def _retention(self, ttl: float) -> float:
        return 2 * ttl

    def mint(self, ttl: float | None = None) -> str:
        """Creates a new challenge valid for ttl seconds (default: store ttl) and returns its id."""
        ttl = self.ttl if ttl is None else ttl
        challenge_id = str(uuid.uuid4())
        expires_at = self._clock.now() + ttl
        self._cache.put(challenge_id, {"expires_at": expires_at, "ttl": ttl}, self._retention(ttl))
        _logger.debug(f"Minted challenge {challenge_id} valid for {ttl}s")
        return challenge_id

    def get(self, challenge_id: str) -> Challenge | None:
        record = self._cache.get(challenge_id)
        if record is None:
            return None
        return Challenge(
            id=challenge_id,
            expires_at=record["expires_at"],
            ttl=record["ttl"],
            used=self._cache.get(self._used_key(challenge_id)) is not None,
        )

    def consume(self, challenge_id: str) -> errors.Result[Challenge]:
        """Consumes the challenge, returning the challenge as used or the reason why it can not be consumed."""
        if not challenge_id:
            return errors.Err(errors.UnknownChallengeError())
        challenge = self.get(challenge_id)
        if challenge is None:
            return errors.Err(errors.UnknownChallengeError())
        if challenge.used:
            return errors.Err(errors.ChallengeAlreadyUsedError())
        if self._clock.now() >= challenge.expires_at:
            self._cache.evict(challenge_id)
            return errors.Err(errors.ChallengeExpiredError())
        # The marker outlives the record, a consumed challenge never becomes consumable again
        if not self._cache.put_if_absent(self._used_key(challenge_id), True, self._retention(challenge.ttl)):
            # Lost the race against a concurrent consumer
            return errors.Err(errors.ChallengeAlreadyUsedError())
        challenge.used = True
        return errors.Ok(challenge)

    def consume_or_fail(self, challenge_id: str) -> Challenge:
        """Consumes the challenge, raises UnknownChallenge, ChallengeAlreadyUsed or ChallengeExpired."""
        return errors.unwrap(self.consume(challenge_id))
