# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

from concurrent.futures import ThreadPoolExecutor

import fakeredis
import pytest

from common import errors
from common.cache import InMemoryTTLCache, RedisTTLCache
from common.challenge_store import ChallengeStore
from common.clock import FixedClock


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def store(clock) -> ChallengeStore:
    return ChallengeStore(InMemoryTTLCache(clock), ttl=300, clock=clock)


def test_mint_and_consume(store, clock):
    challenge_id = store.mint()
    challenge = store.get(challenge_id)
    assert challenge.expires_at == clock.now() + 300
    assert not challenge.used

    consumed = errors.unwrap(store.consume(challenge_id))
    assert consumed.id == challenge_id
    assert consumed.used
    assert store.get(challenge_id).used


def test_challenges_are_unique(store):
    assert len({store.mint() for _ in range(100)}) == 100


def test_consume_twice(store):
    challenge_id = store.mint()
    store.consume_or_fail(challenge_id)

    result = store.consume(challenge_id)
    assert isinstance(result, errors.Err)
    assert result.kind == errors.ErrorKind.ALREADY_CONSUMED
    with pytest.raises(errors.ChallengeAlreadyUsedError):
        store.consume_or_fail(challenge_id)


@pytest.mark.parametrize("challenge_id", [None, "", "unknown"])
def test_unknown_challenge(store, challenge_id):
    assert store.consume(challenge_id).kind == errors.ErrorKind.NOT_FOUND


def test_expiry(store, clock):
    challenge_id = store.mint()
    clock.advance(300)
    assert store.consume(challenge_id).kind == errors.ErrorKind.EXPIRED
    # The expired record is evicted on the first late access
    assert store.consume(challenge_id).kind == errors.ErrorKind.NOT_FOUND


def test_custom_ttl(store, clock):
    challenge_id = store.mint(600)
    clock.advance(599)
    assert isinstance(store.consume(challenge_id), errors.Ok)


def test_zero_ttl_is_not_replaced_by_default(store):
    challenge_id = store.mint(0)
    assert store.get(challenge_id) is None
    assert isinstance(store.consume(challenge_id), errors.Err)


def test_used_marker_outlives_record(store, clock):
    """A consumed challenge never becomes consumable again, not even past its expiry"""
    challenge_id = store.mint()
    store.consume_or_fail(challenge_id)
    clock.advance(299)
    assert store.consume(challenge_id).kind == errors.ErrorKind.ALREADY_CONSUMED


@pytest.mark.parametrize("backend", ["memory", "redis"])
def test_concurrent_consumers(clock, backend):
    cache = InMemoryTTLCache(clock) if backend == "memory" else RedisTTLCache(fakeredis.FakeRedis(), "challenge")
    store = ChallengeStore(cache, ttl=300, clock=clock)
    challenge_id = store.mint()

    with ThreadPoolExecutor(max_workers=16) as executor:
        results = list(executor.map(lambda _: store.consume(challenge_id), range(64)))

    assert sum(1 for result in results if isinstance(result, errors.Ok)) == 1
    assert all(result.kind == errors.ErrorKind.ALREADY_CONSUMED for result in results if isinstance(result, errors.Err))
