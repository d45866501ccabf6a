"""Unit tests for the fixed-window rate limit decision engine."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from quota_gate.adapters.store.base import AbstractCounterStore
from quota_gate.adapters.store.in_memory import InMemoryCounterStore
from quota_gate.core.errors import StoreDataCorruptError, StoreUnavailableError
from quota_gate.services.limit_spec import parse_limit
from quota_gate.services.rate_limit_service import FixedWindowRateLimiter


class YieldingStore(InMemoryCounterStore):
    """In-memory store that yields to the event loop after every read.

    Lets concurrently scheduled checks interleave between their GET and the
    following write, the way real network round-trips do.
    """

    async def get(self, key: str) -> str | None:
        value = await super().get(key)
        await asyncio.sleep(0)
        return value

    async def incr_with_expiry(self, key: str, *, expiry_seconds: int) -> int:
        await asyncio.sleep(0)
        return await super().incr_with_expiry(key, expiry_seconds=expiry_seconds)


@pytest.fixture
def store(clock) -> InMemoryCounterStore:
    return InMemoryCounterStore(clock=clock)


@pytest.fixture(params=["check_then_act", "atomic"])
def limiter(request, store: InMemoryCounterStore) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(store, strategy=request.param)


class TestQuotaWithinWindow:
    @pytest.mark.asyncio
    async def test_two_per_minute_scenario(self, limiter, store, clock) -> None:
        spec = parse_limit("2/minute")

        first = await limiter.check("K", spec)
        assert first.allowed is True
        assert first.remaining == 1
        assert await store.get("K") == "1"

        second = await limiter.check("K", spec)
        assert second.allowed is True
        assert second.remaining == 0
        assert await store.get("K") == "2"

        third = await limiter.check("K", spec)
        assert third.allowed is False
        assert third.failed is False
        assert third.error is None
        assert third.retry_after_seconds == 60

        clock.advance(60)

        fourth = await limiter.check("K", spec)
        assert fourth.allowed is True
        assert fourth.remaining == 1
        assert await store.get("K") == "1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quota", [1, 3, 10])
    async def test_admits_exactly_quota_requests(self, limiter, quota: int) -> None:
        spec = parse_limit(f"{quota}/hour")

        verdicts = [await limiter.check("K", spec) for _ in range(quota + 2)]

        assert [v.allowed for v in verdicts] == [True] * quota + [False, False]
        assert all(v.limit == quota for v in verdicts)

    @pytest.mark.asyncio
    async def test_retry_after_counts_down(self, limiter, clock) -> None:
        spec = parse_limit("1/minute")
        await limiter.check("K", spec)

        clock.advance(45)
        blocked = await limiter.check("K", spec)

        assert blocked.allowed is False
        assert blocked.retry_after_seconds == 15

    @pytest.mark.asyncio
    async def test_window_starts_at_first_request(self, limiter, clock) -> None:
        spec = parse_limit("1/second")
        assert (await limiter.check("K", spec)).allowed is True

        clock.advance(0.5)
        assert (await limiter.check("K", spec)).allowed is False

        clock.advance(0.5)
        assert (await limiter.check("K", spec)).allowed is True

    @pytest.mark.asyncio
    async def test_distinct_keys_do_not_interfere(self, limiter) -> None:
        fast = parse_limit("100/second")
        slow = parse_limit("5/minute")

        for _ in range(100):
            assert (await limiter.check("fast-key", fast)).allowed is True
        assert (await limiter.check("fast-key", fast)).allowed is False

        for _ in range(5):
            assert (await limiter.check("slow-key", slow)).allowed is True
        assert (await limiter.check("slow-key", slow)).allowed is False


@pytest.mark.asyncio
async def test_zero_quota_denies_without_store_round_trip() -> None:
    store = AsyncMock(spec=AbstractCounterStore)
    limiter = FixedWindowRateLimiter(store)

    verdict = await limiter.check("K", parse_limit("0/minute"))

    assert verdict.allowed is False
    assert verdict.error is None
    assert verdict.retry_after_seconds == 60
    assert store.mock_calls == []


class TestStoreFailures:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("strategy", ["check_then_act", "atomic"])
    async def test_unreachable_store_yields_error_verdict(self, strategy: str) -> None:
        store = AsyncMock(spec=AbstractCounterStore)
        store.get.side_effect = StoreUnavailableError("get")
        store.incr_with_expiry.side_effect = StoreUnavailableError("incr_with_expiry")
        limiter = FixedWindowRateLimiter(store, strategy=strategy)

        verdict = await limiter.check("K", parse_limit("5/minute"))

        assert verdict.allowed is False
        assert verdict.failed is True
        assert verdict.error is not None
        assert verdict.error.code == "store_unavailable"

    @pytest.mark.asyncio
    async def test_non_integer_value_yields_corrupt_verdict(self) -> None:
        store = AsyncMock(spec=AbstractCounterStore)
        store.get.return_value = "not-a-number"
        limiter = FixedWindowRateLimiter(store)

        verdict = await limiter.check("K", parse_limit("5/minute"))

        assert verdict.allowed is False
        assert isinstance(verdict.error, StoreDataCorruptError)
        store.incr.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_first_write_yields_error_verdict(self) -> None:
        store = AsyncMock(spec=AbstractCounterStore)
        store.get.return_value = None
        store.set.side_effect = StoreUnavailableError("set")
        limiter = FixedWindowRateLimiter(store)

        verdict = await limiter.check("K", parse_limit("5/minute"))

        assert verdict.allowed is False
        assert verdict.error is not None
        assert verdict.error.details == {"operation": "set"}

    @pytest.mark.asyncio
    async def test_failed_ttl_lookup_on_deny_yields_error_verdict(self) -> None:
        store = AsyncMock(spec=AbstractCounterStore)
        store.get.return_value = "5"
        store.ttl.side_effect = StoreUnavailableError("ttl")
        limiter = FixedWindowRateLimiter(store)

        verdict = await limiter.check("K", parse_limit("5/minute"))

        assert verdict.allowed is False
        assert verdict.failed is True


class TestCheckThenActProtocol:
    @pytest.mark.asyncio
    async def test_first_request_sets_counter_with_window_expiry(self) -> None:
        store = AsyncMock(spec=AbstractCounterStore)
        store.get.return_value = None
        limiter = FixedWindowRateLimiter(store)

        verdict = await limiter.check("K", parse_limit("5/hour"))

        assert verdict.allowed is True
        store.set.assert_awaited_once_with("K", 1, expiry_seconds=3600)
        store.incr.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_subsequent_request_increments(self) -> None:
        store = AsyncMock(spec=AbstractCounterStore)
        store.get.return_value = "2"
        store.incr.return_value = 3
        limiter = FixedWindowRateLimiter(store)

        verdict = await limiter.check("K", parse_limit("5/hour"))

        assert verdict.allowed is True
        assert verdict.remaining == 2
        store.incr.assert_awaited_once_with("K")
        store.set.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_restores_expiry_when_counter_expired_before_increment(self) -> None:
        store = AsyncMock(spec=AbstractCounterStore)
        store.get.return_value = "2"
        store.incr.return_value = 1
        limiter = FixedWindowRateLimiter(store)

        verdict = await limiter.check("K", parse_limit("5/minute"))

        assert verdict.allowed is True
        store.set.assert_awaited_once_with("K", 1, expiry_seconds=60)

    @pytest.mark.asyncio
    async def test_quota_exceeded_does_not_write(self) -> None:
        store = AsyncMock(spec=AbstractCounterStore)
        store.get.return_value = "5"
        store.ttl.return_value = 12
        limiter = FixedWindowRateLimiter(store)

        verdict = await limiter.check("K", parse_limit("5/minute"))

        assert verdict.allowed is False
        assert verdict.retry_after_seconds == 12
        store.incr.assert_not_awaited()
        store.set.assert_not_awaited()


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_check_then_act_over_admits_racing_requests(self, clock) -> None:
        limiter = FixedWindowRateLimiter(YieldingStore(clock=clock))
        spec = parse_limit("3/minute")

        verdicts = await asyncio.gather(*(limiter.check("K", spec) for _ in range(10)))

        # Every racer reads "absent" before any of them writes.
        assert sum(v.allowed for v in verdicts) > spec.quota

    @pytest.mark.asyncio
    async def test_atomic_strategy_holds_cap_under_races(self, clock) -> None:
        limiter = FixedWindowRateLimiter(YieldingStore(clock=clock), strategy="atomic")
        spec = parse_limit("3/minute")

        verdicts = await asyncio.gather(*(limiter.check("K", spec) for _ in range(10)))

        assert sum(v.allowed for v in verdicts) == spec.quota


def test_unknown_strategy_rejected(store) -> None:
    with pytest.raises(ValueError):
        FixedWindowRateLimiter(store, strategy="sliding_window")  # type: ignore[arg-type]
