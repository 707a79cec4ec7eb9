"""
tests/test_query_cache.py

Single-flight keyed cache.

Coverage
--------
- Concurrent fetches for one key share one producer call
- Distinct keys fetch independently
- `enabled=False` never runs the producer
- Retry applies to transport failures only, bounded by the retry count
- Refetch supersedes an in-flight cycle; late results are discarded
- Removed keys discard late results
- Invalidation during a fetch restarts the cycle; waiters get the new result
- Superseded producers are cancelled; cancelling one waiter leaves the cycle running
- Errors reach every subscriber and never escape fetch
"""

from __future__ import annotations

import asyncio
from typing import Any

from ngo_portal.config import QuerySettings
from ngo_portal.errors import NetworkError, ServerError
from ngo_portal.services.query_cache import CacheEntry, QueryCache, QueryStatus, make_key

KEY = make_key("dashboard", "2025-09")


async def _no_sleep(_seconds: float) -> None:
    return None


def _cache(max_retries: int = 3) -> QueryCache:
    return QueryCache(
        settings=QuerySettings(
            max_retries=max_retries,
            backoff_initial_seconds=0.0,
            backoff_multiplier=2.0,
            backoff_max_seconds=0.0,
        ),
        sleep=_no_sleep,
    )


# ---------------------------------------------------------------------------
# Single-flight
# ---------------------------------------------------------------------------


def test_concurrent_fetches_share_one_request() -> None:
    state = {"calls": 0, "active": 0, "max_active": 0}

    async def scenario() -> list[CacheEntry]:
        release = asyncio.Event()

        async def producer() -> str:
            state["calls"] += 1
            state["active"] += 1
            state["max_active"] = max(state["max_active"], state["active"])
            await release.wait()
            state["active"] -= 1
            return "payload"

        cache = _cache()
        waiters = [asyncio.create_task(cache.fetch(KEY, producer)) for _ in range(5)]
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        more = [asyncio.create_task(cache.fetch(KEY, producer)) for _ in range(3)]
        release.set()
        return await asyncio.gather(*waiters, *more)

    entries = asyncio.run(scenario())

    assert state["calls"] == 1
    assert state["max_active"] == 1
    assert all(entry is entries[0] for entry in entries)
    assert entries[0].status is QueryStatus.SUCCESS
    assert entries[0].data == "payload"


def test_distinct_keys_fetch_independently() -> None:
    calls: list[str] = []

    async def scenario() -> None:
        cache = _cache()

        def producer_for(month: str):
            async def producer() -> str:
                calls.append(month)
                return month

            return producer

        await asyncio.gather(
            cache.fetch(make_key("dashboard", "2025-08"), producer_for("2025-08")),
            cache.fetch(make_key("dashboard", "2025-09"), producer_for("2025-09")),
        )

    asyncio.run(scenario())

    assert sorted(calls) == ["2025-08", "2025-09"]


def test_successful_entry_is_served_from_cache_until_forced() -> None:
    calls: list[int] = []

    async def producer() -> int:
        calls.append(1)
        return len(calls)

    async def scenario() -> tuple[Any, Any, Any]:
        cache = _cache()
        first = (await cache.fetch(KEY, producer)).data
        second = (await cache.fetch(KEY, producer)).data
        forced = (await cache.fetch(KEY, producer, force=True)).data
        return first, second, forced

    assert asyncio.run(scenario()) == (1, 1, 2)


def test_disabled_fetch_never_runs_producer() -> None:
    calls: list[int] = []

    async def producer() -> None:
        calls.append(1)

    async def scenario() -> CacheEntry:
        return await _cache().fetch(make_key("jobStatus", None), producer, enabled=False)

    entry = asyncio.run(scenario())

    assert calls == []
    assert entry.status is QueryStatus.IDLE


# ---------------------------------------------------------------------------
# Retry policy
# ---------------------------------------------------------------------------


class TestRetry:
    def test_transport_failures_are_retried(self) -> None:
        outcomes: list[Any] = [NetworkError("down"), NetworkError("down"), "ok"]
        calls: list[int] = []

        async def producer() -> str:
            calls.append(1)
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        entry = asyncio.run(_cache(max_retries=3).fetch(KEY, producer))

        assert len(calls) == 3
        assert entry.status is QueryStatus.SUCCESS
        assert entry.data == "ok"
        assert entry.failure_count == 0

    def test_retries_are_bounded(self) -> None:
        calls: list[int] = []

        async def producer() -> None:
            calls.append(1)
            raise NetworkError("down")

        entry = asyncio.run(_cache().fetch(KEY, producer, retries=2))

        assert len(calls) == 3
        assert entry.status is QueryStatus.ERROR
        assert isinstance(entry.error, NetworkError)

    def test_application_errors_are_not_retried(self) -> None:
        calls: list[int] = []

        async def producer() -> None:
            calls.append(1)
            raise ServerError(http_status=500, message="boom")

        entry = asyncio.run(_cache(max_retries=3).fetch(KEY, producer))

        assert len(calls) == 1
        assert entry.status is QueryStatus.ERROR
        assert isinstance(entry.error, ServerError)

    def test_unexpected_errors_resolve_entry(self) -> None:
        async def producer() -> None:
            raise KeyError("bad payload")

        entry = asyncio.run(_cache().fetch(KEY, producer))

        assert entry.status is QueryStatus.ERROR
        assert isinstance(entry.error, KeyError)

    def test_error_keeps_last_data(self) -> None:
        async def scenario() -> CacheEntry:
            cache = _cache(max_retries=0)

            async def ok() -> str:
                return "first"

            async def fail() -> None:
                raise NetworkError("down")

            await cache.fetch(KEY, ok)
            return await cache.refetch(KEY, fail)

        entry = asyncio.run(scenario())

        assert entry.status is QueryStatus.ERROR
        assert entry.data == "first"


# ---------------------------------------------------------------------------
# Supersession
# ---------------------------------------------------------------------------


class TestSupersession:
    def test_refetch_discards_late_stale_result(self) -> None:
        async def scenario() -> tuple[CacheEntry, CacheEntry, Any]:
            release_stale = asyncio.Event()
            cache = _cache()

            async def slow() -> str:
                await release_stale.wait()
                return "stale"

            async def fast() -> str:
                return "fresh"

            stale_waiter = asyncio.create_task(cache.fetch(KEY, slow))
            await asyncio.sleep(0)
            fresh = await cache.refetch(KEY, fast)
            release_stale.set()
            joined = await stale_waiter
            for _ in range(3):
                await asyncio.sleep(0)
            return fresh, joined, cache.get(KEY).data

        fresh, joined, final_data = asyncio.run(scenario())

        assert fresh.data == "fresh"
        assert joined is fresh
        assert final_data == "fresh"

    def test_refetch_discards_late_stale_error(self) -> None:
        async def scenario() -> CacheEntry:
            release_stale = asyncio.Event()
            cache = _cache(max_retries=0)

            async def slow_failure() -> None:
                await release_stale.wait()
                raise ServerError(http_status=500, message="old failure")

            async def fast() -> str:
                return "fresh"

            stale_waiter = asyncio.create_task(cache.fetch(KEY, slow_failure))
            await asyncio.sleep(0)
            await cache.refetch(KEY, fast)
            release_stale.set()
            await stale_waiter
            for _ in range(3):
                await asyncio.sleep(0)
            return cache.get(KEY)

        entry = asyncio.run(scenario())

        assert entry.status is QueryStatus.SUCCESS
        assert entry.error is None

    def test_removed_key_discards_late_result(self) -> None:
        async def scenario() -> tuple[CacheEntry, CacheEntry | None]:
            release = asyncio.Event()
            cache = _cache()

            async def slow() -> str:
                await release.wait()
                return "late"

            waiter = asyncio.create_task(cache.fetch(KEY, slow))
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            cache.remove(KEY)
            release.set()
            detached = await waiter
            for _ in range(3):
                await asyncio.sleep(0)
            return detached, cache.get(KEY)

        detached, current = asyncio.run(scenario())

        assert current is None
        assert detached.data is None

    def test_invalidate_during_fetch_restarts_cycle_for_waiters(self) -> None:
        calls: list[str] = []

        async def scenario() -> CacheEntry:
            gate = asyncio.Event()
            cache = _cache()

            async def producer() -> str:
                calls.append("call")
                if len(calls) == 1:
                    await gate.wait()
                    return "before invalidate"
                return "after invalidate"

            waiter = asyncio.create_task(cache.fetch(KEY, producer))
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            cache.invalidate(KEY)
            gate.set()
            return await waiter

        entry = asyncio.run(scenario())

        assert entry.status is QueryStatus.SUCCESS
        assert entry.data == "after invalidate"
        assert entry.stale is False
        assert len(calls) == 2

    def test_refetch_cancels_superseded_producer(self) -> None:
        state = {"active": 0, "max_active": 0, "cancelled": 0}

        async def scenario() -> CacheEntry:
            gate = asyncio.Event()
            cache = _cache()

            async def slow() -> str:
                state["active"] += 1
                state["max_active"] = max(state["max_active"], state["active"])
                try:
                    await gate.wait()
                    return "stale"
                except asyncio.CancelledError:
                    state["cancelled"] += 1
                    raise
                finally:
                    state["active"] -= 1

            async def fast() -> str:
                state["active"] += 1
                state["max_active"] = max(state["max_active"], state["active"])
                state["active"] -= 1
                return "fresh"

            waiter = asyncio.create_task(cache.fetch(KEY, slow))
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            fresh = await cache.refetch(KEY, fast)
            joined = await waiter
            assert joined is fresh
            return fresh

        entry = asyncio.run(scenario())

        assert entry.data == "fresh"
        assert state["cancelled"] == 1
        assert state["max_active"] == 1

    def test_cancelled_waiter_does_not_cancel_shared_cycle(self) -> None:
        async def scenario() -> tuple[bool, CacheEntry]:
            gate = asyncio.Event()
            cache = _cache()

            async def producer() -> str:
                await gate.wait()
                return "shared"

            first = asyncio.create_task(cache.fetch(KEY, producer))
            second = asyncio.create_task(cache.fetch(KEY, producer))
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            first.cancel()
            await asyncio.sleep(0)
            gate.set()
            entry = await second
            return first.cancelled(), entry

        first_cancelled, entry = asyncio.run(scenario())

        assert first_cancelled
        assert entry.status is QueryStatus.SUCCESS
        assert entry.data == "shared"

    def test_invalidate_marks_stale_and_next_fetch_reloads(self) -> None:
        calls: list[int] = []

        async def producer() -> int:
            calls.append(1)
            return len(calls)

        async def scenario() -> tuple[bool, int]:
            cache = _cache()
            await cache.fetch(KEY, producer)
            cache.invalidate(KEY)
            stale = cache.get(KEY).stale
            entry = await cache.fetch(KEY, producer)
            return stale, entry.data

        stale, data = asyncio.run(scenario())

        assert stale is True
        assert data == 2

    def test_invalidate_operation_only_touches_matching_keys(self) -> None:
        async def producer() -> str:
            return "x"

        async def scenario() -> QueryCache:
            cache = _cache()
            await cache.fetch(make_key("dashboard", "2025-08"), producer)
            await cache.fetch(make_key("jobStatus", "J1"), producer)
            cache.invalidate_operation("dashboard")
            return cache

        cache = asyncio.run(scenario())

        assert cache.get(make_key("dashboard", "2025-08")).stale is True
        assert cache.get(make_key("jobStatus", "J1")).stale is False


# ---------------------------------------------------------------------------
# Subscribers
# ---------------------------------------------------------------------------


def test_errors_reach_every_subscriber() -> None:
    seen: dict[str, list[QueryStatus]] = {"a": [], "b": []}

    async def producer() -> None:
        raise NetworkError("down")

    async def scenario() -> None:
        cache = _cache(max_retries=0)
        cache.subscribe(KEY, lambda entry: seen["a"].append(entry.status))
        unsubscribe = cache.subscribe(KEY, lambda entry: seen["b"].append(entry.status))
        await cache.fetch(KEY, producer)
        unsubscribe()
        await cache.refetch(KEY, producer)

    asyncio.run(scenario())

    assert seen["a"] == [QueryStatus.LOADING, QueryStatus.ERROR, QueryStatus.LOADING, QueryStatus.ERROR]
    assert seen["b"] == [QueryStatus.LOADING, QueryStatus.ERROR]


def test_failing_listener_does_not_break_fetch() -> None:
    async def producer() -> str:
        return "ok"

    def broken(_entry: CacheEntry) -> None:
        raise RuntimeError("listener bug")

    async def scenario() -> CacheEntry:
        cache = _cache()
        cache.subscribe(KEY, broken)
        return await cache.fetch(KEY, producer)

    assert asyncio.run(scenario()).status is QueryStatus.SUCCESS
