"""
ngo_portal/services/query_cache.py

Keyed cache over asynchronous reads.

Guarantees at most one producer call per key at a time: concurrent callers
for the same key await the same task. Every fetch cycle is stamped with the
key's generation; refetch/invalidate/remove bump the generation and cancel
the superseded cycle. A blocking transport call already running in a worker
thread cannot be interrupted, so a superseded result is also checked against
the generation and discarded instead of overwriting newer state. Waiters
follow the replacement cycle.

The cache is the only writer of its entries and runs on a single event
loop, so it needs no locks.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from ngo_portal.config import QuerySettings, get_query_settings
from ngo_portal.errors import NetworkError
from ngo_portal.logging_utils import log_event

logger = logging.getLogger(__name__)

QueryKey = tuple[str, tuple[Any, ...]]
Producer = Callable[[], Awaitable[Any]]
Listener = Callable[["CacheEntry"], None]


def make_key(operation: str, *params: Any) -> QueryKey:
    return (operation, tuple(params))


class QueryStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class CacheEntry:
    """
    Cached state for one (operation, params) key.
    """

    key: QueryKey
    status: QueryStatus = QueryStatus.IDLE
    data: Any = None
    error: BaseException | None = None
    generation: int = 0
    in_flight: asyncio.Task[None] | None = None
    failure_count: int = 0
    stale: bool = False
    updated_at: datetime | None = None
    producer: Producer | None = field(default=None, repr=False)
    retries: int | None = None

    @property
    def is_fetching(self) -> bool:
        return self.in_flight is not None


class QueryCache:
    """
    Single-flight cache with bounded retry for transport failures.
    """

    def __init__(
        self,
        *,
        settings: QuerySettings | None = None,
        retryable_errors: tuple[type[BaseException], ...] = (NetworkError,),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings or get_query_settings()
        self._retryable_errors = retryable_errors
        self._sleep = sleep
        self._entries: dict[QueryKey, CacheEntry] = {}
        self._listeners: dict[QueryKey, list[Listener]] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def get(self, key: QueryKey) -> CacheEntry | None:
        return self._entries.get(key)

    def keys(self) -> list[QueryKey]:
        return list(self._entries)

    def subscribe(self, key: QueryKey, listener: Listener) -> Callable[[], None]:
        """
        Register a listener called on every state change of `key`.

        Returns a callable that removes the listener.
        """

        self._listeners.setdefault(key, []).append(listener)

        def _unsubscribe() -> None:
            listeners = self._listeners.get(key)
            if listeners and listener in listeners:
                listeners.remove(listener)
                if not listeners:
                    del self._listeners[key]

        return _unsubscribe

    async def fetch(
        self,
        key: QueryKey,
        producer: Producer,
        *,
        enabled: bool = True,
        retries: int | None = None,
        force: bool = False,
    ) -> CacheEntry:
        """
        Return the entry for `key` once its current cycle has settled.

        Joins an in-flight cycle when one exists. A fresh successful entry is
        served from cache unless `force` is set. When `enabled` is false the
        entry is created idle and nothing runs.
        """

        entry = self._ensure_entry(key)
        if not enabled:
            return entry

        needs_fetch = force or entry.stale or entry.status is not QueryStatus.SUCCESS
        if entry.in_flight is None and needs_fetch:
            self._start_cycle(entry, producer, retries)
        return await self._wait(entry)

    async def refetch(
        self,
        key: QueryKey,
        producer: Producer,
        *,
        retries: int | None = None,
    ) -> CacheEntry:
        """
        Supersede any in-flight cycle for `key` and start a new one.
        """

        entry = self._ensure_entry(key)
        self._supersede(entry)
        self._start_cycle(entry, producer, retries)
        return await self._wait(entry)

    def invalidate(self, key: QueryKey) -> None:
        """
        Mark `key` stale and supersede any in-flight cycle; data is kept.

        When a cycle was running, a new one is started with the same producer
        so callers already waiting on the key still receive a settled entry.
        Otherwise the next `fetch` reloads the stale entry.
        """

        entry = self._entries.get(key)
        if entry is None:
            return
        was_fetching = entry.in_flight is not None
        self._supersede(entry)
        entry.stale = True
        log_event(
            logger,
            logging.DEBUG,
            "query_invalidated",
            key=key,
            generation=entry.generation,
            restarted=was_fetching,
        )
        if was_fetching and entry.producer is not None:
            self._start_cycle(entry, entry.producer, entry.retries)
            return
        if entry.status is QueryStatus.LOADING:
            entry.status = QueryStatus.SUCCESS if entry.data is not None else QueryStatus.IDLE
        self._notify(entry)

    def invalidate_operation(self, operation: str) -> None:
        for key in [key for key in self._entries if key[0] == operation]:
            self.invalidate(key)

    def remove(self, key: QueryKey) -> None:
        """
        Drop `key` entirely and cancel any cycle still running for it.
        """

        entry = self._entries.pop(key, None)
        if entry is None:
            return
        self._supersede(entry)
        log_event(logger, logging.DEBUG, "query_removed", key=key, generation=entry.generation)

    def clear(self) -> None:
        for key in list(self._entries):
            self.remove(key)

    def _ensure_entry(self, key: QueryKey) -> CacheEntry:
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(key=key)
            self._entries[key] = entry
        return entry

    def _supersede(self, entry: CacheEntry) -> None:
        entry.generation += 1
        task = entry.in_flight
        entry.in_flight = None
        if task is not None and not task.done():
            task.cancel()

    def _start_cycle(self, entry: CacheEntry, producer: Producer, retries: int | None) -> None:
        entry.generation += 1
        generation = entry.generation
        entry.status = QueryStatus.LOADING
        entry.stale = False
        entry.producer = producer
        entry.retries = retries
        max_retries = self._settings.max_retries if retries is None else max(0, retries)

        task = asyncio.get_running_loop().create_task(
            self._run_cycle(entry, generation, producer, max_retries)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        entry.in_flight = task
        log_event(logger, logging.DEBUG, "query_started", key=entry.key, generation=generation)
        self._notify(entry)

    async def _wait(self, entry: CacheEntry) -> CacheEntry:
        while entry.in_flight is not None:
            task = entry.in_flight
            # asyncio.wait neither cancels the cycle nor raises when it is cancelled.
            await asyncio.wait({task})
            if entry.in_flight is task:
                break
        return entry

    def _is_current(self, entry: CacheEntry, generation: int) -> bool:
        return self._entries.get(entry.key) is entry and entry.generation == generation

    async def _run_cycle(
        self,
        entry: CacheEntry,
        generation: int,
        producer: Producer,
        max_retries: int,
    ) -> None:
        attempt = 0
        while True:
            try:
                data = await producer()
            except self._retryable_errors as exc:
                if not self._is_current(entry, generation):
                    self._log_discarded(entry, generation)
                    return
                entry.failure_count += 1
                if attempt >= max_retries:
                    self._settle_error(entry, exc)
                    return

                wait_seconds = self._backoff_seconds(attempt)
                attempt += 1
                log_event(
                    logger,
                    logging.WARNING,
                    "query_retry",
                    key=entry.key,
                    attempt=attempt,
                    max_retries=max_retries,
                    wait_seconds=round(wait_seconds, 3),
                    error=str(exc),
                )
                await self._sleep(wait_seconds)
                if not self._is_current(entry, generation):
                    self._log_discarded(entry, generation)
                    return
                continue
            except Exception as exc:
                if not self._is_current(entry, generation):
                    self._log_discarded(entry, generation)
                    return
                self._settle_error(entry, exc)
                return

            if not self._is_current(entry, generation):
                self._log_discarded(entry, generation)
                return
            self._settle_success(entry, data)
            return

    def _settle_success(self, entry: CacheEntry, data: Any) -> None:
        entry.status = QueryStatus.SUCCESS
        entry.data = data
        entry.error = None
        entry.failure_count = 0
        entry.in_flight = None
        entry.updated_at = datetime.now(timezone.utc)
        log_event(logger, logging.DEBUG, "query_succeeded", key=entry.key, generation=entry.generation)
        self._notify(entry)

    def _settle_error(self, entry: CacheEntry, exc: BaseException) -> None:
        entry.status = QueryStatus.ERROR
        entry.error = exc
        entry.in_flight = None
        entry.updated_at = datetime.now(timezone.utc)
        log_event(
            logger,
            logging.WARNING,
            "query_failed",
            key=entry.key,
            generation=entry.generation,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        self._notify(entry)

    def _log_discarded(self, entry: CacheEntry, generation: int) -> None:
        log_event(
            logger,
            logging.DEBUG,
            "query_result_discarded",
            key=entry.key,
            generation=generation,
            current_generation=entry.generation,
        )

    def _backoff_seconds(self, attempt: int) -> float:
        delay = self._settings.backoff_initial_seconds * (self._settings.backoff_multiplier**attempt)
        return min(delay, self._settings.backoff_max_seconds)

    def _notify(self, entry: CacheEntry) -> None:
        for listener in list(self._listeners.get(entry.key, ())):
            try:
                listener(entry)
            except Exception:
                logger.exception("Query listener failed key=%s", entry.key)
