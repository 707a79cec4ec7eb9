"""
ngo_portal/services/job_poll_controller.py

Polls an ingestion job's status until it reaches a terminal state.

States:
    idle     -- no job id
    polling  -- job id present, status pending/processing or not fetched yet
    settled  -- last observed status is success or failed

Polls are spaced `interval_seconds` apart, measured from the end of the
previous poll. Cancelling discards the job id; a poll already dispatched
cannot be aborted, so its result is dropped on arrival when the job id no
longer matches.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from ngo_portal.config import JobPollSettings, get_job_poll_settings
from ngo_portal.domain.reports import IngestionJob, JobStatus
from ngo_portal.errors import TerminalJobFailure
from ngo_portal.logging_utils import log_event
from ngo_portal.services.query_cache import QueryCache, QueryKey, QueryStatus, make_key

logger = logging.getLogger(__name__)

JOB_STATUS_OPERATION = "jobStatus"

StatusFetcher = Callable[[str], Awaitable[IngestionJob]]
JobListener = Callable[[IngestionJob], None]


class PollState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    SETTLED = "settled"


def job_status_key(job_id: str) -> QueryKey:
    return make_key(JOB_STATUS_OPERATION, job_id)


class JobPollController:
    """
    State machine driving `get_job_status` reads through the query cache.
    """

    def __init__(
        self,
        *,
        fetch_status: StatusFetcher,
        cache: QueryCache,
        settings: JobPollSettings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        settings = settings or get_job_poll_settings()
        self._fetch_status = fetch_status
        self._cache = cache
        self._interval_seconds = settings.interval_seconds
        self._max_retries = settings.max_retries
        self._sleep = sleep
        self._job_id: str | None = None
        self._state = PollState.IDLE
        self._latest: IngestionJob | None = None
        self._last_error: BaseException | None = None
        self._task: asyncio.Task[None] | None = None
        self._listeners: list[JobListener] = []

    @property
    def state(self) -> PollState:
        return self._state

    @property
    def job_id(self) -> str | None:
        return self._job_id

    @property
    def latest(self) -> IngestionJob | None:
        return self._latest

    @property
    def last_error(self) -> BaseException | None:
        return self._last_error

    @property
    def failure(self) -> TerminalJobFailure | None:
        if self._latest is None or self._latest.status is not JobStatus.FAILED:
            return None
        return TerminalJobFailure(self._latest.job_id, self._latest.error_message)

    def add_listener(self, listener: JobListener) -> None:
        self._listeners.append(listener)

    def start(self, job_id: str) -> asyncio.Task[None]:
        """
        Begin polling `job_id`, superseding any job currently tracked.
        """

        if self._job_id is not None:
            self.cancel()

        self._job_id = job_id
        self._state = PollState.POLLING
        self._latest = None
        self._last_error = None
        log_event(logger, logging.INFO, "job_poll_started", job_id=job_id)
        self._task = asyncio.get_running_loop().create_task(self._poll_loop(job_id))
        return self._task

    def cancel(self) -> None:
        """
        Stop polling and forget the current job.
        """

        job_id = self._job_id
        if job_id is None and self._state is PollState.IDLE:
            return

        self._job_id = None
        self._state = PollState.IDLE
        self._latest = None
        self._last_error = None
        if job_id is not None:
            self._cache.remove(job_status_key(job_id))
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        log_event(logger, logging.INFO, "job_poll_cancelled", job_id=job_id)

    async def wait_settled(self) -> IngestionJob | None:
        """
        Wait until polling stops, returning the last observed job.
        """

        task = self._task
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
        return self._latest

    async def _poll_loop(self, job_id: str) -> None:
        key = job_status_key(job_id)
        tick = 0
        while self._job_id == job_id:
            tick += 1
            entry = await self._cache.refetch(
                key,
                lambda: self._fetch_status(job_id),
                retries=self._max_retries,
            )
            if self._job_id != job_id:
                log_event(logger, logging.DEBUG, "job_poll_result_ignored", job_id=job_id, tick=tick)
                return

            if entry.status is QueryStatus.ERROR:
                self._last_error = entry.error
                log_event(
                    logger,
                    logging.WARNING,
                    "job_poll_failed",
                    job_id=job_id,
                    tick=tick,
                    error=str(entry.error),
                )
            elif entry.status is QueryStatus.SUCCESS and isinstance(entry.data, IngestionJob):
                self._last_error = None
                self._accept(entry.data)
                if self._state is not PollState.POLLING or self._job_id != job_id:
                    return

            await self._sleep(self._interval_seconds)

    def _accept(self, job: IngestionJob) -> None:
        previous = self._latest
        if previous is not None and job.status.rank < previous.status.rank:
            logger.warning(
                "Ignoring status regression job_id=%s from=%s to=%s",
                job.job_id,
                previous.status.value,
                job.status.value,
            )
            return

        self._latest = job
        log_event(
            logger,
            logging.DEBUG,
            "job_poll_update",
            job_id=job.job_id,
            status=job.status.value,
            processed=job.processed,
            total=job.total,
        )
        if job.is_terminal:
            self._state = PollState.SETTLED
            log_event(
                logger,
                logging.INFO,
                "job_settled",
                job_id=job.job_id,
                status=job.status.value,
                error_message=job.error_message,
            )

        for listener in list(self._listeners):
            try:
                listener(job)
            except Exception:
                logger.exception("Job listener failed job_id=%s", job.job_id)
