"""
ngo_portal/services/mutation_controller.py

Tracks one write operation at a time: idle -> pending -> success | error.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Generic, TypeVar

from ngo_portal.errors import PortalError, ReportValidationError, ServerError

logger = logging.getLogger(__name__)

TInput = TypeVar("TInput")
TResult = TypeVar("TResult")


class MutationState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class MutationController(Generic[TInput, TResult]):
    """
    Runs a write operation with at most one call in flight.

    Triggering while pending is a no-op. Failures are never retried; the
    caller decides what to do with `field_errors` and `error_message`.
    """

    def __init__(
        self,
        operation: Callable[[TInput], Awaitable[TResult]],
        *,
        name: str,
        on_success: Callable[[TResult, TInput], None] | None = None,
        on_error: Callable[[PortalError, TInput], None] | None = None,
    ) -> None:
        self._operation = operation
        self.name = name
        self._on_success = on_success
        self._on_error = on_error
        self._state = MutationState.IDLE
        self._result: TResult | None = None
        self._error: PortalError | None = None

    @property
    def state(self) -> MutationState:
        return self._state

    @property
    def is_pending(self) -> bool:
        return self._state is MutationState.PENDING

    @property
    def result(self) -> TResult | None:
        return self._result

    @property
    def error(self) -> PortalError | None:
        return self._error

    @property
    def field_errors(self) -> dict[str, str]:
        if isinstance(self._error, ServerError):
            return self._error.field_error_map()
        if isinstance(self._error, ReportValidationError):
            return dict(self._error.field_errors)
        return {}

    @property
    def error_message(self) -> str | None:
        """
        The server- or validator-supplied message, if any.

        Transport failures carry no user-facing message.
        """

        if isinstance(self._error, (ServerError, ReportValidationError)):
            return self._error.message or None
        return None

    async def trigger(self, payload: TInput) -> TResult | None:
        """
        Run the operation unless one is already pending.

        Returns the result on success and None otherwise.
        """

        if self._state is MutationState.PENDING:
            logger.debug("Mutation already pending name=%s; trigger ignored", self.name)
            return None

        self._state = MutationState.PENDING
        self._result = None
        self._error = None
        try:
            result = await self._operation(payload)
        except PortalError as exc:
            self._state = MutationState.ERROR
            self._error = exc
            logger.info("Mutation failed name=%s error_type=%s error=%s", self.name, type(exc).__name__, exc)
            if self._on_error is not None:
                self._on_error(exc, payload)
            return None
        except BaseException:
            self._state = MutationState.ERROR
            raise

        self._state = MutationState.SUCCESS
        self._result = result
        logger.info("Mutation succeeded name=%s", self.name)
        if self._on_success is not None:
            self._on_success(result, payload)
        return result

    def reset(self) -> None:
        if self._state is MutationState.PENDING:
            return
        self._state = MutationState.IDLE
        self._result = None
        self._error = None
