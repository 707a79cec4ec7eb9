"""
ngo_portal/services/report_submission.py

Single report submission flow: local validation, one write in flight,
form reset on success and per-field error mapping on failure.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ngo_portal.connectors.portal_api_client import PortalAPIClient
from ngo_portal.errors import PortalError, ReportValidationError
from ngo_portal.schemas.report import ReportSubmission, validate_report
from ngo_portal.schemas.responses import SubmitReportResponse
from ngo_portal.services.dashboard import DASHBOARD_OPERATION
from ngo_portal.services.mutation_controller import MutationController
from ngo_portal.services.notifications import NotificationQueue
from ngo_portal.services.query_cache import QueryCache, make_key

logger = logging.getLogger(__name__)

DEFAULT_SUCCESS_MESSAGE = "Report submitted successfully"
DEFAULT_FAILURE_MESSAGE = "Failed to submit report. Please try again."


class ReportSubmissionWorkflow:
    """
    Non-visual state behind the "Submit Monthly Report" form.
    """

    def __init__(
        self,
        *,
        client: PortalAPIClient,
        notifications: NotificationQueue,
        cache: QueryCache | None = None,
    ) -> None:
        self._notifications = notifications
        self._cache = cache
        self.form: dict[str, Any] = {}
        self.field_errors: dict[str, str] = {}
        self.server_error: str | None = None
        self.mutation: MutationController[ReportSubmission, SubmitReportResponse] = MutationController(
            client.submit_report,
            name="submit_report",
            on_success=self._handle_success,
            on_error=self._handle_error,
        )

    @property
    def is_submitting(self) -> bool:
        return self.mutation.is_pending

    async def submit(self, values: Mapping[str, Any]) -> SubmitReportResponse | None:
        """
        Validate `values` and send them; returns the server response on success.
        """

        self.form = dict(values)
        self.server_error = None
        try:
            submission = validate_report(values)
        except ReportValidationError as exc:
            self.field_errors = dict(exc.field_errors)
            logger.info("Report rejected locally fields=%s", sorted(self.field_errors))
            return None

        self.field_errors = {}
        return await self.mutation.trigger(submission)

    def reset(self) -> None:
        self.form = {}
        self.field_errors = {}
        self.server_error = None
        self.mutation.reset()

    def _handle_success(self, response: SubmitReportResponse, submission: ReportSubmission) -> None:
        self.form = {}
        self.field_errors = {}
        self.server_error = None
        self._notifications.success(response.message or DEFAULT_SUCCESS_MESSAGE)
        if self._cache is not None:
            self._cache.invalidate(make_key(DASHBOARD_OPERATION, submission.month))

    def _handle_error(self, error: PortalError, submission: ReportSubmission) -> None:
        self.field_errors = self.mutation.field_errors
        self.server_error = self.mutation.error_message or DEFAULT_FAILURE_MESSAGE
        self._notifications.error(self.server_error)
