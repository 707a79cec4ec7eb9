"""
ngo_portal/services/bulk_upload.py

Bulk CSV upload flow.

The upload mutation returns a job id which is handed to the job poll
controller; terminal job states are turned into notifications and clear
the selected file.
"""

from __future__ import annotations

import logging

from ngo_portal.connectors.portal_api_client import PortalAPIClient
from ngo_portal.domain.reports import CSVUpload, IngestionJob, JobStatus
from ngo_portal.errors import CSVUploadValidationError, PortalError
from ngo_portal.schemas.responses import UploadAcceptedResponse
from ngo_portal.services.dashboard import DASHBOARD_OPERATION
from ngo_portal.services.job_poll_controller import JobPollController, PollState
from ngo_portal.services.job_progress import JobProgress
from ngo_portal.services.mutation_controller import MutationController
from ngo_portal.services.notifications import NotificationQueue
from ngo_portal.services.query_cache import QueryCache
from ngo_portal.validators.csv_upload_validator import missing_csv_columns, validate_csv_upload

logger = logging.getLogger(__name__)

DEFAULT_UPLOAD_FAILURE_MESSAGE = "Upload failed. Please try again."
JOB_SUCCESS_MESSAGE = "Upload completed successfully."
JOB_FAILURE_MESSAGE = "Upload failed. Please fix the CSV and try again."


class BulkUploadWorkflow:
    """
    Non-visual state behind the "Bulk Upload (CSV)" page.
    """

    def __init__(
        self,
        *,
        client: PortalAPIClient,
        poller: JobPollController,
        notifications: NotificationQueue,
        cache: QueryCache | None = None,
    ) -> None:
        self._poller = poller
        self._notifications = notifications
        self._cache = cache
        self.selected_file: CSVUpload | None = None
        self.mutation: MutationController[CSVUpload, UploadAcceptedResponse] = MutationController(
            client.upload_csv,
            name="upload_csv",
            on_success=self._handle_upload_success,
            on_error=self._handle_upload_error,
        )
        self._poller.add_listener(self._handle_job_update)

    @property
    def job_id(self) -> str | None:
        return self._poller.job_id

    @property
    def is_job_active(self) -> bool:
        return self._poller.state is PollState.POLLING

    @property
    def can_upload(self) -> bool:
        return self.selected_file is not None and not self.mutation.is_pending and not self.is_job_active

    @property
    def progress(self) -> JobProgress | None:
        job = self._poller.latest
        return JobProgress.from_job(job) if job is not None else None

    def select_file(self, upload: CSVUpload) -> bool:
        """
        Accept `upload` if it looks like a CSV; returns whether it was kept.
        """

        try:
            validate_csv_upload(upload)
        except CSVUploadValidationError as exc:
            self._notifications.error(exc.message)
            return False

        missing = missing_csv_columns(upload)
        if missing:
            logger.warning("CSV header is missing columns file=%s missing=%s", upload.filename, missing)
        self.selected_file = upload
        return True

    async def upload(self) -> UploadAcceptedResponse | None:
        if not self.can_upload:
            logger.debug(
                "Upload ignored has_file=%s pending=%s job_active=%s",
                self.selected_file is not None,
                self.mutation.is_pending,
                self.is_job_active,
            )
            return None
        return await self.mutation.trigger(self.selected_file)

    async def wait_for_job(self) -> IngestionJob | None:
        return await self._poller.wait_settled()

    def cancel(self) -> None:
        self._poller.cancel()
        self.selected_file = None

    def _handle_upload_success(self, accepted: UploadAcceptedResponse, upload: CSVUpload) -> None:
        self._poller.start(accepted.job_id)
        self._notifications.info(f"Upload started. Job ID: {accepted.job_id}")

    def _handle_upload_error(self, error: PortalError, upload: CSVUpload) -> None:
        self._notifications.error(self.mutation.error_message or DEFAULT_UPLOAD_FAILURE_MESSAGE)
        self.selected_file = None

    def _handle_job_update(self, job: IngestionJob) -> None:
        if job.status is JobStatus.SUCCESS:
            self._notifications.success(JOB_SUCCESS_MESSAGE)
            self.selected_file = None
            if self._cache is not None:
                self._cache.invalidate_operation(DASHBOARD_OPERATION)
        elif job.status is JobStatus.FAILED:
            self._notifications.error(JOB_FAILURE_MESSAGE)
            if job.error_message:
                self._notifications.error(job.error_message)
            self.selected_file = None
