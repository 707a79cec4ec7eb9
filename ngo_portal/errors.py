"""
Portal client exceptions.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from ngo_portal.domain.reports import FieldError


class PortalError(Exception):
    """Base exception for portal client failures."""


class ReportValidationError(PortalError):
    """
    Raised before submission when local validation fails.

    Never reaches the network.
    """

    def __init__(self, message: str, field_errors: Mapping[str, str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field_errors: dict[str, str] = dict(field_errors or {})


class CSVUploadValidationError(ReportValidationError):
    """Raised when a selected file is not an uploadable CSV."""


class NetworkError(PortalError):
    """Raised on transport failures and timeouts."""


class ServerError(PortalError):
    """
    Raised when the backend answers with a non-2xx status or an unusable body.
    """

    def __init__(
        self,
        *,
        http_status: int,
        message: str | None,
        field_errors: Iterable[FieldError] = (),
    ) -> None:
        super().__init__(message or f"Request failed with status {http_status}.")
        self.http_status = http_status
        self.message = message
        self.field_errors: tuple[FieldError, ...] = tuple(field_errors)

    def field_error_map(self) -> dict[str, str]:
        return {error.field: error.message for error in self.field_errors}


class EmptyStateError(PortalError):
    """Raised when the dashboard has no data for the requested month."""

    def __init__(self, month: str) -> None:
        super().__init__(f"No reports found for month {month}.")
        self.month = month


class TerminalJobFailure(PortalError):
    """Describes an ingestion job that finished in the failed state."""

    def __init__(self, job_id: str, error_message: str | None) -> None:
        super().__init__(error_message or f"Ingestion job {job_id} failed.")
        self.job_id = job_id
        self.error_message = error_message
