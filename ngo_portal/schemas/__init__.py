"""
ngo_portal/schemas package marker.
"""

from ngo_portal.schemas.report import ReportSubmission, validate_report
from ngo_portal.schemas.responses import (
    DashboardResponse,
    ErrorResponse,
    JobStatusResponse,
    SubmitReportResponse,
    UploadAcceptedResponse,
)

__all__ = [
    "DashboardResponse",
    "ErrorResponse",
    "JobStatusResponse",
    "ReportSubmission",
    "SubmitReportResponse",
    "UploadAcceptedResponse",
    "validate_report",
]
