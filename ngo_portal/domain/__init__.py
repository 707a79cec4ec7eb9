"""
ngo_portal/domain package marker.
"""

from ngo_portal.domain.reports import CSVUpload, DashboardSnapshot, FieldError, IngestionJob, JobStatus

__all__ = [
    "CSVUpload",
    "DashboardSnapshot",
    "FieldError",
    "IngestionJob",
    "JobStatus",
]
