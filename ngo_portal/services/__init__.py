"""
ngo_portal/services package marker.
"""

from ngo_portal.services.bulk_upload import BulkUploadWorkflow
from ngo_portal.services.dashboard import DashboardState, DashboardView, DashboardWorkflow
from ngo_portal.services.job_poll_controller import JobPollController, PollState
from ngo_portal.services.job_progress import JobProgress
from ngo_portal.services.mutation_controller import MutationController, MutationState
from ngo_portal.services.notifications import Notification, NotificationQueue, Severity
from ngo_portal.services.query_cache import CacheEntry, QueryCache, QueryStatus, make_key
from ngo_portal.services.report_submission import ReportSubmissionWorkflow

__all__ = [
    "BulkUploadWorkflow",
    "CacheEntry",
    "DashboardState",
    "DashboardView",
    "DashboardWorkflow",
    "JobPollController",
    "JobProgress",
    "MutationController",
    "MutationState",
    "Notification",
    "NotificationQueue",
    "PollState",
    "QueryCache",
    "QueryStatus",
    "ReportSubmissionWorkflow",
    "Severity",
    "make_key",
]
