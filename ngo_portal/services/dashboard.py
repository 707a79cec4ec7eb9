"""
ngo_portal/services/dashboard.py

Monthly dashboard read path. Each month is an independent cache entry keyed
`("dashboard", (month,))`; "no data" is reported as an empty state, not an
error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum

from ngo_portal.connectors.portal_api_client import PortalAPIClient
from ngo_portal.domain.reports import DashboardSnapshot
from ngo_portal.errors import EmptyStateError, ReportValidationError, ServerError
from ngo_portal.schemas.report import is_valid_month
from ngo_portal.services.query_cache import CacheEntry, QueryCache, QueryKey, QueryStatus, make_key

logger = logging.getLogger(__name__)

DASHBOARD_OPERATION = "dashboard"

EMPTY_MESSAGE = "No reports found for the selected month."
DEFAULT_ERROR_MESSAGE = "Failed to load dashboard data. Please try again."


def current_month(today: date | None = None) -> str:
    today = today or date.today()
    return f"{today.year:04d}-{today.month:02d}"


def dashboard_key(month: str) -> QueryKey:
    return make_key(DASHBOARD_OPERATION, month)


class DashboardState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    EMPTY = "empty"
    ERROR = "error"


@dataclass(frozen=True)
class DashboardView:
    month: str
    state: DashboardState
    snapshot: DashboardSnapshot | None = None
    message: str | None = None

    def metrics(self) -> list[tuple[str, str]]:
        """
        Label/value pairs for the metric cards.
        """

        if self.snapshot is None:
            return []
        snapshot = self.snapshot
        return [
            ("Total NGOs Reporting", str(snapshot.total_ngos_reporting)),
            ("Total People Helped", f"{snapshot.total_people_helped:,}"),
            ("Total Events Conducted", str(snapshot.total_events_conducted)),
            ("Total Funds Utilized", f"₹{snapshot.total_funds_utilized:,}"),
        ]

    @classmethod
    def from_entry(cls, month: str, entry: CacheEntry | None) -> DashboardView:
        if entry is None or entry.status is QueryStatus.IDLE:
            return cls(month=month, state=DashboardState.IDLE, snapshot=_snapshot(entry))
        if entry.status is QueryStatus.LOADING:
            return cls(month=month, state=DashboardState.LOADING, snapshot=_snapshot(entry))
        if entry.status is QueryStatus.SUCCESS:
            return cls(month=month, state=DashboardState.READY, snapshot=_snapshot(entry))

        if isinstance(entry.error, EmptyStateError):
            return cls(month=month, state=DashboardState.EMPTY, message=EMPTY_MESSAGE)
        message = None
        if isinstance(entry.error, ServerError):
            message = entry.error.message
        return cls(
            month=month,
            state=DashboardState.ERROR,
            snapshot=_snapshot(entry),
            message=message or DEFAULT_ERROR_MESSAGE,
        )


def _snapshot(entry: CacheEntry | None) -> DashboardSnapshot | None:
    if entry is None or not isinstance(entry.data, DashboardSnapshot):
        return None
    return entry.data


class DashboardWorkflow:
    """
    Month selection and cached loading for the dashboard page.
    """

    def __init__(
        self,
        *,
        client: PortalAPIClient,
        cache: QueryCache,
        retries: int = 0,
        initial_month: str | None = None,
    ) -> None:
        self._client = client
        self._cache = cache
        self._retries = retries
        self.selected_month = initial_month or current_month()

    def view(self) -> DashboardView:
        return DashboardView.from_entry(self.selected_month, self._cache.get(dashboard_key(self.selected_month)))

    async def load(self, month: str | None = None) -> DashboardView:
        """
        Select `month` (or keep the current one) and read it through the cache.
        """

        if month is not None:
            self._select(month)
        month = self.selected_month
        entry = await self._cache.fetch(
            dashboard_key(month),
            lambda: self._client.get_dashboard(month),
            retries=self._retries,
        )
        return DashboardView.from_entry(month, entry)

    async def refresh(self) -> DashboardView:
        month = self.selected_month
        logger.info("Dashboard refresh month=%s", month)
        entry = await self._cache.refetch(
            dashboard_key(month),
            lambda: self._client.get_dashboard(month),
            retries=self._retries,
        )
        return DashboardView.from_entry(month, entry)

    def _select(self, month: str) -> None:
        month = month.strip()
        if not is_valid_month(month):
            raise ReportValidationError(
                "Month must be in YYYY-MM format",
                {"month": "Month must be in YYYY-MM format"},
            )
        self.selected_month = month
