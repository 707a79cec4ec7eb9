"""
ngo_portal/domain/reports.py

Domain models shared by the submission, upload and dashboard flows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    """
    Lifecycle states reported by the ingestion backend.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCESS, JobStatus.FAILED)

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK: dict[JobStatus, int] = {
    JobStatus.PENDING: 0,
    JobStatus.PROCESSING: 1,
    JobStatus.SUCCESS: 2,
    JobStatus.FAILED: 2,
}


@dataclass(frozen=True)
class FieldError:
    """
    One server-reported error attached to a form field.
    """

    field: str
    message: str


@dataclass(frozen=True)
class IngestionJob:
    """
    Latest observed state of a bulk upload job.

    `total` is 0 until the server has parsed the file; treat it as unknown
    rather than as an empty file.
    """

    job_id: str
    status: JobStatus
    processed: int = 0
    total: int = 0
    error_message: str | None = None

    @classmethod
    def build(
        cls,
        *,
        job_id: str,
        status: JobStatus,
        processed: int,
        total: int,
        error_message: str | None,
    ) -> IngestionJob:
        """
        Construct a job with clamped progress counts.
        """

        processed = max(0, processed)
        total = max(0, total)
        if total > 0 and processed > total:
            logger.warning(
                "Clamping job progress job_id=%s processed=%s total=%s",
                job_id,
                processed,
                total,
            )
            processed = total
        if status is not JobStatus.FAILED:
            error_message = None
        return cls(
            job_id=job_id,
            status=status,
            processed=processed,
            total=total,
            error_message=error_message,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def total_known(self) -> bool:
        return self.total > 0


@dataclass(frozen=True)
class DashboardSnapshot:
    """
    Aggregated statistics for one reporting month.
    """

    month: str
    total_ngos_reporting: int
    total_people_helped: int
    total_events_conducted: int
    total_funds_utilized: int

    def as_dict(self) -> dict[str, Any]:
        return {
            "month": self.month,
            "total_ngos_reporting": self.total_ngos_reporting,
            "total_people_helped": self.total_people_helped,
            "total_events_conducted": self.total_events_conducted,
            "total_funds_utilized": self.total_funds_utilized,
        }


@dataclass(frozen=True)
class CSVUpload:
    """
    A CSV file selected for bulk upload.
    """

    filename: str
    content: bytes
    content_type: str = "text/csv"

    @classmethod
    def from_path(cls, path: str | Path) -> CSVUpload:
        file_path = Path(path)
        content_type = "text/csv" if file_path.suffix.lower() == ".csv" else "application/octet-stream"
        return cls(
            filename=file_path.name,
            content=file_path.read_bytes(),
            content_type=content_type,
        )
