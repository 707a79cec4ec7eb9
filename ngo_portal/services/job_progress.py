"""
Progress summary for a bulk upload job.

A job whose `total` is still 0 has not been parsed yet; its progress is
reported as indeterminate (percent is None) rather than as 0 of 0.
"""

from __future__ import annotations

from dataclasses import dataclass

from ngo_portal.domain.reports import IngestionJob, JobStatus


@dataclass(frozen=True)
class JobProgress:
    job_id: str
    status: JobStatus
    processed: int
    total: int
    percent: int | None
    headline: str
    error_message: str | None = None

    @property
    def is_active(self) -> bool:
        return not self.status.is_terminal

    @property
    def is_indeterminate(self) -> bool:
        return self.percent is None

    @classmethod
    def from_job(cls, job: IngestionJob) -> JobProgress:
        percent = round(job.processed / job.total * 100) if job.total_known else None
        return cls(
            job_id=job.job_id,
            status=job.status,
            processed=job.processed,
            total=job.total,
            percent=percent,
            headline=_headline(job, percent),
            error_message=job.error_message,
        )


def _headline(job: IngestionJob, percent: int | None) -> str:
    if job.status is JobStatus.PENDING:
        return "Preparing to process CSV..."
    if job.status is JobStatus.PROCESSING:
        if percent is None:
            return "Processing rows..."
        return f"Processed {job.processed} of {job.total} rows ({percent}%)"
    if job.status is JobStatus.SUCCESS:
        return "Upload completed successfully!"
    return "Upload failed"
