"""
Response schemas for the portal backend endpoints.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from ngo_portal.domain.reports import DashboardSnapshot, IngestionJob, JobStatus


class SubmitReportResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: str | None = None


class UploadAcceptedResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    job_id: str = Field(min_length=1)


class JobStatusResponse(BaseModel):
    """
    Body of GET /job-status/{job_id}.
    """

    model_config = ConfigDict(extra="ignore")

    status: JobStatus
    processed: int = Field(default=0, ge=0)
    total: int | None = None
    error_message: str | None = None

    def to_domain(self, job_id: str) -> IngestionJob:
        return IngestionJob.build(
            job_id=job_id,
            status=self.status,
            processed=self.processed,
            total=self.total or 0,
            error_message=self.error_message,
        )


class DashboardResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    total_ngos_reporting: int = Field(ge=0)
    total_people_helped: int = Field(ge=0)
    total_events_conducted: int = Field(ge=0)
    total_funds_utilized: int = Field(ge=0)

    def to_domain(self, month: str) -> DashboardSnapshot:
        return DashboardSnapshot(
            month=month,
            total_ngos_reporting=self.total_ngos_reporting,
            total_people_helped=self.total_people_helped,
            total_events_conducted=self.total_events_conducted,
            total_funds_utilized=self.total_funds_utilized,
        )


class ErrorResponse(BaseModel):
    """
    Normalized non-2xx body.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    message: str | None = None
    status: str | int | None = None
    field_errors: dict[str, str | None] | None = Field(default=None, alias="fieldErrors")
