"""
ngo_portal/connectors/portal_api_client.py

HTTP gateway for the reporting backend.

Maps the four portal operations onto HTTP requests, unwraps the optional
`{"data": ...}` envelope and classifies failures into the portal error
taxonomy. Blocking `requests` calls run in a worker thread so callers on
the event loop only suspend their own coroutine.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

import requests
from pydantic import ValidationError

from ngo_portal.config import APIClientSettings, get_api_client_settings
from ngo_portal.domain.reports import CSVUpload, DashboardSnapshot, FieldError, IngestionJob
from ngo_portal.errors import EmptyStateError, NetworkError, ServerError
from ngo_portal.schemas.report import ReportSubmission, validate_report
from ngo_portal.schemas.responses import (
    DashboardResponse,
    ErrorResponse,
    JobStatusResponse,
    SubmitReportResponse,
    UploadAcceptedResponse,
)

logger = logging.getLogger(__name__)

EMPTY_STATE_TAG = "empty"


def unwrap_envelope(payload: Any) -> Any:
    """
    Return `payload["data"]` when the body is wrapped, else the body itself.
    """

    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        return payload["data"]
    return payload


def _safe_json(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _is_empty_state(payload: Any) -> bool:
    for candidate in (payload, unwrap_envelope(payload)):
        if isinstance(candidate, dict) and candidate.get("status") == EMPTY_STATE_TAG:
            return True
    return False


class PortalAPIClient:
    """
    Async facade over the portal REST endpoints.
    """

    def __init__(
        self,
        *,
        settings: APIClientSettings | None = None,
        session: requests.Session | None = None,
    ) -> None:
        settings = settings or get_api_client_settings()
        self._base_url = settings.base_url.rstrip("/")
        self._timeout_seconds = settings.timeout_seconds
        self._session = session or requests.Session()

    def close(self) -> None:
        self._session.close()

    async def submit_report(self, report: ReportSubmission | Mapping[str, Any]) -> SubmitReportResponse:
        """
        POST /report.

        Local validation runs first; an invalid report raises
        ReportValidationError without any request being sent.
        """

        submission = validate_report(report)
        status_code, payload = await self._request_json(
            "POST",
            "/report",
            json_body=submission.model_dump(mode="json"),
        )
        body = unwrap_envelope(payload)
        if not isinstance(body, dict):
            body = {}
        logger.info("Report submitted ngo_id=%s month=%s", submission.ngo_id, submission.month)
        return self._parse(SubmitReportResponse, body, http_status=status_code)

    async def upload_csv(self, upload: CSVUpload) -> UploadAcceptedResponse:
        """
        POST /reports/upload as multipart with a single `file` field.
        """

        status_code, payload = await self._request_json(
            "POST",
            "/reports/upload",
            files={"file": (upload.filename, upload.content, upload.content_type)},
        )
        accepted = self._parse(UploadAcceptedResponse, unwrap_envelope(payload), http_status=status_code)
        logger.info("CSV upload accepted file=%s job_id=%s", upload.filename, accepted.job_id)
        return accepted

    async def get_job_status(self, job_id: str) -> IngestionJob:
        status_code, payload = await self._request_json(
            "GET",
            f"/job-status/{quote(job_id, safe='')}",
        )
        parsed = self._parse(JobStatusResponse, unwrap_envelope(payload), http_status=status_code)
        return parsed.to_domain(job_id)

    async def get_dashboard(self, month: str) -> DashboardSnapshot:
        """
        GET /dashboard?month=YYYY-MM.

        A 404 or an `{"status": "empty"}` payload raises EmptyStateError.
        """

        status_code, payload = await self._request_json(
            "GET",
            "/dashboard",
            params={"month": month},
            empty_state_month=month,
        )
        if _is_empty_state(payload):
            raise EmptyStateError(month)
        parsed = self._parse(DashboardResponse, unwrap_envelope(payload), http_status=status_code)
        return parsed.to_domain(month)

    async def _request_json(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
        empty_state_month: str | None = None,
    ) -> tuple[int, Any]:
        response = await asyncio.to_thread(
            self._send,
            method=method,
            path=path,
            params=params,
            json_body=json_body,
            files=files,
        )
        status_code = response.status_code
        if not 200 <= status_code < 300:
            raw_body = _safe_json(response)
            if empty_state_month is not None and (status_code == 404 or _is_empty_state(raw_body)):
                logger.info("Dashboard empty month=%s status=%s", empty_state_month, status_code)
                raise EmptyStateError(empty_state_month)
            raise self._server_error(status_code, raw_body)

        try:
            return status_code, response.json()
        except ValueError as exc:
            raise ServerError(
                http_status=status_code,
                message="Response was not valid JSON.",
            ) from exc

    def _send(
        self,
        *,
        method: str,
        path: str,
        params: dict[str, Any] | None,
        json_body: dict[str, Any] | None,
        files: dict[str, Any] | None,
    ) -> requests.Response:
        url = f"{self._base_url}{path}"
        try:
            return self._session.request(
                method=method,
                url=url,
                params=params,
                json=json_body,
                files=files,
                timeout=self._timeout_seconds,
            )
        except requests.Timeout as exc:
            logger.warning("Portal request timed out method=%s url=%s", method, url)
            raise NetworkError(f"Request to {path} timed out.") from exc
        except requests.RequestException as exc:
            logger.warning("Portal request failed method=%s url=%s error=%s", method, url, exc)
            raise NetworkError(f"Request to {path} failed: {exc}") from exc

    @staticmethod
    def _server_error(status_code: int, raw_body: Any) -> ServerError:
        """
        Build a ServerError from a non-2xx body, normalizing both body shapes.
        """

        body = unwrap_envelope(raw_body)
        error_body = ErrorResponse()
        if isinstance(body, dict):
            try:
                error_body = ErrorResponse.model_validate(body)
            except ValidationError:
                logger.debug("Unrecognized error body status=%s", status_code)

        field_errors = [
            FieldError(field=field, message=message)
            for field, message in (error_body.field_errors or {}).items()
            if message
        ]
        error = ServerError(
            http_status=status_code,
            message=error_body.message,
            field_errors=field_errors,
        )
        logger.info(
            "Portal request rejected status=%s message=%s field_errors=%s",
            status_code,
            error.message,
            len(field_errors),
        )
        return error

    @staticmethod
    def _parse(model: type[Any], payload: Any, *, http_status: int) -> Any:
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise ServerError(
                http_status=http_status,
                message=f"Unexpected response shape for {model.__name__}.",
            ) from exc
