"""
tests/test_cli.py

Command-line entry point with the API client replaced by a stub.

Coverage
--------
- Argument parsing for every subcommand
- submit: local rejection exits 2 without a request
- job-status and dashboard JSON output
- upload --no-wait stops after the job id is known
"""

from __future__ import annotations

import json
from typing import Any

import pytest

import ngo_portal.cli as cli
from ngo_portal.domain.reports import DashboardSnapshot, IngestionJob, JobStatus
from ngo_portal.errors import EmptyStateError
from ngo_portal.schemas.responses import UploadAcceptedResponse


class StubClient:
    def __init__(self) -> None:
        self.closed = False
        self.calls: list[tuple[str, Any]] = []

    async def submit_report(self, report: Any) -> Any:
        self.calls.append(("submit_report", report))
        raise AssertionError("submit_report should not be called")

    async def upload_csv(self, upload: Any) -> UploadAcceptedResponse:
        self.calls.append(("upload_csv", upload.filename))
        return UploadAcceptedResponse(job_id="J1")

    async def get_job_status(self, job_id: str) -> IngestionJob:
        self.calls.append(("get_job_status", job_id))
        return IngestionJob.build(job_id=job_id, status=JobStatus.PROCESSING, processed=50, total=200, error_message=None)

    async def get_dashboard(self, month: str) -> DashboardSnapshot:
        self.calls.append(("get_dashboard", month))
        if month == "2025-08":
            raise EmptyStateError(month)
        return DashboardSnapshot(
            month=month,
            total_ngos_reporting=1,
            total_people_helped=120,
            total_events_conducted=5,
            total_funds_utilized=75000,
        )

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def stub_client(monkeypatch: pytest.MonkeyPatch) -> StubClient:
    client = StubClient()
    monkeypatch.setattr(cli, "PortalAPIClient", lambda: client)
    return client


def _output(capsys: pytest.CaptureFixture[str]) -> dict[str, Any]:
    return json.loads(capsys.readouterr().out)


def test_parser_accepts_each_command() -> None:
    parser = cli.build_parser()

    submit = parser.parse_args(
        [
            "submit",
            "--ngo-id",
            "NGO_001",
            "--month",
            "2025-09",
            "--people-helped",
            "120",
            "--events-conducted",
            "5",
            "--funds-utilized",
            "75000",
        ]
    )
    assert submit.command == "submit"
    assert submit.funds_utilized == "75000"

    upload = parser.parse_args(["upload", "reports.csv", "--no-wait"])
    assert upload.path == "reports.csv"
    assert upload.wait is False

    assert parser.parse_args(["job-status", "J1"]).job_id == "J1"
    assert parser.parse_args(["dashboard"]).month is None


def test_submit_rejected_locally(stub_client: StubClient, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(
        [
            "submit",
            "--ngo-id",
            "NGO_001",
            "--month",
            "2025-13",
            "--people-helped",
            "120",
            "--events-conducted",
            "5",
            "--funds-utilized",
            "75000",
        ]
    )

    payload = _output(capsys)
    assert code == cli.EXIT_INVALID
    assert payload["submitted"] is False
    assert payload["field_errors"] == {"month": "Month must be between 01 and 12"}
    assert stub_client.calls == []
    assert stub_client.closed


def test_job_status_prints_progress(stub_client: StubClient, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["job-status", "J1"])

    payload = _output(capsys)
    assert code == cli.EXIT_OK
    assert payload["job"]["status"] == "processing"
    assert payload["job"]["percent"] == 25
    assert payload["job"]["summary"] == "Processed 50 of 200 rows (25%)"


def test_dashboard_ready_and_empty(stub_client: StubClient, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["dashboard", "--month", "2025-09"]) == cli.EXIT_OK
    ready = _output(capsys)
    assert ready["state"] == "ready"
    assert ready["metrics"]["Total Funds Utilized"] == "₹75,000"

    assert cli.main(["dashboard", "--month", "2025-08"]) == cli.EXIT_OK
    empty = _output(capsys)
    assert empty["state"] == "empty"
    assert empty["metrics"] == {}


def test_dashboard_invalid_month(stub_client: StubClient, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["dashboard", "--month", "August"])

    payload = _output(capsys)
    assert code == cli.EXIT_INVALID
    assert payload["state"] == "invalid"
    assert stub_client.calls == []


def test_upload_without_waiting(
    stub_client: StubClient,
    capsys: pytest.CaptureFixture[str],
    tmp_path: Any,
) -> None:
    path = tmp_path / "reports.csv"
    path.write_text(
        "ngo_id,month,people_helped,events_conducted,funds_utilized\nNGO_001,2025-09,120,5,75000\n",
        encoding="utf-8",
    )

    code = cli.main(["upload", str(path), "--no-wait"])

    payload = _output(capsys)
    assert code == cli.EXIT_OK
    assert payload["job_id"] == "J1"
    assert payload["notifications"] == [{"severity": "info", "message": "Upload started. Job ID: J1"}]
    assert ("upload_csv", "reports.csv") in stub_client.calls


def test_upload_missing_file(stub_client: StubClient, capsys: pytest.CaptureFixture[str], tmp_path: Any) -> None:
    code = cli.main(["upload", str(tmp_path / "missing.csv")])

    payload = _output(capsys)
    assert code == cli.EXIT_INVALID
    assert payload["uploaded"] is False
