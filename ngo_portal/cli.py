"""
Command-line entry point for the reporting portal.

    ngo-portal submit --ngo-id NGO_001 --month 2025-09 --people-helped 120 \
        --events-conducted 5 --funds-utilized 75000
    ngo-portal upload reports.csv
    ngo-portal job-status J1
    ngo-portal dashboard --month 2025-08
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from ngo_portal.connectors.portal_api_client import PortalAPIClient
from ngo_portal.domain.reports import CSVUpload, IngestionJob, JobStatus
from ngo_portal.errors import PortalError, ReportValidationError
from ngo_portal.logging_utils import configure_logging
from ngo_portal.services.bulk_upload import BulkUploadWorkflow
from ngo_portal.services.dashboard import DashboardState, DashboardWorkflow
from ngo_portal.services.job_poll_controller import JobPollController
from ngo_portal.services.job_progress import JobProgress
from ngo_portal.services.notifications import NotificationQueue
from ngo_portal.services.query_cache import QueryCache
from ngo_portal.services.report_submission import ReportSubmissionWorkflow
from ngo_portal.validators.csv_upload_validator import describe_csv_format

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ngo-portal", description="NGO monthly reporting portal client.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    submit = subparsers.add_parser("submit", help="Submit one monthly report.")
    submit.add_argument("--ngo-id", required=True)
    submit.add_argument("--month", required=True, help="Reporting month, YYYY-MM.")
    submit.add_argument("--people-helped", required=True)
    submit.add_argument("--events-conducted", required=True)
    submit.add_argument("--funds-utilized", required=True)

    upload = subparsers.add_parser(
        "upload",
        help="Upload a CSV of reports and follow the ingestion job.",
        description=describe_csv_format(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    upload.add_argument("path", help="Path to the CSV file.")
    upload.add_argument(
        "--no-wait",
        dest="wait",
        action="store_false",
        help="Return as soon as the job id is known.",
    )

    job_status = subparsers.add_parser("job-status", help="Show one ingestion job's status.")
    job_status.add_argument("job_id")

    dashboard = subparsers.add_parser("dashboard", help="Show aggregated statistics for a month.")
    dashboard.add_argument("--month", default=None, help="Reporting month, YYYY-MM (default: current).")

    return parser


def _job_payload(job: IngestionJob | None) -> dict[str, Any] | None:
    if job is None:
        return None
    progress = JobProgress.from_job(job)
    return {
        "job_id": job.job_id,
        "status": job.status.value,
        "processed": job.processed,
        "total": job.total,
        "percent": progress.percent,
        "summary": progress.headline,
        "error_message": job.error_message,
    }


def _emit(payload: dict[str, Any], notifications: NotificationQueue) -> None:
    payload["notifications"] = [
        {"severity": notification.severity.value, "message": notification.message}
        for notification in notifications.drain()
    ]
    print(json.dumps(payload, indent=2, ensure_ascii=False))


async def _run_submit(args: argparse.Namespace, client: PortalAPIClient, notifications: NotificationQueue) -> int:
    workflow = ReportSubmissionWorkflow(client=client, notifications=notifications)
    response = await workflow.submit(
        {
            "ngo_id": args.ngo_id,
            "month": args.month,
            "people_helped": args.people_helped,
            "events_conducted": args.events_conducted,
            "funds_utilized": args.funds_utilized,
        }
    )
    _emit(
        {
            "submitted": response is not None,
            "message": response.message if response is not None else workflow.server_error,
            "field_errors": workflow.field_errors,
        },
        notifications,
    )
    if response is not None:
        return EXIT_OK
    return EXIT_FAILED if workflow.server_error else EXIT_INVALID


async def _run_upload(args: argparse.Namespace, client: PortalAPIClient, notifications: NotificationQueue) -> int:
    try:
        upload = CSVUpload.from_path(args.path)
    except OSError as exc:
        _emit({"uploaded": False, "message": f"Could not read {args.path}: {exc}"}, notifications)
        return EXIT_INVALID

    cache = QueryCache()
    poller = JobPollController(fetch_status=client.get_job_status, cache=cache)
    poller.add_listener(
        lambda job: print(JobProgress.from_job(job).headline, file=sys.stderr, flush=True)
    )
    workflow = BulkUploadWorkflow(client=client, poller=poller, notifications=notifications, cache=cache)

    if not workflow.select_file(upload):
        _emit({"uploaded": False, "job": None}, notifications)
        return EXIT_INVALID

    accepted = await workflow.upload()
    if accepted is None:
        _emit({"uploaded": False, "job": None}, notifications)
        return EXIT_FAILED

    if not args.wait:
        poller.cancel()
        _emit({"uploaded": True, "job_id": accepted.job_id}, notifications)
        return EXIT_OK

    job = await workflow.wait_for_job()
    _emit({"uploaded": True, "job": _job_payload(job)}, notifications)
    return EXIT_OK if job is not None and job.status is JobStatus.SUCCESS else EXIT_FAILED


async def _run_job_status(args: argparse.Namespace, client: PortalAPIClient, notifications: NotificationQueue) -> int:
    try:
        job = await client.get_job_status(args.job_id)
    except PortalError as exc:
        notifications.error(str(exc))
        _emit({"job": None}, notifications)
        return EXIT_FAILED
    _emit({"job": _job_payload(job)}, notifications)
    return EXIT_OK


async def _run_dashboard(args: argparse.Namespace, client: PortalAPIClient, notifications: NotificationQueue) -> int:
    workflow = DashboardWorkflow(client=client, cache=QueryCache())
    try:
        view = await workflow.load(args.month)
    except ReportValidationError as exc:
        notifications.error(exc.message)
        _emit({"month": args.month, "state": "invalid"}, notifications)
        return EXIT_INVALID

    _emit(
        {
            "month": view.month,
            "state": view.state.value,
            "message": view.message,
            "metrics": dict(view.metrics()),
        },
        notifications,
    )
    return EXIT_FAILED if view.state is DashboardState.ERROR else EXIT_OK


_COMMANDS = {
    "submit": _run_submit,
    "upload": _run_upload,
    "job-status": _run_job_status,
    "dashboard": _run_dashboard,
}


async def _run(args: argparse.Namespace) -> int:
    client = PortalAPIClient()
    notifications = NotificationQueue()
    try:
        return await _COMMANDS[args.command](args, client, notifications)
    finally:
        client.close()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
