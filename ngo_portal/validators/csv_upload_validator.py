"""
ngo_portal/validators/csv_upload_validator.py

Local checks applied to a file before it is sent to the bulk upload endpoint.
The column contract itself is enforced by the server.
"""

from __future__ import annotations

import csv
import io

from ngo_portal.domain.reports import CSVUpload
from ngo_portal.errors import CSVUploadValidationError

REQUIRED_CSV_COLUMNS: tuple[str, ...] = (
    "ngo_id",
    "month",
    "people_helped",
    "events_conducted",
    "funds_utilized",
)

EXAMPLE_CSV_ROW = "NGO_001,2025-09,120,5,75000"

_CSV_CONTENT_TYPES = {"text/csv", "application/csv", "application/vnd.ms-excel"}


def describe_csv_format() -> str:
    """
    Human-readable description of the expected upload layout.
    """

    return (
        "Required columns (in order): ngo_id, month (YYYY-MM), people_helped, "
        "events_conducted, funds_utilized\n"
        f"{','.join(REQUIRED_CSV_COLUMNS)}\n"
        f"{EXAMPLE_CSV_ROW}"
    )


def validate_csv_upload(upload: CSVUpload) -> CSVUpload:
    """
    Reject files that are not CSV or have no content.
    """

    is_csv_type = upload.content_type.split(";")[0].strip().lower() in _CSV_CONTENT_TYPES
    if not is_csv_type and not upload.filename.lower().endswith(".csv"):
        raise CSVUploadValidationError("Please select a CSV file", {"file": "Please select a CSV file"})
    if not upload.content.strip():
        raise CSVUploadValidationError("The selected CSV file is empty", {"file": "The selected CSV file is empty"})
    return upload


def missing_csv_columns(upload: CSVUpload) -> list[str]:
    """
    Return required columns absent from the header row.

    Advisory only; an unreadable header reports every column as missing.
    """

    try:
        text = upload.content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return list(REQUIRED_CSV_COLUMNS)

    reader = csv.reader(io.StringIO(text))
    header = next(reader, [])
    present = {column.strip().lower() for column in header}
    return [column for column in REQUIRED_CSV_COLUMNS if column not in present]
