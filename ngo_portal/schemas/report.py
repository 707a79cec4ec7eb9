"""
ngo_portal/schemas/report.py

Request schema and local validation for single report submission.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_core import PydanticCustomError

from ngo_portal.errors import ReportValidationError

MONTH_PATTERN = r"^\d{4}-\d{2}$"

_FIELD_LABELS: dict[str, str] = {
    "ngo_id": "NGO ID",
    "month": "Month",
    "people_helped": "People helped",
    "events_conducted": "Events conducted",
    "funds_utilized": "Funds utilized",
}


class ReportSubmission(BaseModel):
    """
    One NGO's activity report for a single month.
    """

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        str_strip_whitespace=True,
    )

    ngo_id: str = Field(min_length=1)
    month: str = Field(pattern=MONTH_PATTERN)
    people_helped: int = Field(ge=0)
    events_conducted: int = Field(ge=0)
    funds_utilized: int = Field(ge=0)

    @field_validator("month")
    @classmethod
    def _month_in_range(cls, value: str) -> str:
        month_number = int(value.split("-")[1])
        if not 1 <= month_number <= 12:
            raise PydanticCustomError("month_range", "Month must be between 01 and 12")
        return value


def is_valid_month(value: str) -> bool:
    """
    True for `YYYY-MM` strings whose month component is 01-12.
    """

    if not re.fullmatch(MONTH_PATTERN, value or ""):
        return False
    return 1 <= int(value[5:7]) <= 12


def _friendly_message(field: str, error: Mapping[str, Any]) -> str:
    error_type = error.get("type", "")
    label = _FIELD_LABELS.get(field, field)
    if error_type == "missing":
        return f"{label} is required"
    if field == "ngo_id" and error_type == "string_too_short":
        return f"{label} is required"
    if field == "month":
        if error_type == "string_pattern_mismatch":
            return "Month must be in YYYY-MM format"
        if error_type == "month_range":
            return str(error.get("msg"))
    if error_type in {"int_parsing", "int_type"}:
        return "Must be a number"
    if error_type == "int_from_float":
        return "Must be an integer"
    if error_type == "greater_than_equal":
        return "Must be at least 0"
    return str(error.get("msg", "Invalid value"))


def validation_error_to_field_map(exc: ValidationError) -> dict[str, str]:
    """
    Collapse pydantic errors into one display message per field.
    """

    field_errors: dict[str, str] = {}
    for error in exc.errors():
        location = error.get("loc") or ("__root__",)
        field = str(location[0])
        if field in field_errors:
            continue
        field_errors[field] = _friendly_message(field, error)
    return field_errors


def validate_report(report: ReportSubmission | Mapping[str, Any]) -> ReportSubmission:
    """
    Validate raw form values into a submission.

    Raises ReportValidationError with a field -> message map on failure.
    """

    if isinstance(report, ReportSubmission):
        return report
    try:
        return ReportSubmission.model_validate(dict(report))
    except ValidationError as exc:
        field_errors = validation_error_to_field_map(exc)
        raise ReportValidationError("Report failed validation.", field_errors) from exc
