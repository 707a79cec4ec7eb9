"""
ngo_portal/validators package marker.
"""

from ngo_portal.validators.csv_upload_validator import (
    EXAMPLE_CSV_ROW,
    REQUIRED_CSV_COLUMNS,
    describe_csv_format,
    missing_csv_columns,
    validate_csv_upload,
)

__all__ = [
    "EXAMPLE_CSV_ROW",
    "REQUIRED_CSV_COLUMNS",
    "describe_csv_format",
    "missing_csv_columns",
    "validate_csv_upload",
]
