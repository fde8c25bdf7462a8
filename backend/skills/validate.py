"""
Validation skill for uploaded datasets.

Catches datasets that cannot produce a chart (no rows, no columns, nothing
numeric) before they reach the model.
"""

from __future__ import annotations

from app.utils.numeric_utils import is_numeric_like
from core.models import ChartabilityCheck, DatasetErrorKind, TabularDataset
from skills.ingest import DatasetError

NO_DATA_MESSAGE = "No data found"
NO_COLUMNS_MESSAGE = "No columns found"
NO_NUMERIC_MESSAGE = "No numeric column found for charting"


def validate_for_charting(dataset: TabularDataset) -> ChartabilityCheck:
    """
    Check that the dataset has rows, columns, and at least one column whose
    first-row value is a number or numeric text.
    """
    if not dataset.data:
        return ChartabilityCheck(valid=False, message=NO_DATA_MESSAGE)

    if not dataset.columns:
        return ChartabilityCheck(valid=False, message=NO_COLUMNS_MESSAGE)

    first = dataset.data[0]
    if not any(is_numeric_like(first.get(col)) for col in dataset.columns):
        return ChartabilityCheck(valid=False, message=NO_NUMERIC_MESSAGE)

    return ChartabilityCheck(valid=True)


def ensure_chartable(dataset: TabularDataset) -> TabularDataset:
    """Raise DatasetError when validate_for_charting rejects the dataset."""
    check = validate_for_charting(dataset)
    if check.valid:
        return dataset
    kind = DatasetErrorKind.no_numeric_column
    if check.message == NO_DATA_MESSAGE:
        kind = DatasetErrorKind.empty
    elif check.message == NO_COLUMNS_MESSAGE:
        kind = DatasetErrorKind.malformed_content
    raise DatasetError(kind, check.message or "Dataset cannot be charted")
