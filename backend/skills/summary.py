"""
Summary skill — bounded text rendering of a dataset for prompt embedding.

Only this rendering ever reaches the model; the full dataset never does.
"""

from __future__ import annotations

import json

from core.models import TabularDataset

DEFAULT_SUMMARY_ROWS = 20
DEFAULT_PREVIEW_ROWS = 5


def preview_dataset(dataset: TabularDataset, max_rows: int = DEFAULT_PREVIEW_ROWS) -> TabularDataset:
    """Copy of the dataset holding only its first `max_rows` records."""
    return dataset.model_copy(update={"data": list(dataset.data[: max(max_rows, 0)])})


def summarize_dataset(dataset: TabularDataset, max_rows: int = DEFAULT_SUMMARY_ROWS) -> str:
    """Return filename, columns, row count and the first rows as indented JSON."""
    total = len(dataset.data)
    preview = preview_dataset(dataset, max_rows)

    lines = [
        f"File: {dataset.filename}",
        f"Columns: {', '.join(dataset.columns)}",
        f"Total rows: {total}",
        "",
        "Data (first rows):",
        json.dumps(preview.data, ensure_ascii=False, indent=2, default=str),
    ]
    text = "\n".join(lines)

    hidden = total - len(preview.data)
    if hidden > 0:
        text += f"\n\n... and {hidden} more rows"
    return text
