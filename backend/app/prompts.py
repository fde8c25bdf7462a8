import json
from enum import Enum
from typing import List, Optional, Sequence

from core.models import ChartSpec

RESPONSE_SCHEMA = """{
  "charts": [
    {
      "type": "line|bar|pie|area|scatter",
      "title": "Chart title",
      "data": [
        {"name": "Label 1", "value": 100},
        {"name": "Label 2", "value": 200}
      ],
      "xAxisLabel": "X axis label (optional)",
      "yAxisLabel": "Y axis label (optional)",
      "colors": ["#3b82f6", "#10b981"],
      "description": "Short description (optional)"
    }
  ],
  "isAdjustment": false,
  "explanation": "One sentence describing what you did (optional)"
}"""

CHART_TYPES_GUIDE = """CHART TYPES (use exactly one of these for "type"):
- line: temporal or sequential data
- bar: comparison between categories
- pie: proportions of a whole
- area: cumulative values over time
- scatter: correlation between two variables"""

FALLBACK_RULE = """FALLBACK:
If the request is unclear or cannot be turned into a chart, respond with exactly:
{"charts": [], "error": "<reason>"}
and no other fields."""

CHART_GENERATION_PROMPT = f"""You are an assistant that turns user requests into chart specifications for a frontend chart renderer.

OUTPUT FORMAT (STRICT):
Return a SINGLE JSON object only. No prose, no code fences, no explanations outside the JSON.
Use valid JSON with double-quoted keys, no trailing commas.

{RESPONSE_SCHEMA}

{CHART_TYPES_GUIDE}

DATA RULES:
- Every data point needs a text "name" and a numeric "value".
- Colors are hex strings (e.g. "#3b82f6"); pick modern, accessible colors.

{FALLBACK_RULE}
"""


class PromptMode(str, Enum):
    new_chart = "new_chart"
    adjust_or_new = "adjust_or_new"
    dataset_new_chart = "dataset_new_chart"
    dataset_adjust_or_new = "dataset_adjust_or_new"


def resolve_prompt_mode(has_dataset: bool, has_active_charts: bool) -> PromptMode:
    if has_dataset and has_active_charts:
        return PromptMode.dataset_adjust_or_new
    if has_dataset:
        return PromptMode.dataset_new_chart
    if has_active_charts:
        return PromptMode.adjust_or_new
    return PromptMode.new_chart


_NEW_CHART_RULES = """MODE: NEW CHART
- Treat the user message as a fresh chart request. Set "isAdjustment": false.
- Only build a chart when the user supplied the values to plot (numbers, categories with amounts).
- If the user gave no numeric values, do not invent a dataset: use the FALLBACK response."""

_ADJUSTMENT_RULES = """MODE: ADJUST OR NEW
A chart set is currently displayed (see CURRENT CHARTS). Decide what the user wants:
- If the message modifies the current charts (colors, type, title, labels, adding/removing points, etc.):
  set "isAdjustment": true and return the FULL updated chart set, keeping every chart the user did not mention unchanged.
- If the message asks for something unrelated to the current charts:
  set "isAdjustment": false and return only the new charts; the current chart set is discarded."""

_DATASET_RULES = """DATASET RULES:
A dataset was uploaded (see DATASET).
- Derive every chart value from the dataset's columns and rows. Never invent values.
- Use the dataset's exact column names when choosing what to plot and in axis labels.
- Aggregate (sum, count, average) when the user asks for totals or groupings."""


def _charts_block(active_charts: Optional[Sequence[ChartSpec]]) -> str:
    payload: List[dict] = []
    for chart in active_charts or []:
        if isinstance(chart, ChartSpec):
            payload.append(chart.model_dump(mode="json", exclude_none=True))
        else:
            payload.append(chart)
    return "CURRENT CHARTS:\n" + json.dumps(payload, ensure_ascii=False, indent=2)


def build_contextual_prompt(
    has_dataset: bool,
    dataset_summary: Optional[str] = None,
    has_active_charts: bool = False,
    active_charts: Optional[Sequence[ChartSpec]] = None,
) -> str:
    """
    Build the system instruction for a chat turn.

    The response schema, chart type guide and fallback contract are always
    present; the mode rules depend on whether a dataset and/or an active chart
    set exist:
    - neither: fresh chart request, no invented data
    - active charts: adjustment vs. new chart decision
    - dataset: values come from the dataset only
    - both: dataset constrains values, adjustment decision as above
    """
    mode = resolve_prompt_mode(has_dataset, has_active_charts)

    sections = [CHART_GENERATION_PROMPT.strip()]

    if mode == PromptMode.new_chart:
        sections.append(_NEW_CHART_RULES)
    elif mode == PromptMode.adjust_or_new:
        sections.append(_ADJUSTMENT_RULES)
        sections.append(_charts_block(active_charts))
    elif mode == PromptMode.dataset_new_chart:
        sections.append(
            "MODE: NEW CHART FROM DATASET\n"
            '- Treat the user message as a fresh chart request. Set "isAdjustment": false.\n'
            "- If the message is empty, suggest the most informative chart for the dataset."
        )
        sections.append(_DATASET_RULES)
    else:
        sections.append(_ADJUSTMENT_RULES)
        sections.append(_DATASET_RULES)
        sections.append(_charts_block(active_charts))

    if has_dataset:
        sections.append("DATASET:\n" + (dataset_summary or "(no summary available)"))

    sections.append(
        'Respond with ONE JSON object containing "charts", "isAdjustment" '
        'and optionally "explanation" or "error".'
    )
    return "\n\n".join(sections)
