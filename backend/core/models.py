"""
Core Pydantic models for chart generation and history.

All domain types live here so every module shares the same vocabulary.
Field names follow the JSON wire format shared with the chart renderer
(camelCase), so models dump straight to the client.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Charts
# ---------------------------------------------------------------------------

class ChartType(str, Enum):
    line = "line"
    bar = "bar"
    pie = "pie"
    area = "area"
    scatter = "scatter"


_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")


class DataPoint(BaseModel):
    """One series entry: a label, a value, and any extra scalar fields."""

    model_config = ConfigDict(extra="allow", frozen=True)

    name: str
    value: Union[int, float]

    @field_validator("name", mode="before")
    @classmethod
    def name_as_text(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class ChartSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: ChartType
    title: str
    data: List[DataPoint] = Field(default_factory=list)
    xAxisLabel: Optional[str] = None
    yAxisLabel: Optional[str] = None
    colors: Optional[List[str]] = None
    description: Optional[str] = None

    @field_validator("colors", mode="before")
    @classmethod
    def keep_hex_colors(cls, v: Any) -> Any:
        """Drop anything that is not a hex colour; the renderer falls back to its palette."""
        if v is None:
            return None
        if not isinstance(v, list):
            return None
        return [c for c in v if isinstance(c, str) and _HEX_COLOR.match(c.strip())]


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------

class ChatRole(str, Enum):
    user = "user"
    assistant = "assistant"


class ConversationMessage(BaseModel):
    role: ChatRole
    content: str
    timestamp: int
    chartData: Optional[List[ChartSpec]] = None


# ---------------------------------------------------------------------------
# Uploaded data
# ---------------------------------------------------------------------------

Scalar = Union[str, int, float, bool, None]


class TabularDataset(BaseModel):
    filename: str
    columns: List[str]
    data: List[Dict[str, Scalar]] = Field(default_factory=list)

    @field_validator("columns")
    @classmethod
    def unique_columns(cls, v: List[str]) -> List[str]:
        if len(set(v)) != len(v):
            raise ValueError("columns must be unique")
        return v


class ChartabilityCheck(BaseModel):
    valid: bool
    message: Optional[str] = None


class DatasetErrorKind(str, Enum):
    too_large = "too_large"
    unsupported_format = "unsupported_format"
    empty = "empty"
    malformed_content = "malformed_content"
    no_numeric_column = "no_numeric_column"


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

CURRENT_SCHEMA_VERSION = 1


class ChartVersion(BaseModel):
    model_config = ConfigDict(frozen=True)

    versionId: str
    timestamp: int
    request: str
    charts: List[ChartSpec] = Field(default_factory=list)
    isAdjustment: bool = False


class ChartSession(BaseModel):
    id: str
    originalRequest: str
    timestamp: int
    versions: List[ChartVersion] = Field(min_length=1)
    messages: List[ConversationMessage] = Field(default_factory=list)
    schemaVersion: int = CURRENT_SCHEMA_VERSION

    @property
    def latest(self) -> ChartVersion:
        return self.versions[-1]


# ---------------------------------------------------------------------------
# Completion outcomes
# ---------------------------------------------------------------------------

class ChartResult(BaseModel):
    charts: List[ChartSpec] = Field(default_factory=list)
    isAdjustment: bool = False
    explanation: Optional[str] = None
    error: Optional[str] = None


class CompletionErrorKind(str, Enum):
    empty_response = "empty_response"
    unparsable_response = "unparsable_response"
    transport_failure = "transport_failure"


class CompletionFailure(BaseModel):
    reason: CompletionErrorKind
    detail: Optional[str] = None
