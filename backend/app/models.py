from pydantic import BaseModel, Field
from typing import List, Optional

from core.models import ChartSpec, ChartSession, ConversationMessage, TabularDataset


class GenerateChartRequest(BaseModel):
    """Simple mode: one free-text request, no context."""
    request: str = ""


class ChatRequest(BaseModel):
    """Conversational mode."""
    message: str = ""
    chatHistory: List[ConversationMessage] = Field(default_factory=list)
    currentCharts: Optional[List[ChartSpec]] = None
    fileData: Optional[TabularDataset] = None
    historyId: Optional[str] = Field(
        None,
        description="History session this conversation belongs to; new turns are appended to it",
    )


class ChartResponse(BaseModel):
    charts: List[ChartSpec]
    isAdjustment: Optional[bool] = None
    explanation: Optional[str] = None


class ChatResponse(ChartResponse):
    historyId: Optional[str] = None
    messages: List[ConversationMessage] = Field(default_factory=list)


class UploadResponse(BaseModel):
    ok: bool = True
    dataset: TabularDataset
    preview: TabularDataset
    rows: int
    columns: List[str]


class HistoryListResponse(BaseModel):
    history: List[ChartSession]


class MessagesUpdate(BaseModel):
    messages: List[ConversationMessage]
