"""Request/response schemas for the assistant tool endpoints."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from llm.models import ToolCall
from schemas.undo import UndoBatch


class ToolContext(BaseModel):
    """Ambient defaults sent with a tool call (the undo tracker is server-side)."""
    model_config = ConfigDict(protected_namespaces=())

    workspace_id: Optional[str] = None
    user_id: Optional[str] = None
    current_tab_id: Optional[str] = None
    current_project_id: Optional[str] = None
    context_table_id: Optional[str] = None
    context_block_id: Optional[str] = None


class ToolExecuteRequest(BaseModel):
    call: ToolCall
    context: ToolContext = Field(default_factory=ToolContext)
    capture_undo: bool = False


class ToolBatchRequest(BaseModel):
    calls: List[ToolCall]
    context: ToolContext = Field(default_factory=ToolContext)
    mode: Literal["sequential", "parallel"] = "sequential"
    capture_undo: bool = False


class UndoJournal(BaseModel):
    """Undo batches recorded during a request plus the write tools that had nothing to record."""

    batches: List[UndoBatch] = Field(default_factory=list)
    skipped_tools: List[str] = Field(default_factory=list)


class ToolExecuteResponse(BaseModel):
    result: Dict[str, Any]
    undo: Optional[UndoJournal] = None


class ToolBatchResponse(BaseModel):
    results: List[Dict[str, Any]]
    undo: Optional[UndoJournal] = None


class UndoRequest(BaseModel):
    batches: List[UndoBatch]


class ToolListResponse(BaseModel):
    format: str
    count: int
    tools: List[Any]
