"""Undo journal schemas."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class UndoStep(BaseModel):
    """A reversible storage operation keyed to one underlying table.

    ``upsert`` steps restore pre-images (``rows`` + ``on_conflict``);
    ``delete`` steps remove rows by ``ids`` (matched on ``id_column``) or
    by a ``where`` equality filter.
    """

    action: Literal["upsert", "delete"]
    table: str
    rows: Optional[List[Dict[str, Any]]] = None
    ids: Optional[List[str]] = None
    id_column: str = "id"
    on_conflict: Optional[str] = None
    where: Optional[Dict[str, Any]] = None


class UndoBatch(BaseModel):
    """Steps recorded for one successful tool call."""

    tool_name: Optional[str] = None
    steps: List[UndoStep] = Field(default_factory=list)


class UndoApplyResult(BaseModel):
    applied: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)
