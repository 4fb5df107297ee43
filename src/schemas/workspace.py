"""Workspace schemas used by the tool execution engine."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ExecutionContext(BaseModel):
    """Ambient defaults for one tool call.

    Immutable and passed by value; handlers fill gaps in tool arguments
    from it (current tab/project, table in focus) but never mutate it.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, protected_namespaces=())

    workspace_id: Optional[str] = None
    user_id: Optional[str] = None
    current_tab_id: Optional[str] = None
    current_project_id: Optional[str] = None
    context_table_id: Optional[str] = None
    context_block_id: Optional[str] = None
    undo_tracker: Optional[Any] = Field(default=None, exclude=True)


class ResolvedAssignee(BaseModel):
    """A bound workspace member (id + name) or a name-only external placeholder."""
    model_config = ConfigDict(protected_namespaces=())

    id: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_external(self) -> bool:
        return self.id is None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.id:
            payload["id"] = self.id
        if self.name:
            payload["name"] = self.name
        return payload


class AmbiguityCandidate(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None

    def describe(self) -> str:
        label = self.name or self.id
        if self.email:
            return f"{label} ({self.email}) [id: {self.id}]"
        return f"{label} [id: {self.id}]"


class Ambiguity(BaseModel):
    """Produced instead of a resolution when a name matches several candidates."""

    input: str
    matches: List[AmbiguityCandidate]

    def describe(self) -> str:
        options = "; ".join(candidate.describe() for candidate in self.matches)
        return f'"{self.input}" matches {len(self.matches)} candidates: {options}'


class TableField(BaseModel):
    """A dynamic table field as returned by the table schema action."""
    model_config = ConfigDict(extra="allow", protected_namespaces=())

    id: str
    name: str
    type: str = "text"
    config: Dict[str, Any] = Field(default_factory=dict)
    is_primary: bool = False
    order: Optional[int] = None
