"""Tool calling models for the workspace assistant."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ToolRecoveryStrategy(str, Enum):
    """Recovery strategies for tool execution failures."""
    RETRY = "retry"          # Transient failure, the same call may succeed later
    CLARIFY = "clarify"      # Ask user for more info (ambiguity, missing args)
    FAIL = "fail"            # Return error to user


class ToolCall(BaseModel):
    """A tool call from the LLM.

    Represents a single tool invocation request, including the tool name
    and its loosely-typed arguments.
    """
    model_config = ConfigDict(protected_namespaces=())

    name: str
    arguments: Dict[str, Any] = {}
    id: Optional[str] = None  # Unique ID for tracking


class ToolResult(BaseModel):
    """Result of tool execution.

    A failed result may still carry ``data`` with per-item failure details.
    ``warnings`` may accompany a successful result to flag partial data
    loss; ``hint`` is a short human-readable summary for the caller.
    """
    model_config = ConfigDict(protected_namespaces=())

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_type: Optional[str] = None  # "validation", "ambiguous", "not_found", "execution_error"
    warnings: List[str] = Field(default_factory=list)
    hint: Optional[str] = None
    recovery_strategy: Optional[ToolRecoveryStrategy] = None
    execution_time_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        payload: Dict[str, Any] = {"success": self.success}
        if self.success or self.data is not None:
            payload["data"] = self.data
        if not self.success:
            payload["error"] = self.error
            payload["error_type"] = self.error_type
        if self.warnings:
            payload["warnings"] = self.warnings
        if self.hint:
            payload["hint"] = self.hint
        if self.recovery_strategy:
            payload["recovery_strategy"] = self.recovery_strategy.value
        if self.execution_time_ms is not None:
            payload["execution_time_ms"] = self.execution_time_ms
        return payload


class ToolDefinition(BaseModel):
    """Definition of a tool available to the LLM.

    Used to register tools in the tool catalog and to format them for the
    LLM's tool calling prompt.
    """
    model_config = ConfigDict(protected_namespaces=())

    name: str
    description: str
    category: str  # "search", "control", "task", "table", ...
    parameters: Dict[str, Any] = {}  # JSON Schema for parameters
    is_destructive: bool = False  # Marks delete operations

    @property
    def required_params(self) -> List[str]:
        return list(self.parameters.get("required", []))

    def _json_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": self.parameters.get("properties", {}),
            "required": self.required_params,
        }

    def to_openai_format(self) -> Dict[str, Any]:
        """Convert to OpenAI function calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self._json_schema()
            }
        }

    def to_anthropic_format(self) -> Dict[str, Any]:
        """Convert to Anthropic tool use format."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self._json_schema()
        }

    def to_catalog_entry(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "parameters": self.parameters.get("properties", {}),
            "required_params": self.required_params,
            "is_destructive": self.is_destructive,
        }

    def to_prompt_format(self) -> str:
        """Convert to a text format suitable for prompt injection."""
        params_desc = []
        props = self.parameters.get("properties", {})
        required = self.required_params

        for name, schema in props.items():
            req_marker = " (required)" if name in required else " (optional)"
            param_type = schema.get("type", "any")
            desc = schema.get("description", "")
            params_desc.append(f"  - {name}: {param_type}{req_marker} - {desc}")

        params_str = "\n".join(params_desc) if params_desc else "  (no parameters)"

        return f"""Tool: {self.name}
Description: {self.description}
Parameters:
{params_str}"""
