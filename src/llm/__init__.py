"""
LLM-facing tool models.

Tool definitions, calls and results exchanged with the language model
layer that produces tool calls.
"""

from .models import (
    ToolCall,
    ToolDefinition,
    ToolRecoveryStrategy,
    ToolResult,
)

__all__ = [
    'ToolCall',
    'ToolDefinition',
    'ToolRecoveryStrategy',
    'ToolResult',
]
