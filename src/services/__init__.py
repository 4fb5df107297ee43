"""Tool execution services: catalog, resolution, handlers, undo and data actions.

Import submodules directly (``from services.tool_dispatcher import ToolDispatcher``).
"""
