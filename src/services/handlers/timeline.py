"""Timeline tools: events and dependencies."""

import logging
from typing import Any, Dict, Optional

from core.exceptions import AmbiguousEntityError, ToolValidationError
from llm.models import ToolResult
from services.entity_resolver import TIMELINE_BLOCK_CONTENT, Ambiguous, Resolved, format_ambiguity_error
from services.handlers.base import ExecutionRun, HandlerBase, pick

logger = logging.getLogger(__name__)

EVENT_FIELDS = ("title", "start_date", "end_date", "status", "progress", "notes", "color", "is_milestone")


class TimelineHandlers(HandlerBase):

    async def _event_assignee_id(self, args: Dict, run: ExecutionRun) -> Optional[str]:
        """``assignee_id`` as given, or the member matching ``assignee_name``.

        An unknown name leaves the event unassigned; an ambiguous one fails.
        """
        if args.get("assignee_id"):
            return args["assignee_id"]
        if not args.get("assignee_name"):
            return None
        resolution = await run.resolver.resolve_member(args["assignee_name"])
        if isinstance(resolution, Ambiguous):
            raise AmbiguousEntityError(
                format_ambiguity_error([resolution.ambiguity]),
                candidates=[m.model_dump() for m in resolution.ambiguity.matches],
            )
        return resolution.id if isinstance(resolution, Resolved) else None

    async def _create_timeline_event(self, args: Dict, run: ExecutionRun) -> ToolResult:
        """Create an event in the resolved timeline block (created in the current tab if missing)."""
        timeline_block_id = await run.resolver.resolve_container(
            "timeline", args.get("timeline_block_id"), args.get("timeline_block_name"), TIMELINE_BLOCK_CONTENT
        )
        if not timeline_block_id:
            raise ToolValidationError("Missing timeline_block_id. Provide an id or timeline_block_name.")

        payload: Dict[str, Any] = {"timeline_block_id": timeline_block_id, **pick(args, *EVENT_FIELDS)}
        assignee_id = await self._event_assignee_id(args, run)
        if assignee_id:
            payload["assignee_id"] = assignee_id
        return self._wrap(await self.actions.create("timeline_events", payload))

    async def _update_timeline_event(self, args: Dict, run: ExecutionRun) -> ToolResult:
        updates = pick(args, *EVENT_FIELDS)
        assignee_id = await self._event_assignee_id(args, run)
        if assignee_id:
            updates["assignee_id"] = assignee_id
        if not updates:
            raise ToolValidationError("update_timeline_event needs at least one field to change.")
        return self._wrap(await self.actions.update("timeline_events", args["event_id"], updates))

    async def _delete_timeline_event(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return self._wrap(await self.actions.delete("timeline_events", args["event_id"]))

    async def _create_timeline_dependency(self, args: Dict, run: ExecutionRun) -> ToolResult:
        payload = {
            "timeline_block_id": args["timeline_block_id"],
            "from_id": args["from_event_id"],
            "to_id": args["to_event_id"],
            "dependency_type": args.get("dependency_type") or "finish-to-start",
        }
        return self._wrap(await self.actions.create("timeline_dependencies", payload))

    async def _delete_timeline_dependency(self, args: Dict, run: ExecutionRun) -> ToolResult:
        return self._wrap(await self.actions.delete("timeline_dependencies", args["dependency_id"]))
