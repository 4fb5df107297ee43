"""Entity and context resolution for tool calls.

Turns free-text names (assignees, clients, tables, tabs, blocks) into
identifiers and fills container ids from the execution context. Every
lookup yields a tagged result (``Resolved`` / ``Ambiguous`` /
``NotFound``); ambiguity is never resolved by guessing.

One resolver is created per tool call, so its container memo lives
exactly as long as that call.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from core.config import Settings
from core.exceptions import AmbiguousEntityError, DataActionError, EntityNotFoundError, ToolValidationError
from schemas.workspace import Ambiguity, AmbiguityCandidate, ExecutionContext, ResolvedAssignee
from services.data_actions import DataActions
from services.field_matching import is_uuid, normalize_key

logger = logging.getLogger(__name__)

TASK_BLOCK_CONTENT = {"title": "Tasks", "hide_icons": False, "view_mode": "list", "board_group_by": "status"}
TIMELINE_BLOCK_CONTENT = {"title": "Timeline", "view_mode": "gantt"}


@dataclass
class Resolved:
    id: str
    name: Optional[str] = None
    record: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Ambiguous:
    ambiguity: Ambiguity


@dataclass
class NotFound:
    input: str


Resolution = Union[Resolved, Ambiguous, NotFound]


@dataclass
class AssigneeResolution:
    resolved: List[ResolvedAssignee] = field(default_factory=list)
    ambiguities: List[Ambiguity] = field(default_factory=list)

    def raise_for_ambiguity(self) -> None:
        if self.ambiguities:
            raise AmbiguousEntityError(
                format_ambiguity_error(self.ambiguities),
                candidates=[m.model_dump() for a in self.ambiguities for m in a.matches],
            )


def format_ambiguity_error(ambiguities: List[Ambiguity]) -> str:
    details = " ".join(ambiguity.describe() + "." for ambiguity in ambiguities)
    return f"Ambiguous assignee name(s). {details} Please specify which person you mean."


def require_resolved(resolution: Resolution, entity_label: str) -> Resolved:
    """Unwrap a resolution or raise the matching tool error."""
    if isinstance(resolution, Resolved):
        return resolution
    if isinstance(resolution, Ambiguous):
        raise AmbiguousEntityError(
            f"Multiple {entity_label}s match {resolution.ambiguity.describe()}. Please specify which one you mean.",
            candidates=[m.model_dump() for m in resolution.ambiguity.matches],
        )
    raise EntityNotFoundError(f'No {entity_label} found matching "{resolution.input}".')


def normalize_assignee_entries(raw: Any) -> List[Dict[str, Any]]:
    """Accept names, ids, or dicts; return dict entries.

    A UUID-shaped string is an id, any other string is a name.
    """
    if raw is None:
        return []
    items = raw if isinstance(raw, list) else [raw]
    entries = []
    for item in items:
        if isinstance(item, dict):
            entries.append(item)
        elif isinstance(item, str) and item.strip():
            value = item.strip()
            entries.append({"id": value} if is_uuid(value) else {"name": value})
    return entries


def _record_title(record: Dict[str, Any]) -> Optional[str]:
    content = record.get("content") if isinstance(record.get("content"), dict) else {}
    for key in ("title", "name"):
        if record.get(key):
            return str(record[key])
    if content.get("title"):
        return str(content["title"])
    return None


def classify_matches(query: str, records: List[Dict[str, Any]]) -> Resolution:
    """Classify search hits: one hit or one exact title wins, else ambiguous."""
    if not records:
        return NotFound(query)
    if len(records) == 1:
        record = records[0]
        return Resolved(id=str(record["id"]), name=_record_title(record), record=record)

    exact = [r for r in records if normalize_key(_record_title(r) or "") == normalize_key(query)]
    if len(exact) == 1:
        return Resolved(id=str(exact[0]["id"]), name=_record_title(exact[0]), record=exact[0])

    return Ambiguous(
        Ambiguity(
            input=query,
            matches=[
                AmbiguityCandidate(id=str(r["id"]), name=_record_title(r), email=r.get("email"))
                for r in records
            ],
        )
    )


class EntityResolver:
    """Resolve names and ambient context into ids for one tool call."""

    def __init__(self, actions: DataActions, context: ExecutionContext, settings: Settings):
        self.actions = actions
        self.context = context
        self.settings = settings
        # (block_type, tab_id) -> container block id, scoped to this call
        self._container_memo: Dict[Tuple[str, str], str] = {}

    async def _search(self, entity: str, **params: Any) -> List[Dict[str, Any]]:
        result = await self.actions.search(entity, **params)
        if not result.ok:
            raise DataActionError(f"{entity}.search", result.error)
        return list(result.data or [])

    # -------------------------------------------------------------------------
    # People
    # -------------------------------------------------------------------------

    async def _member_name(self, user_id: str) -> Optional[str]:
        result = await self.actions.search("members", search_text=user_id, limit=self.settings.MEMBER_SEARCH_LIMIT)
        members = result.data or [] if result.ok else []
        return members[0].get("name") if members else None

    async def resolve_member(self, name: str) -> Resolution:
        """Resolve one person by name: 0 → NotFound, 1 → Resolved, >1 → Ambiguous."""
        members = await self._search("members", search_text=name, limit=self.settings.MEMBER_SEARCH_LIMIT)
        if not members:
            return NotFound(name)
        if len(members) == 1:
            member = members[0]
            return Resolved(id=str(member["user_id"]), name=member.get("name") or name, record=member)
        return Ambiguous(
            Ambiguity(
                input=name,
                matches=[
                    AmbiguityCandidate(id=str(m["user_id"]), name=m.get("name") or "", email=m.get("email"))
                    for m in members
                ],
            )
        )

    async def _resolve_assignee_entry(self, entry: Dict[str, Any]) -> Union[ResolvedAssignee, Ambiguity, None]:
        user_id = entry.get("user_id") or entry.get("userId")
        name = entry.get("name")
        if user_id:
            return ResolvedAssignee(id=user_id, name=name or await self._member_name(user_id))

        if name:
            resolution = await self.resolve_member(name)
            if isinstance(resolution, Resolved):
                return ResolvedAssignee(id=resolution.id, name=resolution.name)
            if isinstance(resolution, Ambiguous):
                return resolution.ambiguity
            return ResolvedAssignee(name=name)

        if entry.get("id"):
            return ResolvedAssignee(id=entry["id"], name=await self._member_name(entry["id"]))
        return None

    async def resolve_assignees(self, raw_entries: Any) -> AssigneeResolution:
        """Resolve assignee names/ids; lookups for separate entries run concurrently."""
        entries = normalize_assignee_entries(raw_entries)
        outcomes = await asyncio.gather(*(self._resolve_assignee_entry(entry) for entry in entries))

        resolution = AssigneeResolution()
        for outcome in outcomes:
            if isinstance(outcome, Ambiguity):
                resolution.ambiguities.append(outcome)
            elif outcome is not None:
                resolution.resolved.append(outcome)
        return resolution

    # -------------------------------------------------------------------------
    # Named entities
    # -------------------------------------------------------------------------

    async def resolve_by_name(self, entity: str, name: str, **filters: Any) -> Resolution:
        records = await self._search(entity, search_text=name, limit=self.settings.ENTITY_SEARCH_LIMIT, **filters)
        return classify_matches(name, records)

    async def resolve_client_id(self, client_name: str) -> Resolution:
        return await self.resolve_by_name("clients", client_name)

    async def resolve_table_id(self, args: Dict[str, Any], required: bool = True) -> Optional[str]:
        """``table_id`` → ``table_name`` search → table in focus."""
        if args.get("table_id"):
            return args["table_id"]
        if args.get("table_name"):
            resolution = await self.resolve_by_name("tables", args["table_name"])
            return require_resolved(resolution, "table").id
        if self.context.context_table_id:
            return self.context.context_table_id
        if required:
            raise ToolValidationError("Missing table_id. Provide table_id or table_name.")
        return None

    async def resolve_tab_id(self, args: Dict[str, Any], required: bool = True) -> Optional[str]:
        """``tab_id`` → ``tab_name`` search (current project first) → current tab."""
        if args.get("tab_id"):
            return args["tab_id"]
        if args.get("tab_name"):
            resolution: Resolution = NotFound(args["tab_name"])
            if self.context.current_project_id:
                resolution = await self.resolve_by_name(
                    "tabs", args["tab_name"], project_id=self.context.current_project_id
                )
            if isinstance(resolution, NotFound):
                resolution = await self.resolve_by_name("tabs", args["tab_name"])
            return require_resolved(resolution, "tab").id
        if self.context.current_tab_id:
            return self.context.current_tab_id
        if required:
            raise ToolValidationError("Missing tab_id. Provide tab_id or tab_name, or open a tab.")
        return None

    # -------------------------------------------------------------------------
    # Containers (task blocks, timeline blocks)
    # -------------------------------------------------------------------------

    async def _container_by_name(self, block_type: str, name: str) -> str:
        tab_id = self.context.current_tab_id
        resolution: Resolution = NotFound(name)
        if tab_id:
            blocks = await self._search("blocks", type=block_type, tab_id=tab_id, limit=self.settings.ENTITY_SEARCH_LIMIT * 2)
            named = [b for b in blocks if normalize_key(name) in normalize_key(_record_title(b) or "")]
            resolution = classify_matches(name, named)
        if isinstance(resolution, NotFound):
            resolution = await self.resolve_by_name("blocks", name, type=block_type)
        return require_resolved(resolution, f"{block_type} block").id

    async def resolve_container(
        self,
        block_type: str,
        explicit_id: Optional[str] = None,
        name: Optional[str] = None,
        default_content: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        """Find the block that should hold new items of ``block_type``.

        Explicit id, then block name, then the current tab's container
        (memoized for this call), creating one in the current tab if the
        tab has none, then any container of that type in the workspace.
        """
        if explicit_id:
            return explicit_id
        if name:
            return await self._container_by_name(block_type, name)

        tab_id = self.context.current_tab_id
        if tab_id:
            memo_key = (block_type, tab_id)
            if memo_key in self._container_memo:
                return self._container_memo[memo_key]

            found = await self.actions.search("blocks", type=block_type, tab_id=tab_id, limit=1)
            if found.ok and found.data:
                self._container_memo[memo_key] = found.data[0]["id"]
                return self._container_memo[memo_key]

            if found.ok:
                created = await self.actions.create(
                    "blocks",
                    {"tab_id": tab_id, "type": block_type, "content": dict(default_content or {})},
                )
                if created.ok and created.data:
                    logger.info(f"Created {block_type} block {created.data['id']} in tab {tab_id}")
                    self._container_memo[memo_key] = created.data["id"]
                    return self._container_memo[memo_key]
                logger.debug(f"Could not create {block_type} block in tab {tab_id}: {created.error}")
            else:
                logger.debug(f"{block_type} block lookup in tab {tab_id} failed: {found.error}")

        anywhere = await self.actions.search("blocks", type=block_type, limit=1)
        if anywhere.ok and anywhere.data:
            return anywhere.data[0]["id"]
        return None

    async def task_block_for_tab(self, tab_id: str) -> str:
        """Reuse or create the task block of ``tab_id``."""
        memo_key = ("task", tab_id)
        if memo_key in self._container_memo:
            return self._container_memo[memo_key]
        found = await self.actions.search("blocks", type="task", tab_id=tab_id, limit=1)
        if found.ok and found.data:
            block_id = found.data[0]["id"]
        else:
            created = await self.actions.create(
                "blocks", {"tab_id": tab_id, "type": "task", "content": dict(TASK_BLOCK_CONTENT)}
            )
            block_id = created.unwrap("blocks.create")["id"]
        self._container_memo[memo_key] = block_id
        return block_id
