"""External data actions used by the tool execution engine.

The engine never talks to storage directly. Every read and write goes
through a ``DataActions`` implementation exposing one
search/create/update/delete primitive per entity kind (addressed as
``"<entity>.<verb>"``), optional composite "full" RPCs, and raw row
access used by undo capture.

``HttpDataActions`` is the production adapter; it forwards actions to the
workspace backend over HTTP.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from core.config import Settings, get_cached_settings
from core.exceptions import DataActionError
from core.identity_context import get_call_identity
from schemas.workspace import TableField

logger = logging.getLogger(__name__)


@dataclass
class ActionResult:
    """Outcome of one external action: either ``data`` or ``error``."""

    data: Any = None
    error: Optional[str] = None
    unavailable: bool = False  # RPC not deployed on the backend

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self, action: str) -> Any:
        if self.error is not None:
            raise DataActionError(action, self.error)
        return self.data


class DataActions(ABC):
    """Port to the workspace storage backend."""

    @abstractmethod
    async def invoke(self, action: str, params: Dict[str, Any]) -> ActionResult:
        """Run a granular entity action such as ``tasks.create``."""

    @abstractmethod
    async def rpc(self, name: str, params: Dict[str, Any]) -> ActionResult:
        """Run a composite atomic RPC such as ``create_task_full``."""

    @abstractmethod
    async def fetch_rows(
        self,
        table: str,
        column: str,
        values: List[Any],
        where: Optional[Dict[str, Any]] = None,
    ) -> ActionResult:
        """Select raw storage rows where ``column`` is in ``values``."""

    @abstractmethod
    async def upsert_rows(self, table: str, rows: List[Dict[str, Any]], on_conflict: str) -> ActionResult:
        """Insert or replace raw storage rows."""

    @abstractmethod
    async def delete_rows(
        self,
        table: str,
        ids: Optional[List[str]] = None,
        id_column: str = "id",
        where: Optional[Dict[str, Any]] = None,
    ) -> ActionResult:
        """Delete raw storage rows by id list or equality filter."""

    # -------------------------------------------------------------------------
    # Entity helpers
    # -------------------------------------------------------------------------

    async def search(self, entity: str, **params: Any) -> ActionResult:
        return await self.invoke(f"{entity}.search", {k: v for k, v in params.items() if v is not None})

    async def create(self, entity: str, params: Dict[str, Any]) -> ActionResult:
        return await self.invoke(f"{entity}.create", params)

    async def update(self, entity: str, entity_id: str, updates: Dict[str, Any]) -> ActionResult:
        return await self.invoke(f"{entity}.update", {"id": entity_id, "updates": updates})

    async def delete(self, entity: str, entity_id: str) -> ActionResult:
        return await self.invoke(f"{entity}.delete", {"id": entity_id})

    async def get_table(self, table_id: str) -> ActionResult:
        """``{"table": {...}, "fields": [...]}`` for one table."""
        return await self.invoke("tables.get", {"table_id": table_id})

    async def get_table_fields(self, table_id: str) -> List[TableField]:
        data = (await self.get_table(table_id)).unwrap("tables.get") or {}
        return [TableField(**field) for field in data.get("fields") or []]

    async def get_table_rows(self, table_id: str, limit: int, offset: int = 0) -> ActionResult:
        """``{"rows": [{id, data, order}], "total": n}``."""
        return await self.invoke("rows.list", {"table_id": table_id, "limit": limit, "offset": offset})


class HttpDataActions(DataActions):
    """Forward data actions to the workspace backend over HTTP.

    Endpoints (all POST, JSON body, ``{"data": ...}`` or ``{"error": ...}``
    response):
        /actions/{action}
        /rpc/{name}
        /rows/select | /rows/upsert | /rows/delete
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_cached_settings()
        self.base_url = (base_url or settings.DATA_ACTIONS_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.DATA_ACTIONS_API_KEY
        self.timeout = httpx.Timeout(timeout or settings.DATA_ACTIONS_TIMEOUT)
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        identity = get_call_identity()
        if identity is not None:
            headers["X-Test-Workspace-Id"] = identity.workspace_id
            headers["X-Test-User-Id"] = identity.user_id
        return headers

    async def _post(self, path: str, payload: Dict[str, Any], allow_unavailable: bool = False) -> ActionResult:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(f"{self.base_url}{path}", json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"Data action {path} failed: {e}")
            return ActionResult(error=f"Data action request failed: {e}")

        if allow_unavailable and response.status_code in (404, 501):
            return ActionResult(error=f"RPC unavailable: {path}", unavailable=True)

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400:
            message = body.get("error") if isinstance(body, dict) else None
            return ActionResult(error=message or f"Data action {path} returned HTTP {response.status_code}")

        if isinstance(body, dict) and body.get("error"):
            return ActionResult(error=str(body["error"]))
        return ActionResult(data=body.get("data") if isinstance(body, dict) else body)

    async def invoke(self, action: str, params: Dict[str, Any]) -> ActionResult:
        return await self._post(f"/actions/{action}", params)

    async def rpc(self, name: str, params: Dict[str, Any]) -> ActionResult:
        return await self._post(f"/rpc/{name}", params, allow_unavailable=True)

    async def fetch_rows(self, table, column, values, where=None) -> ActionResult:
        return await self._post("/rows/select", {"table": table, "column": column, "values": values, "where": where})

    async def upsert_rows(self, table, rows, on_conflict) -> ActionResult:
        return await self._post("/rows/upsert", {"table": table, "rows": rows, "on_conflict": on_conflict})

    async def delete_rows(self, table, ids=None, id_column="id", where=None) -> ActionResult:
        return await self._post(
            "/rows/delete",
            {"table": table, "ids": ids, "id_column": id_column, "where": where},
        )
