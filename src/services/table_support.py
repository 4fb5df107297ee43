"""Write-side helpers for table tools.

Default-column reuse on brand-new tables, row key to field id mapping,
the duplicate-insert guard, placeholder-row cleanup and select-value
normalization before rows are written.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from core.config import Settings
from core.exceptions import DataActionError
from schemas.workspace import TableField
from services.data_actions import ActionResult, DataActions
from services.field_matching import is_select_like, normalize_key, resolve_select_values
from services.schema_inference import (
    apply_default_field_config,
    infer_configs_for_unconfigured_fields,
    infer_simple_type,
)

logger = logging.getLogger(__name__)

DEFAULT_FIELD_NAMES = ("column 2", "column 3")
CONFIG_REQUIRED_TYPES = frozenset({"formula", "rollup", "relation"})
PRIMARY_FIELD_ALIASES = frozenset({"name", "title", "state", "state name", "state_name"})

# A table with at most this many rows and no populated cell is "new"
NEW_TABLE_MAX_ROWS = 3

Row = Dict[str, Any]


def primary_field(fields: List[TableField]) -> Optional[TableField]:
    for field in fields:
        if field.is_primary:
            return field
    return fields[0] if fields else None


def _rows_payload(result: ActionResult) -> Tuple[List[Row], int]:
    data = result.data or {}
    rows = list(data.get("rows") or [])
    total = data.get("total")
    return rows, total if total is not None else len(rows)


def _has_populated_cell(rows: List[Row]) -> bool:
    return any(row.get("data") for row in rows)


async def is_new_empty_table(actions: DataActions, table_id: str) -> bool:
    """At most three rows and none of them carries data."""
    result = await actions.get_table_rows(table_id, limit=NEW_TABLE_MAX_ROWS + 2)
    if not result.ok:
        return False
    rows, total = _rows_payload(result)
    return total <= NEW_TABLE_MAX_ROWS and not _has_populated_cell(rows)


async def maybe_remove_default_rows(actions: DataActions, table_id: str) -> None:
    """Drop the empty placeholder rows a new table starts with."""
    result = await actions.get_table_rows(table_id, limit=NEW_TABLE_MAX_ROWS + 2)
    if not result.ok:
        return
    rows, total = _rows_payload(result)
    if total == 0 or total > NEW_TABLE_MAX_ROWS or _has_populated_cell(rows):
        return
    row_ids = [row["id"] for row in rows if row.get("id")]
    if row_ids:
        deleted = await actions.invoke("rows.bulk_delete", {"row_ids": row_ids})
        if not deleted.ok:
            logger.warning(f"Could not remove placeholder rows from table {table_id}: {deleted.error}")


# =============================================================================
# Default-column reuse
# =============================================================================

class DefaultColumnPool:
    """Placeholder columns of a new table, consumed one claim at a time.

    Only the non-primary "Column 2" / "Column 3" fields are candidates.
    Text fields prefer Column 2, other types prefer Column 3.
    """

    def __init__(self, fields: List[TableField]):
        self._available: Dict[str, TableField] = {
            normalize_key(field.name): field
            for field in fields
            if not field.is_primary and normalize_key(field.name) in DEFAULT_FIELD_NAMES
        }

    def __len__(self) -> int:
        return len(self._available)

    def claim(self, field_type: str, config: Optional[Dict[str, Any]] = None, is_primary: bool = False) -> Optional[TableField]:
        if is_primary or not self._available:
            return None
        if field_type in CONFIG_REQUIRED_TYPES and not config:
            return None
        preferred = DEFAULT_FIELD_NAMES if field_type == "text" else tuple(reversed(DEFAULT_FIELD_NAMES))
        for name in preferred:
            if name in self._available:
                return self._available.pop(name)
        return None


@dataclass
class FieldPlan:
    kind: str  # "existing", "reuse", "create"
    name: str
    type: str
    config: Optional[Dict[str, Any]] = None
    is_primary: bool = False
    field: Optional[TableField] = None


def plan_field_creation(
    existing_fields: List[TableField],
    requested: List[Dict[str, Any]],
    is_empty: bool,
) -> List[FieldPlan]:
    """Decide, per requested field, whether it already exists, reuses a placeholder or is new."""
    by_name = {normalize_key(field.name): field for field in existing_fields}
    pool = DefaultColumnPool(existing_fields if is_empty else [])

    plans = []
    for spec in requested:
        name = str(spec.get("name") or "").strip()
        field_type = str(spec.get("type") or "text")
        config = spec.get("config")
        is_primary = bool(spec.get("is_primary"))

        existing = by_name.get(normalize_key(name))
        if existing is not None:
            plans.append(FieldPlan("existing", name, existing.type, existing.config, existing.is_primary, existing))
            continue

        candidate = pool.claim(field_type, config, is_primary)
        if candidate is not None:
            plans.append(FieldPlan("reuse", name, field_type, config, False, candidate))
            continue

        plans.append(FieldPlan("create", name, field_type, config, is_primary))
    return plans


async def apply_field_plan(actions: DataActions, table_id: str, plan: FieldPlan) -> ActionResult:
    if plan.kind == "existing":
        return ActionResult(data=plan.field.model_dump())

    config = apply_default_field_config(plan.type, plan.config)
    if plan.kind == "reuse":
        updates: Dict[str, Any] = {"name": plan.name, "type": plan.type}
        if config is not None:
            updates["config"] = config
        logger.debug(f"Reusing placeholder column {plan.field.name} as {plan.name}")
        return await actions.update("fields", plan.field.id, updates)

    payload: Dict[str, Any] = {"table_id": table_id, "name": plan.name, "type": plan.type}
    if config is not None:
        payload["config"] = config
    if plan.is_primary:
        payload["is_primary"] = True
    return await actions.create("fields", payload)


# =============================================================================
# Row shaping
# =============================================================================

def normalize_insert_rows(args: Dict[str, Any]) -> Optional[List[Row]]:
    """Accept ``rows: [{data, order?}]`` or the legacy ``data`` list.

    A legacy list whose entries only carry ``data``/``order`` keys is
    already row-shaped; otherwise each entry is one row's data.
    """
    rows = args.get("rows")
    if isinstance(rows, list):
        return [row if isinstance(row, dict) and "data" in row else {"data": row} for row in rows]

    legacy = args.get("data")
    if not isinstance(legacy, list):
        return None
    row_shaped = all(
        isinstance(entry, dict) and "data" in entry and set(entry) <= {"data", "order"} for entry in legacy
    )
    return list(legacy) if row_shaped else [{"data": entry} for entry in legacy]


def format_unmatched_warning(unmatched: Counter, fields: List[TableField]) -> str:
    summary = ", ".join(f'"{name}" ({count} rows)' for name, count in unmatched.items())
    available = ", ".join(field.name for field in fields)
    return (
        f"Fields not found in table schema: {summary}. Data for these fields was dropped. "
        f"Available fields: {available}"
    )


def map_row_data_to_field_ids(fields: List[TableField], rows: List[Row]) -> Tuple[List[Row], List[str]]:
    """Re-key row data from human field names to field ids.

    Names match case-insensitively; primary aliases bind to the primary
    field; field ids pass through. A row with a single unmatched key falls
    back to the primary field. Other unknown keys are dropped and reported.
    """
    if not fields or not rows:
        return rows, []

    primary = primary_field(fields)
    by_name = {normalize_key(field.name): field.id for field in fields}
    field_ids = {field.id for field in fields}
    unmatched: Counter = Counter()

    mapped_rows = []
    for row in rows:
        data = row.get("data") or {}
        mapped: Dict[str, Any] = {}
        dropped: List[str] = []
        for key, value in data.items():
            normalized = normalize_key(key)
            if normalized in by_name:
                mapped[by_name[normalized]] = value
            elif primary is not None and normalized in PRIMARY_FIELD_ALIASES:
                mapped[primary.id] = value
            elif key in field_ids:
                mapped[key] = value
            else:
                dropped.append(key)

        if not mapped and primary is not None and len(data) == 1:
            mapped[primary.id] = next(iter(data.values()))
        else:
            unmatched.update(dropped)

        mapped_rows.append({**row, "data": mapped})

    warnings = []
    if unmatched:
        warning = format_unmatched_warning(unmatched, fields)
        logger.warning(warning)
        warnings.append(warning)
    return mapped_rows, warnings


def unknown_row_keys(fields: List[TableField], rows: List[Row]) -> Dict[str, List[Any]]:
    """Row keys (first spelling) that match no field, with their values."""
    known = {normalize_key(field.name) for field in fields} | PRIMARY_FIELD_ALIASES
    field_ids = {field.id for field in fields}
    missing: Dict[str, Tuple[str, List[Any]]] = {}
    for row in rows:
        for key, value in (row.get("data") or {}).items():
            normalized = normalize_key(key)
            if normalized in known or key in field_ids:
                continue
            missing.setdefault(normalized, (key, []))[1].append(value)
    return {original: values for original, values in missing.values()}


async def maybe_ensure_fields_for_rows(actions: DataActions, table_id: str, rows: List[Row]) -> bool:
    """Provision fields for unknown row keys, but only on a brand-new empty table.

    Placeholder columns are renamed first, then new fields are created.
    Returns True when the schema changed.
    """
    fields = await actions.get_table_fields(table_id)
    missing = unknown_row_keys(fields, rows)
    if not missing or not await is_new_empty_table(actions, table_id):
        return False

    pool = DefaultColumnPool(fields)
    for name, values in missing.items():
        field_type = infer_simple_type(values)
        candidate = pool.claim(field_type)
        if candidate is not None:
            plan = FieldPlan("reuse", name, field_type, field=candidate)
        else:
            plan = FieldPlan("create", name, field_type)
        result = await apply_field_plan(actions, table_id, plan)
        result.unwrap("fields.update" if candidate is not None else "fields.create")
    logger.info(f"Provisioned {len(missing)} field(s) on new table {table_id}")
    return True


def _comparable(value: Any) -> str:
    return "" if value is None else str(value).strip().lower()


async def should_skip_duplicate_insert(
    actions: DataActions,
    fields: List[TableField],
    table_id: str,
    rows: List[Row],
    settings: Settings,
) -> bool:
    """True when every incoming primary value is already in the table.

    Only decided when one fetch page captures the whole table; otherwise
    the insert proceeds.
    """
    primary = primary_field(fields)
    if primary is None or not rows:
        return False

    incoming = {_comparable((row.get("data") or {}).get(primary.id)) for row in rows} - {""}
    if not incoming:
        return False

    fetch_limit = max(len(incoming), settings.DUPLICATE_CHECK_MIN_FETCH)
    result = await actions.get_table_rows(table_id, limit=fetch_limit)
    if not result.ok:
        return False
    existing_rows, total = _rows_payload(result)
    if not existing_rows or total == 0 or total > len(existing_rows):
        return False

    existing = {_comparable((row.get("data") or {}).get(primary.id)) for row in existing_rows} - {""}
    return bool(existing) and incoming <= existing


async def enhance_fields_and_normalize_select_values(
    actions: DataActions, table_id: str, rows: List[Row]
) -> List[Row]:
    """Infer options for unconfigured select fields, persist them, then map labels to ids.

    Rows are keyed by field id.
    """
    if not rows:
        return rows

    fields = await actions.get_table_fields(table_id)
    pending = infer_configs_for_unconfigured_fields(fields, rows)
    for field, config in pending:
        result = await actions.update("fields", field.id, {"config": config})
        if not result.ok:
            raise DataActionError("fields.update", result.error)
    if pending:
        fields = await actions.get_table_fields(table_id)

    select_fields = {field.id: field for field in fields if is_select_like(field.type)}
    normalized_rows = []
    for row in rows:
        data = dict(row.get("data") or {})
        for field_id, raw_value in list(data.items()):
            field = select_fields.get(field_id)
            if field is None:
                continue
            resolution = resolve_select_values(field, raw_value, allow_create=False)
            if resolution.ids:
                data[field_id] = resolution.ids if field.type == "multi_select" else resolution.ids[0]
        normalized_rows.append({**row, "data": data})
    return normalized_rows
