"""Shared validation and filter-matching helpers for table tools.

Field resolution, select option resolution, numeric parsing and row
filter matching used by both the read path (update-by-field-name row
matching) and the undo capture path (resolving the rows a filtered
update is about to touch).
"""

import json
import re
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from schemas.workspace import TableField

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

SELECT_LIKE_TYPES = frozenset({"select", "multi_select", "status", "priority"})

FILTER_OPERATORS = frozenset({"eq", "gte", "lte", "contains"})

_NUMERIC_PATTERN = re.compile(r"^(-?\d+(\.\d+)?)([a-z]+)?$")

NUMERIC_MULTIPLIERS = {
    "k": 1e3,
    "thousand": 1e3,
    "m": 1e6,
    "million": 1e6,
    "b": 1e9,
    "billion": 1e9,
    "t": 1e12,
    "trillion": 1e12,
}


def is_uuid(value: Any) -> bool:
    return isinstance(value, str) and bool(UUID_PATTERN.match(value))


def normalize_key(value: Any) -> str:
    return str(value).strip().lower()


def is_select_like(field_type: Optional[str]) -> bool:
    return str(field_type) in SELECT_LIKE_TYPES


def new_option_id() -> str:
    return str(uuid.uuid4())


def parse_numeric_value(value: Any) -> Optional[float]:
    """Parse numbers written the way people write them.

    Accepts "10k", "2.5m", "1b", "$1,200", "3 million". Returns None for
    anything that is not a number.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return None

    raw = value.strip()
    if not raw:
        return None

    normalized = re.sub(r"[, ]+", "", raw).replace("$", "").lower()
    match = _NUMERIC_PATTERN.match(normalized)
    if not match:
        return None

    number = float(match.group(1))
    suffix = match.group(3)
    if not suffix:
        return number
    multiplier = NUMERIC_MULTIPLIERS.get(suffix)
    if multiplier is None:
        return None
    return number * multiplier


# =============================================================================
# Field resolution
# =============================================================================

def resolve_field(fields: List[TableField], key: str) -> Optional[TableField]:
    """Find a field by id or human name.

    Exact id or case-insensitive name first, then name prefix, then name
    substring. A blank key matches nothing.
    """
    normalized = normalize_key(key)
    if not normalized:
        return None
    for field in fields:
        if field.id == key or normalize_key(field.name) == normalized:
            return field
    for field in fields:
        if normalize_key(field.name).startswith(normalized):
            return field
    for field in fields:
        if normalized in normalize_key(field.name):
            return field
    return None


def get_option_entries(field: TableField) -> Tuple[Optional[str], List[Dict[str, Any]]]:
    """Return ("levels"|"options"|None, entries) for a select-like field."""
    config = field.config or {}
    if field.type == "priority":
        levels = config.get("levels")
        return "levels", list(levels) if isinstance(levels, list) else []
    if field.type in ("status", "select", "multi_select"):
        options = config.get("options")
        return "options", list(options) if isinstance(options, list) else []
    return None, []


@dataclass
class SelectResolution:
    ids: List[str]
    updated_config: Optional[Dict[str, Any]] = None
    missing: bool = False


def resolve_select_values(field: TableField, raw_value: Any, allow_create: bool) -> SelectResolution:
    """Map option labels (or ids, or {id} objects) to option ids.

    With ``allow_create`` unknown labels become new gray options appended
    to the field config; the caller must persist ``updated_config``.
    """
    if raw_value is None:
        return SelectResolution(ids=[])
    kind, options = get_option_entries(field)
    if kind is None:
        return SelectResolution(ids=[], missing=True)

    values = raw_value if isinstance(raw_value, list) else [raw_value]
    by_label = {normalize_key(opt.get("label", "")): opt for opt in options}
    by_id = {str(opt.get("id")): opt for opt in options if opt.get("id") is not None}

    resolved: List[str] = []
    next_options = list(options)
    added = False

    for value in values:
        if isinstance(value, dict) and isinstance(value.get("id"), str):
            resolved.append(value["id"])
            continue

        text = "" if value is None else str(value)
        if text in by_id:
            resolved.append(text)
            continue
        existing = by_label.get(normalize_key(text))
        if existing is not None:
            resolved.append(existing["id"])
            continue

        if not allow_create:
            return SelectResolution(ids=[], missing=True)

        option = {
            "id": new_option_id(),
            "label": text.strip() or "Option",
            "color": "gray",
            "order": len(next_options) + 1,
        }
        next_options.append(option)
        by_label[normalize_key(text)] = option
        by_id[option["id"]] = option
        resolved.append(option["id"])
        added = True

    if added:
        return SelectResolution(ids=resolved, updated_config={**(field.config or {}), kind: next_options})
    return SelectResolution(ids=resolved)


def resolve_update_value(field: TableField, raw_value: Any, allow_create: bool) -> Tuple[Any, Optional[Dict[str, Any]]]:
    """Convert a human value into the stored cell value for ``field``."""
    if is_select_like(field.type):
        if raw_value is None:
            return None, None
        resolved = resolve_select_values(field, raw_value, allow_create)
        if field.type == "multi_select":
            return resolved.ids, resolved.updated_config
        return (resolved.ids[0] if resolved.ids else None), resolved.updated_config

    if field.type == "checkbox" and isinstance(raw_value, str):
        normalized = raw_value.strip().lower()
        if normalized == "true":
            return True, None
        if normalized == "false":
            return False, None

    return raw_value, None


# =============================================================================
# Row filters
# =============================================================================

@dataclass
class RowFilter:
    field: TableField
    op: str
    value: Any

    def describe(self, key: str) -> str:
        return f"{key}={json.dumps(self.value, default=str)}"


def build_row_filters(fields: List[TableField], filters: Optional[Dict[str, Any]]) -> Tuple[List[RowFilter], List[str]]:
    """Resolve a ``{FieldName: value | {op, value}}`` mapping against the schema.

    Returns (resolved filters, unknown keys). A bare value means ``eq``.
    """
    resolved: List[RowFilter] = []
    unknown: List[str] = []
    for key, raw_filter in (filters or {}).items():
        field = resolve_field(fields, key)
        if field is None:
            unknown.append(key)
            continue
        if isinstance(raw_filter, dict) and "op" in raw_filter:
            op = str(raw_filter.get("op") or "eq").lower()
            value = raw_filter.get("value")
        else:
            op, value = "eq", raw_filter
        if op not in FILTER_OPERATORS:
            op = "eq"
        resolved.append(RowFilter(field=field, op=op, value=value))
    return resolved, unknown


def _select_accepts(field: TableField, filter_value: Any) -> Optional[set]:
    """Option ids and labels accepted by a select filter, or None when nothing matches."""
    _, options = get_option_entries(field)
    if not options:
        # Unconfigured field: cells hold raw labels
        values = filter_value if isinstance(filter_value, list) else [filter_value]
        return {normalize_key(value) for value in values if value is not None} or None
    resolution = resolve_select_values(field, filter_value, allow_create=False)
    if resolution.missing or not resolution.ids:
        return None
    accepted = set(resolution.ids)
    for option in options:
        if option.get("id") in resolution.ids:
            accepted.add(normalize_key(option.get("label", "")))
    return accepted


def _compare(actual: Any, expected: Any, op: str) -> bool:
    if isinstance(actual, dict):
        name = normalize_key(actual.get("name") or "")
        if op == "contains":
            return normalize_key(expected) in name
        return (actual.get("id") is not None and str(expected) == str(actual.get("id"))) or (
            bool(name) and name == normalize_key(expected)
        )

    if isinstance(actual, list):
        if op == "contains":
            return any(normalize_key(expected) in normalize_key(item) for item in actual)
        return any(normalize_key(item) == normalize_key(expected) for item in actual)

    if op == "contains":
        return normalize_key(expected) in normalize_key(actual)

    actual_number = parse_numeric_value(actual)
    expected_number = parse_numeric_value(expected)
    if op in ("gte", "lte"):
        if actual_number is not None and expected_number is not None:
            return actual_number >= expected_number if op == "gte" else actual_number <= expected_number
        if isinstance(actual, str) and isinstance(expected, str):
            return actual >= expected if op == "gte" else actual <= expected
        return False

    if actual_number is not None and expected_number is not None:
        return actual_number == expected_number
    if isinstance(actual, str) and isinstance(expected, str):
        return actual.strip().lower() == expected.strip().lower()
    return str(actual) == str(expected)


def matches_row_filters(row_data: Dict[str, Any], filters: Iterable[RowFilter]) -> bool:
    """True when a row's cell data satisfies every filter."""
    for row_filter in filters:
        field = row_filter.field
        actual = (row_data or {}).get(field.id)

        if is_select_like(field.type):
            accepted = _select_accepts(field, row_filter.value)
            if accepted is None:
                return False
            stored = actual if isinstance(actual, list) else [actual]
            if not any(
                item is not None and (str(item) in accepted or normalize_key(item) in accepted)
                for item in stored
            ):
                return False
            continue

        if actual is None:
            return False

        expected_values = row_filter.value if isinstance(row_filter.value, list) else [row_filter.value]
        if not any(_compare(actual, expected, row_filter.op) for expected in expected_values):
            return False

    return True
