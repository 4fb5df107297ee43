"""Schema inference for dynamic table fields.

Given a field name, an optional declared type and sample cell values,
infers the field's semantic type and synthesizes color-coded option sets
for categorical types. Also provides the default configurations applied
when priority/status fields are created without levels/options, and the
row normalization that maps option labels to option ids.
"""

import logging
import math
import re
import uuid
from typing import Any, Dict, List, Optional, Tuple

from dateutil import parser as date_parser
from email_validator import EmailNotValidError, validate_email

from services.field_matching import get_option_entries, is_select_like, normalize_key
from schemas.workspace import TableField

logger = logging.getLogger(__name__)

ROTATING_COLORS = ["gray", "blue", "green", "yellow", "red", "purple", "pink", "orange"]

PRIORITY_VALUES = frozenset({"high", "medium", "low", "urgent", "critical", "unspecified"})

DATE_CONFIG = {"include_time": False, "format": "MMM d, yyyy"}

_DATE_SHAPE = re.compile(
    r"^(\d{4}-\d{1,2}-\d{1,2}([ T]\d{1,2}:\d{2}(:\d{2})?.*)?"
    r"|\d{1,2}/\d{1,2}/\d{2,4}"
    r"|[A-Za-z]{3,9}\.? \d{1,2},? \d{4})$"
)
_PLAIN_NUMBER = re.compile(r"^-?\d+(\.\d+)?$")
_HTTP_URL = re.compile(r"^https?://.+", re.IGNORECASE)


def normalize_option_id(value: Any) -> str:
    return re.sub(r"\s+", "-", str(value).strip().lower())


def _non_null(values: List[Any]) -> List[Any]:
    """Non-empty samples; multi-value cells contribute each item."""
    samples = []
    for value in values:
        items = value if isinstance(value, (list, tuple)) else [value]
        samples.extend(item for item in items if item is not None and item != "")
    return samples


def _unique_by_option_id(values: List[Any]) -> List[Tuple[str, str]]:
    """Deduplicate case-insensitively, keeping first spelling and order."""
    seen: Dict[str, str] = {}
    for value in values:
        raw = str(value).strip()
        if not raw:
            continue
        option_id = normalize_option_id(raw)
        if option_id not in seen:
            seen[option_id] = raw
    return list(seen.items())


def _priority_color(option_id: str) -> str:
    if option_id in ("high", "urgent", "critical"):
        return "red"
    if option_id == "medium":
        return "yellow"
    if option_id == "low":
        return "green"
    return "gray"


def _status_color(option_id: str) -> str:
    if option_id in ("done", "complete", "completed"):
        return "green"
    if option_id in ("in-progress", "in_progress"):
        return "blue"
    if option_id == "blocked":
        return "red"
    return "gray"


def _title_case(raw: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in re.split(r"[\s\-_]+", raw) if word)


def _priority_levels(values: List[Any]) -> List[Dict[str, Any]]:
    return [
        {"id": option_id, "label": raw[:1].upper() + raw[1:], "color": _priority_color(option_id), "order": index}
        for index, (option_id, raw) in enumerate(_unique_by_option_id(values))
    ]


def _status_options(values: List[Any]) -> List[Dict[str, Any]]:
    return [
        {"id": option_id, "label": _title_case(raw), "color": _status_color(option_id), "order": index}
        for index, (option_id, raw) in enumerate(_unique_by_option_id(values))
    ]


def _select_options(values: List[Any]) -> List[Dict[str, Any]]:
    return [
        {"id": option_id, "label": raw, "color": ROTATING_COLORS[index % len(ROTATING_COLORS)], "order": index}
        for index, (option_id, raw) in enumerate(_unique_by_option_id(values))
    ]


def looks_like_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return math.isfinite(value)
    return isinstance(value, str) and bool(_PLAIN_NUMBER.match(value.strip()))


def looks_like_date(value: Any) -> bool:
    if not isinstance(value, str) or not _DATE_SHAPE.match(value.strip()):
        return False
    try:
        date_parser.parse(value.strip())
    except (ValueError, OverflowError):
        return False
    return True


def looks_like_email(value: Any) -> bool:
    if not isinstance(value, str) or "@" not in value:
        return False
    try:
        validate_email(value.strip(), check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def infer_field_type_from_data(
    field_name: str,
    field_type: Optional[str],
    values: List[Any],
    existing_config: Optional[Dict[str, Any]] = None,
) -> Tuple[str, Optional[Dict[str, Any]]]:
    """Infer (type, config) for a field from sample values.

    Explicit non-text, non-select-like types are respected. Declared
    select-like types without config get options generated from the data;
    list cells are split into their items and imply multi_select.
    Otherwise the name and value shape decide, in order: priority, status,
    select, date, number, email, url, phone, text.
    """
    name = (field_name or "").strip().lower()
    declared = str(field_type).strip().lower() if field_type else None
    samples = _non_null(values)

    if not samples or existing_config:
        return declared or "text", existing_config

    if declared and declared != "text" and not is_select_like(declared):
        return declared, existing_config

    if declared == "priority":
        return "priority", {"levels": _priority_levels(samples)}
    if declared == "status":
        return "status", {"options": _status_options(samples)}
    if declared in ("select", "multi_select"):
        return declared, {"options": _select_options(samples)}
    if any(isinstance(value, (list, tuple)) for value in values):
        return "multi_select", {"options": _select_options(samples)}

    unique_ids = {normalize_option_id(value) for value in samples}

    if ("priority" in name or name == "pri") and unique_ids <= PRIORITY_VALUES:
        return "priority", {"levels": _priority_levels(samples)}

    if ("status" in name or name == "state") and 2 <= len(unique_ids) <= 10:
        return "status", {"options": _status_options(samples)}

    unique_values = {str(value).strip() for value in samples}
    if 2 <= len(unique_values) <= 20 and len(unique_values) < len(samples) * 0.8:
        return "select", {"options": _select_options(samples)}

    if "date" in name or "due" in name or "deadline" in name:
        return "date", dict(DATE_CONFIG)

    if all(looks_like_number(value) for value in samples):
        return "number", {"format": "number"}

    if all(looks_like_date(value) for value in samples):
        return "date", dict(DATE_CONFIG)

    if all(looks_like_email(value) for value in samples):
        return "email", None

    if ("url" in name or "link" in name or "website" in name) and all(
        _HTTP_URL.match(str(value)) for value in samples
    ):
        return "url", None

    if "phone" in name or "tel" in name:
        return "phone", None

    return "text", None


def infer_simple_type(values: List[Any]) -> str:
    """multi_select for list cells, number when every value looks numeric, text otherwise."""
    samples = [value for value in values if value is not None]
    if any(isinstance(value, (list, tuple)) for value in samples):
        return "multi_select"
    if samples and all(looks_like_number(value) for value in samples):
        return "number"
    return "text"


def has_usable_field_config(field_type: Optional[str], config: Optional[Dict[str, Any]]) -> bool:
    if not config:
        return False
    declared = str(field_type).strip().lower() if field_type else None
    if declared == "priority":
        levels = config.get("levels")
        return isinstance(levels, list) and len(levels) > 0
    if declared in ("status", "select", "multi_select"):
        options = config.get("options")
        return isinstance(options, list) and len(options) > 0
    return len(config) > 0


def apply_default_field_config(field_type: str, config: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
    """Give new priority/status fields a standard option set when none was supplied."""
    if field_type == "priority" and not (config or {}).get("levels"):
        return {
            **(config or {}),
            "levels": [
                {"id": str(uuid.uuid4()), "label": "Critical", "color": "#ef4444", "order": 4},
                {"id": str(uuid.uuid4()), "label": "High", "color": "#f97316", "order": 3},
                {"id": str(uuid.uuid4()), "label": "Medium", "color": "#3b82f6", "order": 2},
                {"id": str(uuid.uuid4()), "label": "Low", "color": "#6b7280", "order": 1},
            ],
        }
    if field_type == "status" and not (config or {}).get("options"):
        return {
            **(config or {}),
            "options": [
                {"id": str(uuid.uuid4()), "label": "Not Started", "color": "#6b7280"},
                {"id": str(uuid.uuid4()), "label": "In Progress", "color": "#3b82f6"},
                {"id": str(uuid.uuid4()), "label": "Complete", "color": "#10b981"},
            ],
        }
    return config


def collect_values_by_key(rows: List[Dict[str, Any]]) -> Dict[str, List[Any]]:
    """Group row cell values by their (case-insensitive) key."""
    collected: Dict[str, List[Any]] = {}
    for row in rows:
        for key, value in (row.get("data") or {}).items():
            collected.setdefault(normalize_key(key), []).append(value)
    return collected


def enhance_fields_with_inference(fields: List[Dict[str, Any]], rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Fill in type/config for field definitions that lack usable config."""
    if not fields or not rows:
        return fields

    values_by_key = collect_values_by_key(rows)
    enhanced = []
    for field in fields:
        name = str(field.get("name") or "")
        if has_usable_field_config(field.get("type"), field.get("config")):
            enhanced.append(field)
            continue
        inferred_type, inferred_config = infer_field_type_from_data(
            name, field.get("type"), values_by_key.get(normalize_key(name), [])
        )
        updated = {**field, "type": inferred_type}
        if inferred_config:
            updated["config"] = inferred_config
        enhanced.append(updated)
    return enhanced


def _map_option_value(value: Any, by_id: Dict[str, str], by_label: Dict[str, str]) -> Any:
    if isinstance(value, dict) and isinstance(value.get("id"), str):
        return value["id"]
    raw = "" if value is None else str(value).strip()
    if not raw:
        return value
    normalized = normalize_option_id(raw)
    return by_id.get(normalized) or by_label.get(normalized) or value


def normalize_rows_for_select_fields(fields: List[Any], rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Replace option labels in row data with option ids.

    ``fields`` may be field definitions (dicts) or ``TableField`` models;
    rows are keyed either by field name or by field id. Unknown labels are
    left untouched.
    """
    if not fields or not rows:
        return rows

    lookup: Dict[str, TableField] = {}
    for raw_field in fields:
        field = raw_field if isinstance(raw_field, TableField) else TableField(
            id=str(raw_field.get("id") or raw_field.get("name") or ""),
            name=str(raw_field.get("name") or ""),
            type=str(raw_field.get("type") or "text"),
            config=raw_field.get("config") or {},
        )
        lookup[normalize_key(field.name)] = field
        lookup[field.id] = field

    normalized_rows = []
    for row in rows:
        data = row.get("data")
        if not isinstance(data, dict):
            normalized_rows.append(row)
            continue

        next_data = dict(data)
        for key, raw_value in data.items():
            field = lookup.get(key) or lookup.get(normalize_key(key))
            if field is None or not is_select_like(field.type):
                continue
            _, options = get_option_entries(field)
            if not options:
                continue
            by_id = {normalize_option_id(opt.get("id", "")): opt.get("id") for opt in options}
            by_label = {normalize_option_id(opt.get("label", "")): opt.get("id") for opt in options}
            if field.type == "multi_select" and isinstance(raw_value, list):
                next_data[key] = [_map_option_value(item, by_id, by_label) for item in raw_value]
            else:
                next_data[key] = _map_option_value(raw_value, by_id, by_label)

        normalized_rows.append({**row, "data": next_data})
    return normalized_rows


def infer_configs_for_unconfigured_fields(
    fields: List[TableField], rows: List[Dict[str, Any]]
) -> List[Tuple[TableField, Dict[str, Any]]]:
    """Select-like fields with no options get options inferred from row values.

    Rows are keyed by field id. Returns (field, config) pairs the caller
    must persist before normalizing the rows.
    """
    values_by_field: Dict[str, List[Any]] = {}
    for row in rows:
        for field_id, value in (row.get("data") or {}).items():
            values_by_field.setdefault(field_id, []).append(value)

    pending = []
    for field in fields:
        if not is_select_like(field.type):
            continue
        _, options = get_option_entries(field)
        if options:
            continue
        samples = _non_null(values_by_field.get(field.id, []))
        if not samples:
            continue
        _, config = infer_field_type_from_data(field.name, field.type, samples)
        if config:
            logger.debug(f"Inferred {len(samples)} sample values into options for field {field.name}")
            pending.append((field, config))
    return pending
