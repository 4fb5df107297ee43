"""Tests for field resolution, select options and row filters."""

import pytest

from schemas.workspace import TableField
from services.field_matching import (
    build_row_filters,
    is_uuid,
    matches_row_filters,
    parse_numeric_value,
    resolve_field,
    resolve_select_values,
    resolve_update_value,
)

STAGE = TableField(
    id="f-stage",
    name="Stage",
    type="select",
    config={"options": [{"id": "lead", "label": "Lead"}, {"id": "won", "label": "Closed Won"}]},
)
AMOUNT = TableField(id="f-amount", name="Deal Amount", type="number")
NAME = TableField(id="f-name", name="Name", type="text", is_primary=True)
TAGS = TableField(
    id="f-tags",
    name="Tags",
    type="multi_select",
    config={"options": [{"id": "t1", "label": "Hot"}, {"id": "t2", "label": "Cold"}]},
)
DONE = TableField(id="f-done", name="Done", type="checkbox")
FIELDS = [NAME, STAGE, AMOUNT, TAGS, DONE]


@pytest.mark.parametrize("raw, expected", [
    ("10k", 10_000),
    ("2.5m", 2_500_000),
    ("$1,200", 1200),
    ("3 million", 3_000_000),
    (42, 42),
    ("12abc", None),
    ("", None),
    (True, None),
])
def test_parse_numeric_value(raw, expected):
    assert parse_numeric_value(raw) == expected


def test_is_uuid():
    assert is_uuid("55555555-5555-4555-8555-555555555555")
    assert not is_uuid("Stage")
    assert not is_uuid(None)


class TestResolveField:

    def test_by_id_or_name(self):
        assert resolve_field(FIELDS, "f-stage") is STAGE
        assert resolve_field(FIELDS, "STAGE") is STAGE

    def test_prefix_then_substring(self):
        assert resolve_field(FIELDS, "Deal") is AMOUNT
        assert resolve_field(FIELDS, "amount") is AMOUNT

    def test_unknown(self):
        assert resolve_field(FIELDS, "Colour") is None

    def test_blank_key_matches_nothing(self):
        assert resolve_field(FIELDS, "") is None
        assert resolve_field(FIELDS, "   ") is None

    def test_blank_filter_key_reported_unknown(self):
        filters, unknown = build_row_filters(FIELDS, {"": "Alpha"})
        assert filters == []
        assert unknown == [""]


class TestSelectValues:

    def test_labels_and_ids(self):
        assert resolve_select_values(STAGE, "closed won", allow_create=False).ids == ["won"]
        assert resolve_select_values(STAGE, "lead", allow_create=False).ids == ["lead"]
        assert resolve_select_values(STAGE, {"id": "custom"}, allow_create=False).ids == ["custom"]

    def test_unknown_label_without_create(self):
        resolution = resolve_select_values(STAGE, "Lost", allow_create=False)
        assert resolution.missing is True
        assert resolution.ids == []

    def test_unknown_label_creates_gray_option(self):
        resolution = resolve_select_values(STAGE, "Lost", allow_create=True)

        options = resolution.updated_config["options"]
        assert len(options) == 3
        assert options[-1]["label"] == "Lost"
        assert options[-1]["color"] == "gray"
        assert resolution.ids == [options[-1]["id"]]
        # the field itself is untouched until the caller persists the config
        assert len(STAGE.config["options"]) == 2

    def test_update_value_multi_select(self):
        value, config = resolve_update_value(TAGS, ["hot", "Cold"], allow_create=False)
        assert value == ["t1", "t2"]
        assert config is None

    def test_update_value_checkbox_string(self):
        assert resolve_update_value(DONE, "TRUE", allow_create=False) == (True, None)
        assert resolve_update_value(AMOUNT, 5, allow_create=False) == (5, None)


class TestRowFilters:

    def test_unknown_filter_key_reported(self):
        filters, unknown = build_row_filters(FIELDS, {"Stage": "Lead", "Colour": "red"})
        assert [f.field.id for f in filters] == ["f-stage"]
        assert unknown == ["Colour"]

    def test_unknown_operator_means_eq(self):
        filters, _ = build_row_filters(FIELDS, {"Deal Amount": {"op": "between", "value": 5}})
        assert filters[0].op == "eq"

    def test_gte_with_suffix(self):
        filters, _ = build_row_filters(FIELDS, {"Deal Amount": {"op": "gte", "value": "10k"}})

        assert matches_row_filters({"f-amount": 20000}, filters)
        assert matches_row_filters({"f-amount": "10,000"}, filters)
        assert not matches_row_filters({"f-amount": 9999}, filters)
        assert not matches_row_filters({}, filters)

    def test_select_filter_by_label_or_id(self):
        by_label, _ = build_row_filters(FIELDS, {"Stage": "Closed Won"})
        by_id, _ = build_row_filters(FIELDS, {"Stage": "won"})

        assert matches_row_filters({"f-stage": "won"}, by_label)
        assert matches_row_filters({"f-stage": "won"}, by_id)
        assert not matches_row_filters({"f-stage": "lead"}, by_label)

    def test_unmatched_select_label_matches_nothing(self):
        filters, _ = build_row_filters(FIELDS, {"Stage": "Lost"})
        assert not matches_row_filters({"f-stage": "lead"}, filters)

    def test_text_eq_is_case_insensitive_and_list_means_any(self):
        filters, _ = build_row_filters(FIELDS, {"Name": ["alpha", "beta"]})

        assert matches_row_filters({"f-name": "Alpha "}, filters)
        assert matches_row_filters({"f-name": "BETA"}, filters)
        assert not matches_row_filters({"f-name": "Gamma"}, filters)

    def test_contains(self):
        filters, _ = build_row_filters(FIELDS, {"Name": {"op": "contains", "value": "corp"}})
        assert matches_row_filters({"f-name": "Acme Corporation"}, filters)

    def test_multi_select_cell(self):
        filters, _ = build_row_filters(FIELDS, {"Tags": "Hot"})
        assert matches_row_filters({"f-tags": ["t2", "t1"]}, filters)
        assert not matches_row_filters({"f-tags": ["t2"]}, filters)

    def test_status_and_amount_threshold(self):
        status = TableField(
            id="f-status",
            name="Status",
            type="select",
            config={"options": [{"id": "opt-open", "label": "Open"}, {"id": "opt-closed", "label": "Closed"}]},
        )
        filters, unknown = build_row_filters(
            [NAME, status, AMOUNT],
            {"status": "open", "amount": {"op": "gte", "value": "10k"}},
        )

        assert unknown == []
        assert matches_row_filters({"f-status": "opt-open", "f-amount": 12000}, filters)
        assert matches_row_filters({"f-status": "Open", "f-amount": 10000}, filters)
        assert not matches_row_filters({"f-status": "opt-open", "f-amount": 9000}, filters)
        assert not matches_row_filters({"f-status": "opt-closed", "f-amount": 50000}, filters)
