"""Tests for field type inference and select normalization."""

from schemas.workspace import TableField
from services.schema_inference import (
    apply_default_field_config,
    enhance_fields_with_inference,
    infer_configs_for_unconfigured_fields,
    infer_field_type_from_data,
    infer_simple_type,
    normalize_rows_for_select_fields,
)


class TestInferFieldType:

    def test_priority_by_name(self):
        field_type, config = infer_field_type_from_data("Priority", None, ["High", "low", "high"])

        assert field_type == "priority"
        assert [(level["id"], level["label"], level["color"]) for level in config["levels"]] == [
            ("high", "High", "red"),
            ("low", "Low", "green"),
        ]

    def test_status_by_name(self):
        field_type, config = infer_field_type_from_data("Status", None, ["in progress", "done", "blocked"])

        assert field_type == "status"
        assert [(o["id"], o["label"], o["color"]) for o in config["options"]] == [
            ("in-progress", "In Progress", "blue"),
            ("done", "Done", "green"),
            ("blocked", "Blocked", "red"),
        ]

    def test_repeated_values_become_select(self):
        field_type, config = infer_field_type_from_data("Region", None, ["EMEA", "APAC", "EMEA", "APAC", "EMEA"])

        assert field_type == "select"
        assert [o["label"] for o in config["options"]] == ["EMEA", "APAC"]
        assert [o["color"] for o in config["options"]] == ["gray", "blue"]

    def test_date_by_name_and_shape(self):
        assert infer_field_type_from_data("Due", None, ["next week", "soon"])[0] == "date"
        assert infer_field_type_from_data("Kickoff", None, ["2024-03-01", "2024-04-15"])[0] == "date"

    def test_number_email_url_text(self):
        assert infer_field_type_from_data("Budget", None, ["100", 250.5]) == ("number", {"format": "number"})
        assert infer_field_type_from_data("Contact", None, ["ana@acme.io", "bo@globex.com"]) == ("email", None)
        assert infer_field_type_from_data("Website", None, ["https://a.io", "https://b.io"]) == ("url", None)
        assert infer_field_type_from_data("Notes", None, ["first", "second"]) == ("text", None)

    def test_declared_type_respected(self):
        assert infer_field_type_from_data("Priority", "number", ["1", "2"]) == ("number", None)

    def test_declared_select_gets_options(self):
        field_type, config = infer_field_type_from_data("Owner", "select", ["Riley", "Sam"])
        assert field_type == "select"
        assert [o["id"] for o in config["options"]] == ["riley", "sam"]

    def test_declared_multi_select_splits_list_cells(self):
        field_type, config = infer_field_type_from_data("Labels", "multi_select", [["Red", "Blue"], ["red"], None])

        assert field_type == "multi_select"
        assert [(o["id"], o["label"]) for o in config["options"]] == [("red", "Red"), ("blue", "Blue")]

    def test_list_cells_imply_multi_select(self):
        field_type, config = infer_field_type_from_data("Tags", None, [["Hot"], ["Cold", "hot"]])

        assert field_type == "multi_select"
        assert [o["id"] for o in config["options"]] == ["hot", "cold"]

    def test_no_samples(self):
        assert infer_field_type_from_data("Anything", None, [None, ""]) == ("text", None)


def test_infer_simple_type():
    assert infer_simple_type([1, "2.5", None]) == "number"
    assert infer_simple_type(["1", "two"]) == "text"
    assert infer_simple_type([]) == "text"
    assert infer_simple_type([["a", "b"], "c"]) == "multi_select"


def test_default_configs():
    priority = apply_default_field_config("priority")
    status = apply_default_field_config("status", {"description": "x"})

    assert [level["label"] for level in priority["levels"]] == ["Critical", "High", "Medium", "Low"]
    assert status["description"] == "x"
    assert [o["label"] for o in status["options"]] == ["Not Started", "In Progress", "Complete"]
    assert apply_default_field_config("text") is None


class TestEnhanceFields:

    def test_configured_fields_kept(self):
        configured = {"name": "Stage", "type": "select", "config": {"options": [{"id": "a", "label": "A"}]}}
        rows = [{"data": {"Stage": "B"}}, {"data": {"Stage": "B"}}]

        assert enhance_fields_with_inference([configured], rows) == [configured]

    def test_unconfigured_fields_inferred(self):
        fields = [{"name": "Priority"}, {"name": "Company"}]
        rows = [{"data": {"priority": "high", "Company": "Acme"}}, {"data": {"priority": "low", "Company": "Globex"}}]

        enhanced = enhance_fields_with_inference(fields, rows)

        assert enhanced[0]["type"] == "priority"
        assert enhanced[1] == {"name": "Company", "type": "text"}


class TestNormalizeRows:

    def test_labels_mapped_to_ids(self):
        fields = [
            {"name": "Stage", "type": "select", "config": {"options": [{"id": "opt-1", "label": "Closed Won"}]}},
            {"name": "Tags", "type": "multi_select", "config": {"options": [{"id": "t1", "label": "Hot"}]}},
        ]
        rows = [{"data": {"Stage": "closed won", "Tags": ["HOT", "Unknown"], "Notes": "kept"}}]

        normalized = normalize_rows_for_select_fields(fields, rows)

        assert normalized == [{"data": {"Stage": "opt-1", "Tags": ["t1", "Unknown"], "Notes": "kept"}}]

    def test_rows_keyed_by_field_id(self):
        stage = TableField(id="f-1", name="Stage", type="status", config={"options": [{"id": "s1", "label": "Open"}]})

        assert normalize_rows_for_select_fields([stage], [{"data": {"f-1": "open"}}]) == [{"data": {"f-1": "s1"}}]


def test_infer_configs_for_unconfigured_fields():
    empty_select = TableField(id="f-1", name="Region", type="select", config={})
    configured = TableField(id="f-2", name="Stage", type="select", config={"options": [{"id": "a", "label": "A"}]})
    text = TableField(id="f-3", name="Notes", type="text")
    rows = [{"data": {"f-1": "EMEA", "f-2": "A", "f-3": "x"}}, {"data": {"f-1": "APAC"}}]

    pending = infer_configs_for_unconfigured_fields([empty_select, configured, text], rows)

    assert len(pending) == 1
    field, config = pending[0]
    assert field.id == "f-1"
    assert [o["label"] for o in config["options"]] == ["EMEA", "APAC"]


def test_infer_configs_for_unconfigured_multi_select():
    labels = TableField(id="f-1", name="Labels", type="multi_select", config={})
    rows = [{"data": {"f-1": ["Red", "Blue"]}}, {"data": {"f-1": ["red"]}}]

    pending = infer_configs_for_unconfigured_fields([labels], rows)

    _, config = pending[0]
    assert [o["id"] for o in config["options"]] == ["red", "blue"]
