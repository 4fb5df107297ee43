"""Tests for the tool catalog and its output formats."""

from services.tool_catalog import (
    CORE_TOOL_NAMES,
    TOOL_CATALOG,
    TOOL_GROUPS,
    get_tool,
    get_tools_by_groups,
)


def test_catalog_size_and_categories():
    assert len(TOOL_CATALOG) == 85
    categories = {tool.category for tool in TOOL_CATALOG.values()}
    assert categories <= set(TOOL_GROUPS) | {"search", "control"}


def test_required_params_are_declared_properties():
    for tool in TOOL_CATALOG.values():
        properties = tool.parameters.get("properties", {})
        for name in tool.required_params:
            assert name in properties, f"{tool.name} requires undeclared {name}"


def test_destructive_tools_are_deletes():
    destructive = {name for name, tool in TOOL_CATALOG.items() if tool.is_destructive}
    assert "delete_table" in destructive
    assert "create_table" not in destructive
    assert "delete_rows" in destructive


def test_core_tools_always_offered():
    names = [tool.name for tool in get_tools_by_groups()]
    assert names == list(CORE_TOOL_NAMES)


def test_groups_add_their_tools_once():
    tools = get_tools_by_groups(["table", "table", "nonsense"])
    names = [tool.name for tool in tools]

    assert len(names) == len(set(names))
    assert "bulk_insert_rows" in names
    assert "create_task_item" not in names


def test_formats():
    tool = get_tool("update_cell")

    openai = tool.to_openai_format()
    anthropic = tool.to_anthropic_format()
    prompt = tool.to_prompt_format()

    assert openai["function"]["parameters"]["required"] == ["row_id", "field_id", "value"]
    assert anthropic["input_schema"]["required"] == ["row_id", "field_id", "value"]
    assert "row_id: string (required)" in prompt
    assert get_tool("launch_rocket") is None
