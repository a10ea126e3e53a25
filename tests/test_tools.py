"""Tests for the tool definitions sent upstream."""

from tools import function_tool, get_tools


def object_schemas(schema):
    """Every object schema nested anywhere inside a JSON schema."""
    if isinstance(schema, dict):
        if schema.get("type") == "object":
            yield schema
        for value in schema.values():
            yield from object_schemas(value)
    elif isinstance(schema, list):
        for value in schema:
            yield from object_schemas(value)


class TestFunctionTools:
    def test_strict_tools_require_every_property(self) -> None:
        strict_tools = [t for t in get_tools("vs_1") if t.get("strict")]

        assert strict_tools
        for tool in strict_tools:
            for schema in object_schemas(tool["parameters"]):
                assert set(schema.get("required", [])) == set(schema.get("properties", {})), tool["name"]
                assert schema.get("additionalProperties") is False, tool["name"]

    def test_task_updates_are_partial(self) -> None:
        tool = next(t for t in get_tools() if t.get("name") == "update_application_task")

        assert tool["strict"] is False
        assert tool["parameters"]["required"] == ["task_id", "updates"]
        assert "required" not in tool["parameters"]["properties"]["updates"]

    def test_strict_by_default(self) -> None:
        tool = function_tool({"name": "ping", "description": "Ping", "parameters": {"value": {"type": "string"}}})

        assert tool["strict"] is True
        assert tool["parameters"]["required"] == ["value"]

    def test_file_search_only_with_vector_store(self) -> None:
        assert [t["type"] for t in get_tools(include_functions=False)] == ["web_search"]
        assert [t["type"] for t in get_tools("vs_1", include_functions=False)] == ["web_search", "file_search"]
