import json

import pytest

from chatstream.tools import (
    ToolDefinition,
    convert_tools,
    normalize_to_json_type,
    parse_json_object,
)


# ---------------------------------------------------------------------------
# parse_json_object
# ---------------------------------------------------------------------------


class TestParseJsonObject:
    def test_object(self):
        assert parse_json_object('{"a": 1, "b": [2]}') == {"a": 1, "b": [2]}

    def test_empty_object(self):
        assert parse_json_object("{}") == {}

    @pytest.mark.parametrize("text", ['{"a": 1', '{"a":', "", "   ", "{", "nul"])
    def test_incomplete_json(self, text):
        assert parse_json_object(text) is None

    @pytest.mark.parametrize("text", ["[]", '"s"', "1", "null", "true"])
    def test_non_object_values(self, text):
        assert parse_json_object(text) is None


# ---------------------------------------------------------------------------
# ToolDefinition
# ---------------------------------------------------------------------------


class TestToolDefinition:
    def test_model_dump_is_openai_schema(self):
        tool = ToolDefinition(
            name="search",
            description="Search the docs.",
            input_schema={
                "type": "object",
                "properties": {"q": {"type": "string"}},
            },
        )
        assert tool.model_dump() == {
            "type": "function",
            "function": {
                "name": "search",
                "description": "Search the docs.",
                "parameters": {
                    "type": "object",
                    "properties": {"q": {"type": "string"}},
                },
            },
        }

    def test_model_dump_json(self):
        tool = ToolDefinition(name="noop")
        assert json.loads(tool.model_dump_json())["function"]["name"] == "noop"

    def test_description_omitted_when_missing(self):
        schema = ToolDefinition(name="noop").model_dump()
        assert "description" not in schema["function"]
        assert schema["function"]["parameters"] == {"type": "object", "properties": {}}

    def test_from_function(self):
        def lookup(city: str, days: int, metric: bool = True):
            """Weather lookup."""

        tool = ToolDefinition.from_function(lookup)
        params = tool.input_schema
        assert tool.name == "lookup"
        assert tool.description == "Weather lookup."
        assert params["properties"]["city"]["type"] == "string"
        assert params["properties"]["days"]["type"] == "integer"
        assert params["properties"]["metric"]["type"] == "boolean"
        assert params["required"] == ["city", "days"]

    def test_unannotated_param_defaults_to_string(self):
        def func(x):
            pass

        tool = ToolDefinition.from_function(func)
        assert tool.input_schema["properties"]["x"]["type"] == "string"


def test_normalize_unknown_type_is_string():
    assert normalize_to_json_type("Decimal") == "string"
    assert normalize_to_json_type("dict") == "object"


class TestConvertTools:
    def test_none_and_empty(self):
        assert convert_tools(None) is None
        assert convert_tools([]) is None

    def test_converts_each(self):
        out = convert_tools([ToolDefinition(name="a"), ToolDefinition(name="b")])
        assert [t["function"]["name"] for t in out] == ["a", "b"]
        assert all(t["type"] == "function" for t in out)
