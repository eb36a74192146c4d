import inspect
import json
from typing import Any, Callable

from pydantic import BaseModel, Field


def parse_json_object(text: str) -> dict[str, Any] | None:
    """Parse *text* as JSON, accepting only an object.

    Returns ``None`` for invalid JSON and for any other JSON value
    (arrays, strings, numbers, null), so partial or non-object tool
    arguments are never mistaken for complete ones.
    """
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    if isinstance(parsed, dict):
        return parsed
    return None


class ToolDefinition(BaseModel):
    """A tool the model may call, as offered by the chat UI."""

    name: str
    description: str | None = None
    input_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    def model_dump(self, **kwargs):
        """Override to return the OpenAI function schema"""
        return self.get_schema()

    def model_dump_json(self, **kwargs):
        """Override JSON serialization"""
        return json.dumps(self.get_schema())

    def get_schema(self) -> dict[str, Any]:
        function: dict[str, Any] = {
            "name": self.name,
            "parameters": self.input_schema,
        }
        if self.description is not None:
            function["description"] = self.description
        return {"type": "function", "function": function}

    @classmethod
    def from_function(cls, func: Callable) -> "ToolDefinition":
        """Build a definition from a plain function's signature."""
        signature = inspect.signature(func)
        properties = {}
        for param_name, param in signature.parameters.items():
            annotation = param.annotation
            type_name = (
                annotation.__name__
                if annotation is not inspect.Parameter.empty
                and hasattr(annotation, "__name__")
                else "str"
            )
            properties[param_name] = {
                "type": normalize_to_json_type(type_name),
                "description": "",
            }
        required = [
            name
            for name, param in signature.parameters.items()
            if param.default is inspect.Parameter.empty
        ]
        return cls(
            name=func.__name__,
            description=inspect.getdoc(func),
            input_schema={
                "type": "object",
                "properties": properties,
                "required": required,
            },
        )


def normalize_to_json_type(python_type_str: str) -> str:
    type_mapping = {
        'str': 'string',
        'int': 'integer',
        'float': 'number',
        'bool': 'boolean',
        'NoneType': 'null',
        'dict': 'object',
        'list': 'array',
        'tuple': 'array',  # closest equivalent
        'set': 'array',    # closest equivalent
    }
    return type_mapping.get(python_type_str, 'string')


def convert_tools(
    tools: list[ToolDefinition] | None,
) -> list[dict[str, Any]] | None:
    """OpenAI ``tools`` array for *tools*, or ``None`` when there are none."""
    if not tools:
        return None
    return [t.model_dump() for t in tools]
