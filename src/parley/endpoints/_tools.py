"""Compile tool definitions into the function-calling schema."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from parley.errors import CapabilityError

if TYPE_CHECKING:
    from parley.types import Tool

_SCHEMA_TYPES: dict[str, str] = {
    "str": "string",
    "int": "number",
    "float": "number",
    "bool": "boolean",
}


def compile_tools(tools: Sequence[Tool] | None) -> list[dict[str, Any]]:
    """Convert tool definitions to ``{"type": "function", ...}`` entries.

    Raises:
        CapabilityError: If any parameter is a file or of an unknown type.
            Nothing is returned for the batch in that case.
    """
    compiled: list[dict[str, Any]] = []
    if not tools:
        return compiled

    for tool in tools:
        required: list[str] = []
        properties: dict[str, Any] = {}
        for tool_input in tool.inputs:
            if tool_input.type == "file":
                raise CapabilityError(
                    "File type's currently not supported",
                    hint=f"Remove the file parameter {tool_input.name!r} from tool {tool.name!r}.",
                )
            schema_type = _SCHEMA_TYPES.get(tool_input.type)
            if schema_type is None:
                raise CapabilityError(
                    f"Unknown tool IO type: {tool_input.type!r} "
                    f"(tool {tool.name!r}, parameter {tool_input.name!r})",
                    hint="Supported parameter types: str, int, float, bool.",
                )

            parameter: dict[str, Any] = {"type": schema_type}
            if tool_input.description is not None:
                parameter["description"] = tool_input.description
            if tool_input.param_type == "required":
                required.append(tool_input.name)
            properties[tool_input.name] = parameter

        parameters: dict[str, Any] = {"type": "object"}
        if required:
            parameters["required"] = required
        parameters["properties"] = properties

        compiled.append(
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": parameters,
                },
            }
        )
    return compiled
