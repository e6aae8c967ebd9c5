"""JSON-schema parameter declarations -> pydantic validators.

Tools declare their parameters as a JSON-schema object (the same shape MCP
and the model API use). Arguments are checked against a pydantic model
built from that declaration before the tool runs. The subset covered is
what tool declarations use in practice: primitive types, enums, arrays,
nested objects, nullable types and the required list.
"""

from __future__ import annotations

from typing import Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
    create_model,
)

# Strict primitives: "3" is not a number and 1 is not a boolean.
_PRIMITIVES: dict[str, Any] = {
    "string": StrictStr,
    "integer": StrictInt,
    "number": Union[StrictInt, StrictFloat],
    "boolean": StrictBool,
    "null": type(None),
}


def _python_type(name: str, schema: dict[str, Any]) -> Any:
    """Map one JSON-schema node to a python type annotation."""
    if "enum" in schema and schema["enum"]:
        return Literal[tuple(schema["enum"])]

    declared = schema.get("type")
    if isinstance(declared, list):
        members = [_python_type(name, {**schema, "type": t}) for t in declared]
        return Union[tuple(members)] if len(members) > 1 else members[0]

    if declared in _PRIMITIVES:
        return _PRIMITIVES[declared]
    if declared == "array":
        items = schema.get("items")
        return list[_python_type(f"{name}Item", items)] if isinstance(items, dict) and items else list[Any]
    if declared == "object":
        if schema.get("properties"):
            return model_for_schema(name, schema)
        return dict[str, Any]
    return Any


def model_for_schema(name: str, schema: dict[str, Any]) -> type[BaseModel]:
    """Build a pydantic model validating arguments for `schema`.

    Property names are carried as aliases so names that are not valid
    python identifiers (or collide with pydantic internals) still work.
    """
    properties: dict[str, Any] = schema.get("properties") or {}
    required = set(schema.get("required") or [])
    extra = "forbid" if schema.get("additionalProperties") is False else "allow"

    fields: dict[str, Any] = {}
    for index, (prop_name, prop_schema) in enumerate(properties.items()):
        annotation = _python_type(f"{name}_{prop_name}", prop_schema or {})
        if prop_name in required:
            fields[f"field_{index}"] = (annotation, Field(alias=prop_name))
        else:
            fields[f"field_{index}"] = (Optional[annotation], Field(None, alias=prop_name))

    return create_model(
        _model_name(name),
        __config__=ConfigDict(extra=extra),
        **fields,
    )


def violation_message(exc: ValidationError) -> str:
    """Flatten a pydantic ValidationError into one readable line."""
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ())) or "arguments"
        if error.get("type") == "missing":
            parts.append(f"missing required field '{location}'")
        else:
            parts.append(f"'{location}': {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


def _model_name(name: str) -> str:
    cleaned = "".join(ch if ch.isalnum() else "_" for ch in name)
    return f"{cleaned or 'Tool'}Args"
