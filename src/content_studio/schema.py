"""
Builders for the declarative response schemas understood by the Gemini API.

The service treats these shapes as an output constraint. The client never
validates against them; it only parses the returned JSON text.
"""
from __future__ import annotations

from typing import Any, Iterable, Mapping

Schema = dict[str, Any]


def string_schema(description: str | None = None) -> Schema:
    return _leaf("STRING", description)


def integer_schema(description: str | None = None) -> Schema:
    return _leaf("INTEGER", description)


def number_schema(description: str | None = None) -> Schema:
    return _leaf("NUMBER", description)


def boolean_schema(description: str | None = None) -> Schema:
    return _leaf("BOOLEAN", description)


def array_schema(items: Schema, description: str | None = None) -> Schema:
    schema: Schema = {"type": "ARRAY", "items": items}
    if description:
        schema["description"] = description
    return schema


def object_schema(
    properties: Mapping[str, Schema],
    required: Iterable[str] | None = None,
    description: str | None = None,
) -> Schema:
    """
    Build an OBJECT schema.

    ``required`` defaults to every declared property; names that are not declared
    raise ``ValueError``.
    """
    names = list(properties)
    required_names = names if required is None else list(required)
    unknown = [name for name in required_names if name not in properties]
    if unknown:
        raise ValueError(f"Required fields not declared in properties: {', '.join(unknown)}")

    schema: Schema = {
        "type": "OBJECT",
        "properties": dict(properties),
        "required": required_names,
        "propertyOrdering": names,
    }
    if description:
        schema["description"] = description
    return schema


def _leaf(type_name: str, description: str | None) -> Schema:
    schema: Schema = {"type": type_name}
    if description:
        schema["description"] = description
    return schema
