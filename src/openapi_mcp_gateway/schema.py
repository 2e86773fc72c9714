"""
Translation of OpenAPI schema objects into JSON Schema.

References are expected to be resolved by the loader before this module sees
a document. Anything still carrying a ``$ref`` is replaced by a generic object.
"""

import logging
from typing import Any, Dict, List, Optional, Set, Union

from .models import LogEntry

logger = logging.getLogger(__name__)

JSONSchema = Union[Dict[str, Any], bool]

# OpenAPI keywords with no JSON Schema meaning
OPENAPI_ONLY_KEYS = (
    "nullable",
    "example",
    "xml",
    "externalDocs",
    "deprecated",
    "readOnly",
    "writeOnly",
)

COMBINERS = ("allOf", "anyOf", "oneOf")


def _has_type(schema: Dict[str, Any], name: str) -> bool:
    type_ = schema.get("type")
    if isinstance(type_, list):
        return name in type_
    return type_ == name


def _warn(logs: Optional[List[LogEntry]], msg: str) -> None:
    logger.warning(msg)
    if logs is not None:
        logs.append(LogEntry(severity="WARN", msg=msg))


def map_openapi_schema_to_json_schema(
    schema: Any,
    seen: Optional[Set[int]] = None,
    logs: Optional[List[LogEntry]] = None,
) -> JSONSchema:
    """Map an OpenAPI schema to a JSON Schema with cycle protection.

    Args:
        schema: OpenAPI schema object, or a boolean schema
        seen: ids of the schema objects on the current recursion path
        logs: list receiving diagnostics for references and cycles

    Returns:
        The translated schema. Cycles and unresolved references become
        ``{"type": "object"}``.
    """
    if isinstance(schema, bool):
        return schema
    if not isinstance(schema, dict):
        return {"type": "object"}

    if "$ref" in schema:
        _warn(logs, f"Unresolved $ref '{schema['$ref']}'.")
        return {"type": "object"}

    if seen is None:
        seen = set()
    if id(schema) in seen:
        title = schema.get("title")
        where = f' "{title}"' if title else ""
        _warn(
            logs,
            f"Cycle detected in schema{where}, returning generic object to break recursion.",
        )
        return {"type": "object"}

    seen.add(id(schema))
    try:
        json_schema = {k: v for k, v in schema.items() if k not in OPENAPI_ONLY_KEYS}

        # JSON Schema has no integer precision; collapse to number
        type_ = json_schema.get("type")
        if type_ == "integer":
            json_schema["type"] = "number"
        elif isinstance(type_, list):
            json_schema["type"] = ["number" if t == "integer" else t for t in type_]

        if schema.get("nullable"):
            type_ = json_schema.get("type")
            if isinstance(type_, list):
                if "null" not in type_:
                    json_schema["type"] = type_ + ["null"]
            elif isinstance(type_, str):
                json_schema["type"] = [type_, "null"]
            elif not type_:
                json_schema["type"] = "null"

        if _has_type(json_schema, "object"):
            properties = json_schema.get("properties")
            if isinstance(properties, dict):
                mapped = {}
                for key, prop_schema in properties.items():
                    if isinstance(prop_schema, (dict, bool)):
                        mapped[key] = map_openapi_schema_to_json_schema(
                            prop_schema, seen, logs
                        )
                json_schema["properties"] = mapped
            additional = json_schema.get("additionalProperties")
            if isinstance(additional, dict):
                json_schema["additionalProperties"] = map_openapi_schema_to_json_schema(
                    additional, seen, logs
                )

        if _has_type(json_schema, "array") and isinstance(json_schema.get("items"), dict):
            json_schema["items"] = map_openapi_schema_to_json_schema(
                json_schema["items"], seen, logs
            )

        for combiner in COMBINERS:
            members = json_schema.get(combiner)
            if isinstance(members, list):
                json_schema[combiner] = [
                    map_openapi_schema_to_json_schema(member, seen, logs)
                    for member in members
                ]

        return json_schema
    finally:
        seen.discard(id(schema))
