"""
Compilation of OpenAPI documents into tool definitions.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

import yaml

from .inclusion import INCLUSION_KEY, should_include_operation
from .models import ExecutionParameter, LogEntry, ToolDefinition
from .naming import NameDeduplicator, generate_operation_id
from .operation import OperationRecord
from .schema import JSONSchema, map_openapi_schema_to_json_schema

logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")

AI_DESCRIPTION_MAX_LENGTH = 300


def merge_parameters(
    path_parameters: Optional[List[Dict[str, Any]]],
    operation_parameters: Optional[List[Dict[str, Any]]],
) -> List[Dict[str, Any]]:
    """Merge path item and operation parameters.

    Operation parameters replace path item parameters with the same name and
    location, keeping the position of the replaced entry.
    """
    merged: List[Dict[str, Any]] = []
    for param in list(path_parameters or []) + list(operation_parameters or []):
        if not isinstance(param, dict):
            continue
        key = (param.get("name"), param.get("in"))
        for index, existing in enumerate(merged):
            if (existing.get("name"), existing.get("in")) == key:
                merged[index] = param
                break
        else:
            merged.append(param)
    return merged


def generate_input_schema_and_details(
    operation: OperationRecord,
    path_parameters: Optional[List[Dict[str, Any]]] = None,
    logs: Optional[List[LogEntry]] = None,
) -> Tuple[JSONSchema, List[Dict[str, Any]], Optional[str]]:
    """Build the input schema of a tool.

    Args:
        operation: The normalized operation
        path_parameters: Parameters declared on the path item
        logs: List receiving schema translation diagnostics

    Returns:
        tuple: (input_schema, merged_parameters, request_body_content_type)
    """
    properties: Dict[str, JSONSchema] = {}
    required: List[str] = []

    parameters = merge_parameters(path_parameters, operation.parameters)
    for param in parameters:
        if not param.get("name") or "schema" not in param:
            continue
        param_schema = map_openapi_schema_to_json_schema(param["schema"], logs=logs)
        if isinstance(param_schema, dict):
            description = param.get("description") or param_schema.get("description")
            if description:
                param_schema["description"] = description
        properties[param["name"]] = param_schema
        if param.get("required"):
            required.append(param["name"])

    request_body_content_type = None
    request_body = operation.request_body
    if isinstance(request_body, dict):
        content = request_body.get("content") or {}
        json_content = content.get("application/json") or {}

        if json_content.get("schema") is not None:
            request_body_content_type = "application/json"
            body_schema = map_openapi_schema_to_json_schema(
                json_content["schema"], logs=logs
            )
            if isinstance(body_schema, dict):
                body_schema["description"] = (
                    request_body.get("description")
                    or body_schema.get("description")
                    or "The JSON request body."
                )
            properties["requestBody"] = body_schema
            if request_body.get("required"):
                required.append("requestBody")
        elif content:
            content_type = next(iter(content))
            request_body_content_type = content_type
            properties["requestBody"] = {
                "type": "string",
                "description": request_body.get("description")
                or f"Request body (content type: {content_type})",
            }
            if request_body.get("required"):
                required.append("requestBody")

    input_schema: Dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        input_schema["required"] = required

    return input_schema, parameters, request_body_content_type


def resolve_description(operation: OperationRecord) -> str:
    """Pick the tool description: AI description, summary, then first paragraph."""
    if operation.ai_description:
        return operation.ai_description
    if operation.summary:
        return operation.summary
    if operation.description:
        return operation.description.strip().split("\n\n")[0]
    return ""


class ToolCompiler:
    """Compiles an OpenAPI document into a list of tool definitions."""

    def __init__(
        self,
        openapi_spec: Dict[str, Any],
        default_include: bool = True,
        names: Optional[NameDeduplicator] = None,
        allowed_methods: Optional[Iterable[str]] = None,
    ):
        """Initialize the compiler with an OpenAPI specification.

        Args:
            openapi_spec: Dictionary containing the dereferenced OpenAPI document
            default_include: Whether operations without ``x-mcp`` become tools
            names: Deduplicator shared with other documents of the same catalog
            allowed_methods: HTTP methods permitted by the write policy, all by
                default. Tools using another method are still compiled but do
                not reserve their name.
        """
        self.spec = openapi_spec
        self.default_include = default_include
        self.names = names if names is not None else NameDeduplicator()
        self.allowed_methods = (
            None if allowed_methods is None else {m.upper() for m in allowed_methods}
        )
        self.tools: List[ToolDefinition] = []

    @classmethod
    def from_yaml(cls, yaml_path: str, **kwargs) -> "ToolCompiler":
        """Create a compiler instance from a YAML (or JSON) file.

        Args:
            yaml_path: Path to the OpenAPI file

        Returns:
            An instance of ToolCompiler
        """
        with open(yaml_path, "r") as f:
            spec = yaml.safe_load(f)
        return cls(spec, **kwargs)

    def _include(
        self,
        path: str,
        method: str,
        path_item: Dict[str, Any],
        operation: OperationRecord,
        warnings: List[str],
    ) -> bool:
        try:
            return should_include_operation(
                self.spec, path_item, operation, self.default_include, warnings
            )
        except Exception as e:
            location = operation.operation_id or f"{method} {path}"
            value = operation.extension(INCLUSION_KEY)
            if value is None:
                value = path_item.get(INCLUSION_KEY, self.spec.get(INCLUSION_KEY))
            logger.warning(
                "Error evaluating %s extension for operation %s (%s=%r): %s",
                INCLUSION_KEY,
                location,
                INCLUSION_KEY,
                value,
                e,
            )
            return self.default_include

    def compile_operation(
        self, path: str, method: str, path_item: Dict[str, Any]
    ) -> Optional[ToolDefinition]:
        """Compile one (path, method) pair, or return None if it is excluded."""
        operation = OperationRecord(path_item[method])
        warnings: List[str] = []
        if not self._include(path, method, path_item, operation, warnings):
            return None

        logs = [LogEntry(severity="WARN", msg=message) for message in warnings]

        if not operation.operation_id:
            logs.append(LogEntry(severity="WARN", msg="no operationId key available"))

        original_name = operation.operation_id or generate_operation_id(method, path)
        if self.allowed_methods is None or method.upper() in self.allowed_methods:
            name = self.names.claim(original_name)
        else:
            name = self.names.suggest(original_name)
        if name != original_name:
            logs.append(
                LogEntry(severity="WARN", msg=f"name was transformed from {original_name}")
            )

        if not operation.description:
            logs.append(LogEntry(severity="WARN", msg="no description in OpenAPI schema"))
        if not operation.summary:
            logs.append(LogEntry(severity="INFO", msg="no summary in OpenAPI schema"))

        if not operation.ai_description:
            logs.append(LogEntry(severity="ERR", msg="no `x-ai-description` field"))
        if len(operation.ai_description) > AI_DESCRIPTION_MAX_LENGTH:
            logs.append(
                LogEntry(severity="ERR", msg="x-ai-description is too long (>300 chars)")
            )

        input_schema, parameters, content_type = generate_input_schema_and_details(
            operation, path_item.get("parameters"), logs
        )

        properties = input_schema.get("properties", {}) if isinstance(input_schema, dict) else {}
        if any(
            isinstance(prop, dict) and not prop.get("description")
            for prop in properties.values()
        ):
            logs.append(
                LogEntry(severity="ERR", msg="has parameter(s) with no `description` key")
            )

        execution_parameters = [
            ExecutionParameter(name=p["name"], location=p["in"])
            for p in parameters
            if p.get("name") and p.get("in")
        ]

        # An explicit empty list also falls back to the document's security
        security = operation.security or self.spec.get("security") or []

        return ToolDefinition(
            name=name,
            description=resolve_description(operation),
            input_schema=input_schema,
            method=method,
            path_template=path,
            parameters=parameters,
            execution_parameters=execution_parameters,
            request_body_content_type=content_type,
            security_requirements=security,
            operation_id=original_name,
            deprecated=operation.deprecated,
            logs=logs,
        )

    def convert(self) -> List[ToolDefinition]:
        """Convert the OpenAPI document into tool definitions.

        Returns:
            List of ToolDefinition objects
        """
        self.tools = []
        paths = self.spec.get("paths") or {}
        for path, path_item in paths.items():
            if not isinstance(path_item, dict):
                continue
            for method in HTTP_METHODS:
                if not isinstance(path_item.get(method), dict):
                    continue
                tool = self.compile_operation(path, method, path_item)
                if tool is not None:
                    self.tools.append(tool)
        return self.tools

    def save_tools(self, output_path: str) -> None:
        """Save the compiled tools to a JSON or YAML file.

        Args:
            output_path: Path of the output file; ``.yaml``/``.yml`` selects YAML
        """
        tools = self.convert()
        content = {"tools": [tool.model_dump() for tool in tools]}

        with open(output_path, "w") as f:
            if output_path.endswith((".yaml", ".yml")):
                yaml.safe_dump(content, f, sort_keys=False)
            else:
                json.dump(content, f, indent=2)
