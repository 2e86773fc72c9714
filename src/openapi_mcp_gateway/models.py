"""
Data models for the tool catalog.
"""

import json
from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field

Severity = Literal["INFO", "WARN", "ERR"]


class LogEntry(BaseModel):
    """A diagnostic attached to a compiled tool."""

    severity: Severity
    msg: str


class ExecutionParameter(BaseModel):
    """Name and location of a parameter, used to build the outbound request."""

    name: str
    location: str


class ToolDefinition(BaseModel):
    """Represents one callable tool derived from an OpenAPI operation."""

    name: str
    description: str = ""
    input_schema: Union[Dict[str, Any], bool] = Field(default_factory=dict)
    method: str
    path_template: str
    parameters: List[Dict[str, Any]] = Field(default_factory=list)
    execution_parameters: List[ExecutionParameter] = Field(default_factory=list)
    request_body_content_type: Optional[str] = None
    security_requirements: List[Dict[str, Any]] = Field(default_factory=list)
    operation_id: str = ""
    service: Optional[str] = None
    base_url: Optional[str] = None
    deprecated: bool = False
    logs: List[LogEntry] = Field(default_factory=list)
    size: int = 0

    def add_log(self, severity: Severity, msg: str) -> None:
        self.logs.append(LogEntry(severity=severity, msg=msg))

    def to_protocol(self) -> Dict[str, Any]:
        """Return the ``{name, description, inputSchema}`` view sent to clients."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }

    def compute_size(self) -> int:
        """Byte length of the serialized protocol view."""
        serialized = json.dumps(
            self.to_protocol(), separators=(",", ":"), ensure_ascii=False
        )
        return len(serialized.encode("utf-8"))


class ServiceDocument(BaseModel):
    """An OpenAPI document together with the service that owns it."""

    service: str
    base_url: str
    document: Dict[str, Any]


class AccessRecord(BaseModel):
    """One line of the per-tool access log."""

    timestamp: str
    endpoint: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    response: Any = None
    return_code: int
