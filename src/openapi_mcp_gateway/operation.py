"""
Normalized view of a single OpenAPI operation.
"""

from typing import Any, Dict, List, Optional


def _text(value: Any) -> Optional[str]:
    # YAML turns values like 2024 or 1.0 into numbers
    if value is None or isinstance(value, str):
        return value
    return str(value)


class OperationRecord:
    """Wraps a raw operation object and supplies defaults for optional fields.

    Extension fields (``x-*``) are kept in ``extensions`` and read through
    :meth:`extension`.
    """

    def __init__(self, raw_operation: Optional[Dict[str, Any]] = None):
        raw = dict(raw_operation or {})
        self.raw = raw
        self.operation_id: Optional[str] = _text(raw.get("operationId")) or None
        self.summary: Optional[str] = _text(raw.get("summary"))
        self.description: Optional[str] = _text(raw.get("description"))
        self.ai_description: str = _text(raw.get("x-ai-description")) or ""
        self.deprecated: bool = bool(raw.get("deprecated") or False)
        self.parameters: List[Dict[str, Any]] = list(raw.get("parameters") or [])
        self.request_body: Optional[Dict[str, Any]] = raw.get("requestBody")
        self.security: Optional[List[Dict[str, Any]]] = raw.get("security")
        self.responses: Dict[str, Any] = raw.get("responses") or {}
        self.extensions: Dict[str, Any] = {
            key: value for key, value in raw.items() if key.startswith("x-")
        }

    def extension(self, key: str, default: Any = None) -> Any:
        return self.extensions.get(key, default)

    def has_extension(self, key: str) -> bool:
        return key in self.extensions

    def __repr__(self) -> str:
        return f"OperationRecord(operation_id={self.operation_id!r})"
