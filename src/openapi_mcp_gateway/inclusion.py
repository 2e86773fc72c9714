"""
Resolution of the ``x-mcp`` inclusion flag.

Precedence is operation > path item > document root > default.
"""

import logging
from typing import Any, Dict, List, Optional

from .operation import OperationRecord

logger = logging.getLogger(__name__)

INCLUSION_KEY = "x-mcp"

TRUE_VALUES = {"true", "1", "yes", "on"}
FALSE_VALUES = {"false", "0", "no", "off"}


def normalize_boolean(value: Any) -> Optional[bool]:
    """Normalize a value to a boolean if it looks like one, otherwise ``None``."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in TRUE_VALUES:
            return True
        if normalized in FALSE_VALUES:
            return False
    return None


def _is_unset(value: Any) -> bool:
    return value is None or value == ""


def should_include_operation(
    api: Dict[str, Any],
    path_item: Dict[str, Any],
    operation: OperationRecord,
    default_include: bool = True,
    warnings: Optional[List[str]] = None,
) -> bool:
    """Decide whether an operation becomes a tool.

    Args:
        api: The OpenAPI document
        path_item: The path item holding the operation
        operation: The normalized operation
        default_include: Result when no level carries a usable value
        warnings: Optional list receiving a message for every invalid value

    Returns:
        True if the operation should be exposed as a tool
    """
    op_name = operation.operation_id or "[no operationId]"
    levels = (
        (
            operation.extension(INCLUSION_KEY),
            f"Invalid {INCLUSION_KEY} value on operation '{op_name}'",
            "Falling back to path/root/default.",
        ),
        (
            path_item.get(INCLUSION_KEY),
            f"Invalid {INCLUSION_KEY} value on path item",
            "Falling back to root/default.",
        ),
        (
            api.get(INCLUSION_KEY),
            f"Invalid {INCLUSION_KEY} value at API root",
            f"Falling back to defaultInclude={str(default_include).lower()}.",
        ),
    )

    for raw, where, fallback in levels:
        value = normalize_boolean(raw)
        if value is not None:
            return value
        if not _is_unset(raw):
            message = (
                f"{where}: {raw!r} -> expected boolean or 'true'/'false'. {fallback}"
            )
            logger.warning(message)
            if warnings is not None:
                warnings.append(message)

    return default_include
