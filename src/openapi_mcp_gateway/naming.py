"""
Tool name generation and deduplication.
"""

import re
from typing import Iterable, Optional, Set

_SEPARATOR = re.compile(r"[-_/](.)")
_INVALID_CHARS = re.compile(r"[^a-zA-Z0-9_-]")

NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")


def title_case(value: str) -> str:
    """Convert a snake_case, kebab-case or path segment to TitleCase.

    Args:
        value: The segment, possibly wrapped in braces

    Returns:
        The TitleCase segment without braces
    """
    result = value.lower()
    result = _SEPARATOR.sub(lambda match: match.group(1).upper(), result)
    if result.startswith("{"):
        result = result[1:]
    if result.endswith("}"):
        result = result[:-1]
    return result[:1].upper() + result[1:]


def _is_path_parameter(segment: str) -> bool:
    return segment.startswith("{") and segment.endswith("}")


def generate_operation_id(method: str, path: str) -> str:
    """Generate an operation id from an HTTP method and a path.

    Only a trailing path parameter contributes to the name, as ``By<Param>``:
    ``get /users/{userId}/posts`` gives ``getUsersPosts`` and
    ``get /widgets/{id}`` gives ``getWidgetsById``.
    """
    parts = [part for part in path.split("/") if part]
    name = method.lower()
    for index, part in enumerate(parts):
        if _is_path_parameter(part):
            if index == len(parts) - 1:
                name += "By" + title_case(part)
        else:
            name += title_case(part)
    return name


def sanitize_name(name: str) -> str:
    """Restrict a name to ``[a-zA-Z0-9_-]``."""
    return _INVALID_CHARS.sub("_", name.replace(".", "_"))


class NameDeduplicator:
    """Hands out tool names that are unique across everything it has seen."""

    def __init__(self, used: Optional[Iterable[str]] = None):
        self._used: Set[str] = set(used or ())

    def __contains__(self, name: str) -> bool:
        return name in self._used

    def __len__(self) -> int:
        return len(self._used)

    def suggest(self, base_name: str) -> str:
        """Sanitize ``base_name`` and suffix it until it is unused, without claiming it."""
        base = sanitize_name(base_name)
        candidate = base
        counter = 1
        while candidate in self._used:
            candidate = f"{base}_{counter}"
            counter += 1
        return candidate

    def claim(self, base_name: str) -> str:
        """Reserve a unique name derived from ``base_name``.

        Args:
            base_name: The operation id or generated name

        Returns:
            The unique, sanitized name, now marked as used
        """
        candidate = self.suggest(base_name)
        self._used.add(candidate)
        return candidate
