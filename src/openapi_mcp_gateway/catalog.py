"""
Aggregation of per-service tools into the catalog served to clients.
"""

import csv
import io
import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .config import ALL_CATEGORY
from .converter import ToolCompiler
from .models import ServiceDocument, ToolDefinition
from .naming import NameDeduplicator

logger = logging.getLogger(__name__)

NAME_LENGTH_ERROR = 64
NAME_LENGTH_WARNING = 40

CSV_HEADER = ["Tool name", "size (characters)", "description", "path template", "service"]


class Catalog:
    """The ordered, read-only set of tools exposed by the gateway."""

    def __init__(
        self,
        tools: Sequence[ToolDefinition],
        categories: Optional[Mapping[str, Sequence[str]]] = None,
        disabled: Optional[Sequence[ToolDefinition]] = None,
    ):
        self.tools: List[ToolDefinition] = list(tools)
        self.categories: Dict[str, List[str]] = {
            name: list(tool_names) for name, tool_names in (categories or {}).items()
        }
        self.disabled: List[ToolDefinition] = list(disabled or [])
        self._by_name: Dict[str, ToolDefinition] = {tool.name: tool for tool in self.tools}

    def __len__(self) -> int:
        return len(self.tools)

    def __iter__(self):
        return iter(self.tools)

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._by_name.get(name)

    def resolve_category(self, category: Optional[str]) -> str:
        """Return ``category`` if it is configured, otherwise the catchall."""
        if category and category in self.categories:
            return category
        return ALL_CATEGORY

    def category_tool_names(self, category: str) -> List[str]:
        """Tool names granted to a category; ``all`` is the union of every category."""
        if category == ALL_CATEGORY:
            names: Dict[str, None] = {}
            for tool_names in self.categories.values():
                names.update(dict.fromkeys(tool_names))
            return list(names)
        return list(self.categories.get(category, []))

    def tools_for_category(self, category: str) -> List[ToolDefinition]:
        selection = set(self.category_tool_names(category))
        return [tool for tool in self.tools if tool.name in selection]

    def is_tool_in_category(self, name: str, category: str) -> bool:
        return name in self.category_tool_names(category)

    def count_by_service(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for tool in self.tools:
            service = tool.service or "unknown"
            counts[service] = counts.get(service, 0) + 1
        return counts

    def to_csv(self) -> str:
        """Render the tool report as CSV."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for tool in self.tools:
            writer.writerow(
                [tool.name, tool.size, tool.description, tool.path_template, tool.service or "unknown"]
            )
        return buffer.getvalue()


def annotate_tool(tool: ToolDefinition) -> None:
    """Attach the diagnostics computed once the catalog is loaded."""
    if tool.deprecated:
        tool.add_log("INFO", "endpoint is deprecated")
    if len(tool.name) > NAME_LENGTH_ERROR:
        tool.add_log("ERR", f"tool name is too long ({NAME_LENGTH_ERROR})")
    elif len(tool.name) > NAME_LENGTH_WARNING:
        tool.add_log("WARN", f"tool name is too long ({NAME_LENGTH_WARNING})")


def build_catalog(
    documents: Iterable[ServiceDocument],
    allowed_methods: Sequence[str],
    categories: Optional[Mapping[str, Sequence[str]]] = None,
    default_include: bool = True,
) -> Catalog:
    """Compile every service document and merge the results.

    Args:
        documents: The loaded service documents
        allowed_methods: Upper-case HTTP methods permitted by the write policy
        categories: Category name to tool names
        default_include: Whether operations without ``x-mcp`` become tools

    Returns:
        The catalog, sorted by size, largest first
    """
    allowed = {method.upper() for method in allowed_methods}
    names = NameDeduplicator()
    tools: List[ToolDefinition] = []
    disabled: List[ToolDefinition] = []

    for document in documents:
        try:
            compiled = ToolCompiler(
                document.document,
                default_include=default_include,
                names=names,
                allowed_methods=allowed,
            ).convert()
        except Exception:
            logger.exception("Error generating tools for service %s", document.service)
            continue

        for tool in compiled:
            tool.service = document.service
            tool.base_url = document.base_url
            if tool.method.upper() not in allowed:
                tool.add_log("INFO", "operation disabled by configuration")
                disabled.append(tool)
                continue
            tools.append(tool)

    for tool in tools:
        tool.size = tool.compute_size()
        annotate_tool(tool)
    tools.sort(key=lambda tool: tool.size, reverse=True)

    return Catalog(tools, categories, disabled)
