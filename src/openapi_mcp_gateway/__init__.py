"""OpenAPI to MCP gateway package."""

__version__ = "0.1.0"

from .catalog import Catalog, build_catalog
from .converter import ToolCompiler
from .models import LogEntry, ServiceDocument, ToolDefinition

__all__ = ["Catalog", "build_catalog", "ToolCompiler", "LogEntry", "ServiceDocument", "ToolDefinition"]
