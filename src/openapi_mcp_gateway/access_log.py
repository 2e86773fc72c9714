"""
Append-only access log of tool calls, one JSON Lines file per tool.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Union

from .models import AccessRecord

logger = logging.getLogger(__name__)


class ToolLogger:
    """Records every tool call attempt under ``<log_dir>/<tool>.jsonl``."""

    def __init__(self, log_dir: Union[str, Path] = "logs"):
        self.log_dir = Path(log_dir)
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Failed to create log directory %s: %s", self.log_dir, e)

    def log_file(self, tool_name: str) -> Path:
        return self.log_dir / f"{tool_name}.jsonl"

    def _append(self, path: Path, line: str) -> None:
        with open(path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    async def log_tool_access(
        self,
        tool_name: str,
        endpoint: str,
        payload: Dict[str, Any],
        response: Any,
        return_code: int,
    ) -> AccessRecord:
        """Append one access record; write failures are logged, not raised."""
        record = AccessRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            endpoint=endpoint,
            payload=payload,
            response=response,
            return_code=return_code,
        )
        path = self.log_file(tool_name)
        line = json.dumps(record.model_dump(), default=str)
        try:
            await asyncio.to_thread(self._append, path, line)
        except OSError as e:
            logger.error("Failed to write to log file %s: %s", path, e)
        return record

    def read_entries(self, tool_name: str) -> List[AccessRecord]:
        """Read back the records of one tool, oldest first."""
        path = self.log_file(tool_name)
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except OSError:
            return []
        return [AccessRecord.model_validate_json(line) for line in lines if line.strip()]
