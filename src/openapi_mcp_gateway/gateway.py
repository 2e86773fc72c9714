"""
Dispatch of tool calls to the backend REST services.
"""

import json
import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx

from .access_log import ToolLogger
from .catalog import Catalog
from .exceptions import ToolAccessDeniedError, ToolExecutionError, ToolNotFoundError
from .models import ToolDefinition
from .sessions import Session, SessionManager

logger = logging.getLogger(__name__)

BODY_METHODS = ("POST", "PUT", "PATCH")
JSON_CONTENT_TYPE = "application/json"


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def build_request(
    tool: ToolDefinition, arguments: Dict[str, Any], token: str
) -> Tuple[str, List[Tuple[str, str]], Dict[str, str], Optional[bytes]]:
    """Build the upstream request for a tool call.

    Args:
        tool: The tool being called
        arguments: The call arguments, keyed by parameter name, plus ``requestBody``
        token: The session's bearer token

    Returns:
        tuple: (path, query_params, headers, body)
    """
    path = tool.path_template
    query: List[Tuple[str, str]] = []
    headers = {"Authorization": f"Bearer {token}", "Accept": JSON_CONTENT_TYPE}

    for param in tool.execution_parameters:
        value = arguments.get(param.name)
        if value is None:
            continue
        if param.location == "path":
            path = path.replace(f"{{{param.name}}}", quote(_format_value(value), safe=""))
        elif param.location == "query":
            items = value if isinstance(value, list) else [value]
            query.extend((param.name, _format_value(item)) for item in items)
        elif param.location == "header":
            headers[param.name] = _format_value(value)

    body = None
    request_body = arguments.get("requestBody")
    if tool.method.upper() in BODY_METHODS and request_body is not None:
        content_type = tool.request_body_content_type or JSON_CONTENT_TYPE
        if content_type != JSON_CONTENT_TYPE and isinstance(request_body, str):
            headers["Content-Type"] = content_type
            body = request_body.encode("utf-8")
        else:
            headers["Content-Type"] = JSON_CONTENT_TYPE
            body = json.dumps(request_body).encode("utf-8")

    return path, query, headers, body


def _read_result(response: httpx.Response) -> Any:
    content_type = response.headers.get("content-type", "")
    if JSON_CONTENT_TYPE in content_type:
        try:
            return response.json()
        except ValueError:
            return response.text
    return response.text


def _as_text(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, indent=2)


class DispatchGateway:
    """Lists and calls tools on behalf of active sessions."""

    def __init__(
        self,
        catalog: Catalog,
        sessions: SessionManager,
        client: httpx.AsyncClient,
        base_url: str = "https://localhost",
        tool_logger: Optional[ToolLogger] = None,
        enforce_category_on_call: bool = False,
    ):
        """Initialize the gateway.

        Args:
            catalog: The compiled tool catalog
            sessions: Session manager owning the active sessions
            client: HTTP client used for upstream calls
            base_url: Upstream base URL for tools without their own
            tool_logger: Access log, or None when recording is disabled
            enforce_category_on_call: Reject calls to tools outside the session's category
        """
        self.catalog = catalog
        self.sessions = sessions
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.tool_logger = tool_logger
        self.enforce_category_on_call = enforce_category_on_call

    def list_tools(self, session_id: Optional[str]) -> List[Dict[str, Any]]:
        """Tools visible to the session's category.

        Raises:
            SessionNotFoundError: If the session is not active
        """
        session = self.sessions.get(session_id)
        return [tool.to_protocol() for tool in self.catalog.tools_for_category(session.category)]

    def _resolve_tool(self, session: Session, name: str) -> ToolDefinition:
        tool = self.catalog.get(name)
        if tool is None:
            raise ToolNotFoundError(f"Unknown tool: {name}")
        if self.enforce_category_on_call and not self.catalog.is_tool_in_category(
            name, session.category
        ):
            raise ToolAccessDeniedError(
                f"Tool {name} is not available in category {session.category}"
            )
        return tool

    async def _record(
        self,
        session: Session,
        tool: ToolDefinition,
        url: str,
        result: Any,
        status: int,
        duration: float,
    ) -> None:
        if self.tool_logger is None:
            return
        payload = {
            "method": tool.method.upper(),
            "userAgent": session.user_agent,
            "category": session.category,
            "service": tool.service,
            "duration": round(duration, 3),
        }
        await self.tool_logger.log_tool_access(tool.name, url, payload, result, status)

    async def call_tool(
        self, session_id: Optional[str], name: str, arguments: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Call a tool and wrap the upstream answer in a ``tools/call`` result.

        Raises:
            SessionNotFoundError: If the session is not active
            ToolNotFoundError: If the tool is not in the catalog
            ToolAccessDeniedError: If category enforcement rejects the call
            ToolExecutionError: If the upstream call fails or returns an error status
        """
        session = self.sessions.get(session_id)
        tool = self._resolve_tool(session, name)
        arguments = arguments or {}

        correlation_id = uuid.uuid4().hex[:8]
        prefix = f"[req:{correlation_id}|category:{session.category}] {tool.name}"
        method = tool.method.upper()
        base_url = (tool.base_url or self.base_url).rstrip("/")

        path, query, headers, body = build_request(tool, arguments, session.token)
        url = f"{base_url}{path}"
        endpoint = str(httpx.URL(url, params=query)) if query else url

        logger.info("%s → %s %s", prefix, method, endpoint)
        start = time.monotonic()
        try:
            response = await self.client.request(
                method, url, params=query or None, headers=headers, content=body
            )
        except httpx.HTTPError as e:
            duration = time.monotonic() - start
            logger.error("%s → No Response (%.2fs) - ERROR: %s", prefix, duration, e)
            await self._record(session, tool, endpoint, {"error": str(e)}, 0, duration)
            raise ToolExecutionError(f"Tool execution failed: {e}") from e

        result = _read_result(response)
        duration = time.monotonic() - start
        status = f"{response.status_code} {response.reason_phrase}"
        await self._record(session, tool, endpoint, result, response.status_code, duration)

        if not response.is_success:
            message = f"HTTP {response.status_code}: {json.dumps(result)}"
            logger.error("%s → %s (%.2fs) - ERROR: %s", prefix, status, duration, message)
            raise ToolExecutionError(
                f"Tool execution failed: {message}", response.status_code, result
            )

        logger.info("%s → %s (%.2fs)", prefix, status, duration)
        return {"content": [{"type": "text", "text": _as_text(result)}]}
