"""
JSON-RPC 2.0 envelopes and method routing for the tool protocol.
"""

import logging
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel

from .exceptions import (
    GatewayError,
    SessionError,
    ToolAccessDeniedError,
    ToolExecutionError,
    ToolNotFoundError,
)
from .gateway import DispatchGateway

logger = logging.getLogger(__name__)

SUPPORTED_PROTOCOL_VERSIONS = ("2025-06-18", "2025-03-26", "2024-11-05")

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
BAD_REQUEST = -32000
UNAUTHORIZED = -32001


class JSONRPCRequest(BaseModel):
    """JSON-RPC 2.0 Request model"""
    jsonrpc: str = "2.0"
    method: str
    params: Optional[Dict[str, Any]] = None
    id: Optional[Union[str, int]] = None

    @property
    def is_notification(self) -> bool:
        return self.id is None


class JSONRPCResponse(BaseModel):
    """JSON-RPC 2.0 Response model"""
    jsonrpc: str = "2.0"
    result: Optional[Any] = None
    error: Optional[Dict[str, Any]] = None
    id: Optional[Union[str, int]] = None


def error_response(
    code: int, message: str, request_id: Optional[Union[str, int]] = None, data: Any = None
) -> JSONRPCResponse:
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return JSONRPCResponse(id=request_id, error=error)


def is_initialize_request(body: Any) -> bool:
    return isinstance(body, dict) and body.get("method") == "initialize" and "id" in body


class ProtocolHandler:
    """Maps JSON-RPC methods onto the dispatch gateway."""

    def __init__(self, gateway: DispatchGateway, server_name: str = "aap", server_version: str = "0.1.0"):
        self.gateway = gateway
        self.server_name = server_name
        self.server_version = server_version

    def initialize_result(self, request: JSONRPCRequest) -> Dict[str, Any]:
        requested = (request.params or {}).get("protocolVersion")
        version = requested if requested in SUPPORTED_PROTOCOL_VERSIONS else SUPPORTED_PROTOCOL_VERSIONS[0]
        return {
            "protocolVersion": version,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": self.server_name, "version": self.server_version},
        }

    async def _dispatch(self, session_id: Optional[str], request: JSONRPCRequest) -> Any:
        if request.method == "ping":
            return {}

        if request.method == "tools/list":
            return {"tools": self.gateway.list_tools(session_id)}

        if request.method == "tools/call":
            params = request.params or {}
            name = params.get("name")
            if not name:
                raise ToolNotFoundError("Missing tool name")
            arguments = params.get("arguments") or {}
            if not isinstance(arguments, dict):
                raise ToolNotFoundError("Tool arguments must be an object")
            return await self.gateway.call_tool(session_id, name, arguments)

        return None

    async def handle(self, session_id: Optional[str], request: JSONRPCRequest) -> Optional[JSONRPCResponse]:
        """Handle a request on an established session.

        Returns:
            The response, or None for notifications
        """
        if request.is_notification:
            return None

        if request.method not in ("ping", "tools/list", "tools/call"):
            return error_response(METHOD_NOT_FOUND, f"Method not found: {request.method}", request.id)

        try:
            result = await self._dispatch(session_id, request)
        except SessionError as e:
            return error_response(BAD_REQUEST, str(e), request.id)
        except (ToolNotFoundError, ToolAccessDeniedError) as e:
            return error_response(INVALID_PARAMS, str(e), request.id)
        except ToolExecutionError as e:
            data = {"status": e.status, "body": e.body} if e.status else None
            return error_response(INTERNAL_ERROR, str(e), request.id, data)
        except GatewayError as e:
            logger.error("Error handling %s: %s", request.method, e)
            return error_response(INTERNAL_ERROR, str(e), request.id)

        return JSONRPCResponse(id=request.id, result=result)
