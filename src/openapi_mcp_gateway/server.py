"""
HTTP surface of the gateway.

Clients talk JSON-RPC over ``POST /mcp`` (optionally scoped to a category with
``/<category>/mcp`` or ``/mcp/<category>``). The session id travels in the
``Mcp-Session-Id`` header.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import ValidationError

from . import __version__
from .access_log import ToolLogger
from .catalog import Catalog
from .config import GatewayConfig
from .exceptions import AuthenticationError
from .gateway import DispatchGateway
from .protocol import (
    BAD_REQUEST,
    INVALID_REQUEST,
    PARSE_ERROR,
    UNAUTHORIZED,
    JSONRPCRequest,
    JSONRPCResponse,
    ProtocolHandler,
    error_response,
    is_initialize_request,
)
from .sessions import SessionManager, SessionRegistry, TokenValidator

logger = logging.getLogger(__name__)

SESSION_HEADER = "Mcp-Session-Id"


def _envelope(response: JSONRPCResponse) -> Dict[str, Any]:
    body: Dict[str, Any] = {"jsonrpc": response.jsonrpc, "id": response.id}
    if response.error is not None:
        body["error"] = response.error
    else:
        body["result"] = response.result
    return body


def _rpc_error(status_code: int, code: int, message: str, data: Any = None) -> JSONResponse:
    return JSONResponse(_envelope(error_response(code, message, data=data)), status_code=status_code)


def create_app(
    config: GatewayConfig,
    catalog: Catalog,
    client: Optional[httpx.AsyncClient] = None,
    validator: Optional[TokenValidator] = None,
    tool_logger: Optional[ToolLogger] = None,
) -> FastAPI:
    """Create the FastAPI application serving ``catalog``.

    Args:
        config: Gateway configuration
        catalog: The compiled tool catalog
        client: HTTP client for upstream calls; created (and closed on
            shutdown) when not given
        validator: Identity check, by default against ``config.identity_path``
        tool_logger: Access log; created from ``config.log_dir`` when
            ``record_api_queries`` is set and none is given
    """
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(verify=not config.ignore_certificate_errors, timeout=None)
    if validator is None:
        validator = TokenValidator(config.base_url, client, config.identity_path)
    if tool_logger is None and config.record_api_queries:
        tool_logger = ToolLogger(config.log_dir)

    registry = SessionRegistry()
    sessions = SessionManager(registry, validator, catalog.resolve_category)
    gateway = DispatchGateway(
        catalog,
        sessions,
        client,
        base_url=config.base_url,
        tool_logger=tool_logger,
        enforce_category_on_call=config.enforce_category_on_call,
    )
    protocol = ProtocolHandler(gateway, server_version=__version__)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info("Shutting down server...")
        closed = sessions.close_all()
        logger.info("Closed %d session(s)", closed)
        if owns_client:
            await client.aclose()
        logger.info("Server shutdown complete")

    app = FastAPI(title="OpenAPI MCP Gateway", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.catalog = catalog
    app.state.registry = registry
    app.state.sessions = sessions
    app.state.gateway = gateway

    # Allow CORS for all domains, expose the session header
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[SESSION_HEADER],
    )

    async def mcp_post(request: Request, category: Optional[str] = None) -> Response:
        session_id = request.headers.get(SESSION_HEADER)
        try:
            body = await request.json()
        except ValueError:
            return _rpc_error(400, PARSE_ERROR, "Parse error")

        if session_id and session_id in registry:
            try:
                rpc_request = JSONRPCRequest.model_validate(body)
            except ValidationError as e:
                return _rpc_error(400, INVALID_REQUEST, "Invalid Request", str(e))
            logger.info("Received MCP request %s", rpc_request.method)
            rpc_response = await protocol.handle(session_id, rpc_request)
            if rpc_response is None:
                return Response(status_code=202)
            return JSONResponse(_envelope(rpc_response))

        if not session_id and is_initialize_request(body):
            try:
                rpc_request = JSONRPCRequest.model_validate(body)
            except ValidationError as e:
                return _rpc_error(400, INVALID_REQUEST, "Invalid Request", str(e))
            transport = sessions.open_channel()
            try:
                session = await sessions.initialize(
                    transport,
                    request.headers.get("authorization"),
                    request.headers.get("user-agent"),
                    category,
                )
            except AuthenticationError as e:
                logger.error("Session init failed: %s", e)
                return JSONResponse(
                    _envelope(error_response(UNAUTHORIZED, str(e), rpc_request.id)),
                    status_code=401,
                )
            result = JSONRPCResponse(id=rpc_request.id, result=protocol.initialize_result(rpc_request))
            return JSONResponse(_envelope(result), headers={SESSION_HEADER: session.session_id})

        return _rpc_error(400, BAD_REQUEST, "Bad Request: No valid session ID provided")

    async def mcp_get(request: Request, category: Optional[str] = None) -> Response:
        session_id = request.headers.get(SESSION_HEADER)
        if not session_id or session_id not in registry:
            return PlainTextResponse("Invalid or missing session ID", status_code=400)
        # no server-initiated stream is offered
        return PlainTextResponse("Method Not Allowed", status_code=405, headers={"Allow": "POST, DELETE"})

    async def mcp_delete(request: Request, category: Optional[str] = None) -> Response:
        session_id = request.headers.get(SESSION_HEADER)
        if not session_id or session_id not in registry:
            return PlainTextResponse("Invalid or missing session ID", status_code=400)
        logger.info("Received session termination request")
        sessions.close(session_id)
        return Response(status_code=200)

    for path in ("/mcp", "/{category}/mcp", "/mcp/{category}"):
        app.add_api_route(path, mcp_post, methods=["POST"])
        app.add_api_route(path, mcp_get, methods=["GET"])
        app.add_api_route(path, mcp_delete, methods=["DELETE"])

    @app.get("/api/v1/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    return app
