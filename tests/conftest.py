"""Shared fixtures for the gateway tests."""

import json
from typing import Any, Dict

import httpx
import pytest

from openapi_mcp_gateway.catalog import build_catalog
from openapi_mcp_gateway.config import GatewayConfig
from openapi_mcp_gateway.models import ServiceDocument

BASE_URL = "https://aap.example.com"


def widget_spec() -> Dict[str, Any]:
    """A small widget API with read and write operations."""
    return {
        "openapi": "3.0.0",
        "info": {"title": "Widgets", "version": "1.0.0"},
        "paths": {
            "/widgets/{id}": {
                "parameters": [
                    {
                        "name": "id",
                        "in": "path",
                        "required": True,
                        "description": "Widget id",
                        "schema": {"type": "integer"},
                    }
                ],
                "get": {
                    "summary": "Get widget",
                    "parameters": [
                        {
                            "name": "expand",
                            "in": "query",
                            "description": "Expand related objects",
                            "schema": {"type": "boolean"},
                        }
                    ],
                },
                "delete": {
                    "operationId": "deleteWidget",
                    "summary": "Delete widget",
                    "x-ai-description": "Delete a widget by id.",
                },
            },
            "/widgets": {
                "post": {
                    "operationId": "createWidget",
                    "summary": "Create widget",
                    "x-ai-description": "Create a widget.",
                    "requestBody": {
                        "required": True,
                        "content": {
                            "application/json": {
                                "schema": {
                                    "type": "object",
                                    "properties": {
                                        "name": {"type": "string", "description": "Widget name"}
                                    },
                                }
                            }
                        },
                    },
                }
            },
        },
    }


@pytest.fixture()
def config() -> GatewayConfig:
    return GatewayConfig(
        base_url=BASE_URL,
        allow_write_operations=True,
        categories={
            "readonly": ["getWidgetsById"],
            "operator": ["getWidgetsById", "createWidget", "deleteWidget"],
        },
    )


@pytest.fixture()
def catalog(config):
    document = ServiceDocument(service="widgets", base_url=BASE_URL, document=widget_spec())
    return build_catalog([document], config.allowed_methods, config.categories)


def upstream_handler(request: httpx.Request) -> httpx.Response:
    """Fake upstream: identity check plus the widget endpoints."""
    if request.url.path == "/api/gateway/v1/me/":
        if request.headers.get("authorization") == "Bearer good-token":
            return httpx.Response(200, json={"username": "admin"})
        return httpx.Response(401, json={"detail": "Invalid token"})
    if request.url.path == "/widgets/42" and request.method == "GET":
        return httpx.Response(200, json={"id": 42, "name": "sprocket"})
    if request.url.path == "/widgets/42" and request.method == "DELETE":
        return httpx.Response(200, json={"deleted": True})
    if request.url.path == "/widgets" and request.method == "POST":
        return httpx.Response(201, json=json.loads(request.content))
    return httpx.Response(404, json={"detail": "Not found."})


@pytest.fixture()
def upstream_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(upstream_handler))


@pytest.fixture()
def widget_document() -> Dict[str, Any]:
    return widget_spec()
