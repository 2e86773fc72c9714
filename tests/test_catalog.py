"""Tests for catalog aggregation."""

from openapi_mcp_gateway.catalog import CSV_HEADER, Catalog, annotate_tool, build_catalog
from openapi_mcp_gateway.config import READ_METHODS
from openapi_mcp_gateway.models import ServiceDocument, ToolDefinition

ALL_METHODS = ["GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"]


def document(service, paths):
    return ServiceDocument(
        service=service,
        base_url=f"https://{service}.example.com",
        document={"openapi": "3.0.0", "info": {"title": service, "version": "1"}, "paths": paths},
    )


def messages(tool):
    return [(log.severity, log.msg) for log in tool.logs]


def test_names_are_unique_across_services():
    """The same operation in two services gets a suffixed name."""
    paths = {"/items/{id}": {"get": {"summary": "Get item"}}}

    catalog = build_catalog([document("one", paths), document("two", paths)], READ_METHODS)

    names = sorted(tool.name for tool in catalog)
    assert names == ["getItemsById", "getItemsById_1"]
    assert catalog.get("getItemsById").service == "one"
    assert catalog.get("getItemsById_1").service == "two"
    assert catalog.get("getItemsById_1").base_url == "https://two.example.com"


def test_write_operations_disabled():
    paths = {
        "/items": {
            "get": {"operationId": "listItems"},
            "post": {"operationId": "createItem"},
        }
    }

    catalog = build_catalog([document("svc", paths)], READ_METHODS)

    assert [tool.name for tool in catalog] == ["listItems"]
    assert "createItem" not in catalog
    assert [tool.name for tool in catalog.disabled] == ["createItem"]
    assert ("INFO", "operation disabled by configuration") in messages(catalog.disabled[0])

    catalog = build_catalog([document("svc", paths)], ALL_METHODS)
    assert sorted(tool.name for tool in catalog) == ["createItem", "listItems"]
    assert catalog.disabled == []


def test_sorted_by_size_descending():
    paths = {
        "/a": {"get": {"operationId": "short"}},
        "/b": {"get": {"operationId": "long", "x-ai-description": "x" * 200}},
        "/c": {"get": {"operationId": "medium", "summary": "y" * 50}},
    }

    catalog = build_catalog([document("svc", paths)], READ_METHODS)

    assert [tool.name for tool in catalog] == ["long", "medium", "short"]
    for tool in catalog:
        assert tool.size == tool.compute_size()
        assert tool.size > 0


def test_size_counts_bytes():
    tool = ToolDefinition(name="t", description="é", method="get", path_template="/")
    ascii_tool = ToolDefinition(name="t", description="e", method="get", path_template="/")

    assert tool.compute_size() == ascii_tool.compute_size() + 1


def test_post_load_diagnostics():
    def tool(name, deprecated=False):
        t = ToolDefinition(name=name, method="get", path_template="/", deprecated=deprecated)
        annotate_tool(t)
        return messages(t)

    assert tool("a" * 40) == []
    assert tool("a" * 41) == [("WARN", "tool name is too long (40)")]
    assert tool("a" * 64) == [("WARN", "tool name is too long (40)")]
    assert tool("a" * 65) == [("ERR", "tool name is too long (64)")]
    assert tool("old", deprecated=True) == [("INFO", "endpoint is deprecated")]


def test_failing_document_is_skipped():
    broken = ServiceDocument(service="broken", base_url="https://x", document={"paths": ["nope"]})
    good = document("good", {"/a": {"get": {"operationId": "a"}}})

    catalog = build_catalog([broken, good], READ_METHODS)

    assert [tool.name for tool in catalog] == ["a"]


def test_categories():
    tools = [
        ToolDefinition(name=name, method="get", path_template="/")
        for name in ("listJobs", "getJob", "deleteJob", "unlisted")
    ]
    catalog = Catalog(
        tools,
        {"readonly": ["listJobs", "getJob"], "admin": ["getJob", "deleteJob", "missing"]},
    )

    assert [t.name for t in catalog.tools_for_category("readonly")] == ["listJobs", "getJob"]
    assert [t.name for t in catalog.tools_for_category("all")] == ["listJobs", "getJob", "deleteJob"]
    assert catalog.category_tool_names("all") == ["listJobs", "getJob", "deleteJob", "missing"]
    assert catalog.tools_for_category("nope") == []
    assert catalog.resolve_category("admin") == "admin"
    assert catalog.resolve_category("nope") == "all"
    assert catalog.resolve_category(None) == "all"
    assert catalog.is_tool_in_category("deleteJob", "admin")
    assert not catalog.is_tool_in_category("deleteJob", "readonly")


def test_count_by_service_and_csv():
    tools = [
        ToolDefinition(name="a", description="Say, hello", method="get", path_template="/a", service="x", size=10),
        ToolDefinition(name="b", method="get", path_template="/b", size=5),
    ]
    catalog = Catalog(tools)

    assert catalog.count_by_service() == {"x": 1, "unknown": 1}
    lines = catalog.to_csv().splitlines()
    assert lines[0] == ",".join(CSV_HEADER)
    assert lines[1] == 'a,10,"Say, hello",/a,x'
    assert lines[2] == "b,5,,/b,unknown"


def test_numeric_text_fields_do_not_drop_the_service():
    """YAML numbers in text fields are read as text instead of failing the document."""
    paths = {
        "/ok": {"get": {"operationId": "okTool", "x-ai-description": "Fine."}},
        "/odd": {
            "get": {
                "operationId": "oddTool",
                "x-ai-description": 2024,
                "summary": 7,
                "description": 1.5,
            }
        },
        "/numbered": {"get": {"operationId": 42, "x-ai-description": "Numbered."}},
    }

    catalog = build_catalog([document("svc", paths)], READ_METHODS)

    assert sorted(tool.name for tool in catalog) == ["42", "oddTool", "okTool"]
    odd = catalog.get("oddTool")
    assert odd.description == "2024"
    assert not any(severity == "ERR" for severity, _ in messages(odd))


def test_disabled_tools_do_not_reserve_names():
    """A write operation dropped by policy leaves its name free for other services."""
    catalog = build_catalog(
        [
            document("one", {"/items": {"post": {"operationId": "createItem"}}}),
            document("two", {"/items": {"get": {"operationId": "createItem"}}}),
        ],
        READ_METHODS,
    )

    assert [tool.name for tool in catalog] == ["createItem"]
    assert catalog.get("createItem").service == "two"
    assert [(tool.name, tool.service) for tool in catalog.disabled] == [("createItem", "one")]
