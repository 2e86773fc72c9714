"""
Command-line interface for the OpenAPI MCP gateway.
"""

import json
import logging
from pathlib import Path
from typing import NoReturn, Optional, Tuple

import typer
import uvicorn
import yaml

from .catalog import Catalog, build_catalog
from .config import GatewayConfig, load_config
from .converter import ToolCompiler
from .dereferencer import PathDereferencer
from .exceptions import ConfigurationError, DereferenceError
from .loader import OpenAPILoader
from .server import create_app

app = typer.Typer(help="Expose OpenAPI described services as MCP tools")

logger = logging.getLogger(__name__)

RULE = "═" * 59


def _setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


def _fail(message: str) -> NoReturn:
    typer.echo(message, err=True)
    raise typer.Exit(1)


def _read_document(input_file: Path) -> dict:
    """Read an OpenAPI file (YAML or JSON) and inline its references.

    Raises:
        typer.Exit: If the file is missing, unreadable or has a broken reference
    """
    if not input_file.exists():
        _fail(f"Input file not found: {input_file}")
    try:
        with open(input_file) as f:
            spec = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        _fail(f"Error loading {input_file}: {str(e)}")
    try:
        return PathDereferencer(spec, base_path=input_file.parent).dereference()
    except DereferenceError as e:
        _fail(f"Error dereferencing {input_file}: {str(e)}")


def _load_catalog(config_file: Optional[Path]) -> Tuple[GatewayConfig, Catalog]:
    try:
        config = load_config(config_file)
    except ConfigurationError as e:
        _fail(f"Error: {str(e)}")

    config_dir = config_file.parent if config_file else Path.cwd()
    documents = OpenAPILoader(config, config_dir=config_dir).load_all()
    catalog = build_catalog(documents, config.allowed_methods, config.categories)
    return config, catalog


def _log_banner(config: GatewayConfig, catalog: Catalog) -> None:
    def flag(value: bool) -> str:
        return "ENABLED" if value else "DISABLED"

    services = ", ".join(s.name for s in config.services) or "none"
    logger.info(RULE)
    logger.info("OpenAPI MCP gateway starting")
    logger.info("  Base URL: %s", config.base_url)
    logger.info("  Services: %s", services)
    logger.info("  Categories: %d enabled", len(config.categories))
    logger.info("  Write operations: %s", flag(config.allow_write_operations))
    logger.info("  API recording: %s", flag(config.record_api_queries))
    logger.info("  Certificate validation: %s", flag(not config.ignore_certificate_errors))
    logger.info("  Category check on call: %s", flag(config.enforce_category_on_call))
    if config.ignore_certificate_errors:
        logger.warning(
            "HTTPS certificate validation is disabled. This should only be used "
            "in development/testing environments."
        )
    for service, count in catalog.count_by_service().items():
        logger.info("  ✓ %s: %d tools", service, count)
    logger.info("Total tools loaded: %d", len(catalog))
    logger.info(RULE)


@app.command()
def serve(
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to the configuration file (default: ./aap-mcp.yaml)"
    ),
    host: str = typer.Option("0.0.0.0", "--host", help="Interface to bind"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port, overrides mcp_port"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Load the services and serve the tool catalog."""
    _setup_logging(verbose)
    config, catalog = _load_catalog(config_file)
    _log_banner(config, catalog)

    uvicorn.run(create_app(config, catalog), host=host, port=port or config.mcp_port)


@app.command("compile")
def compile_tools(
    input_file: Path = typer.Argument(..., help="Path to the input OpenAPI file"),
    output_file: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Path to save the tool list. If not provided, will use input filename with .tools.json extension",
    ),
) -> None:
    """Compile a single OpenAPI document into a tool list with diagnostics."""
    spec = _read_document(input_file)
    if output_file is None:
        output_file = input_file.parent / f"{input_file.stem}.tools.json"

    compiler = ToolCompiler(spec)
    compiler.save_tools(str(output_file))
    errors = sum(1 for tool in compiler.tools for log in tool.logs if log.severity == "ERR")
    typer.echo(
        f"Successfully compiled {input_file} to {output_file} "
        f"({len(compiler.tools)} tools, {errors} errors)"
    )


@app.command()
def dereference(
    input_file: Path = typer.Argument(..., help="Path to the input OpenAPI spec"),
    output_file: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Path to save the dereferenced spec. If not provided, will use input filename with .dereferenced.yaml suffix",
    ),
) -> None:
    """Write a copy of an OpenAPI document with its references inlined."""
    result = _read_document(input_file)
    if output_file is None:
        output_file = input_file.parent / f"{input_file.stem}.dereferenced.yaml"

    try:
        with open(output_file, "w") as f:
            yaml.dump(result, f, sort_keys=False)
    except OSError as e:
        _fail(f"Error saving to {output_file}: {str(e)}")
    typer.echo(f"Successfully dereferenced {input_file} to {output_file}")


@app.command("export-tools")
def export_tools(
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to the configuration file (default: ./aap-mcp.yaml)"
    ),
    output_file: Path = typer.Option(Path("tool_list.csv"), "--output", "-o", help="CSV output path"),
    with_logs: bool = typer.Option(False, "--logs", help="Also print the diagnostics as JSON"),
) -> None:
    """Write the catalog report as CSV."""
    _setup_logging()
    _, catalog = _load_catalog(config_file)
    output_file.write_text(catalog.to_csv(), encoding="utf-8")
    typer.echo(f"Tool list saved to {output_file} ({len(catalog)} tools)")
    if with_logs:
        report = {tool.name: [log.model_dump() for log in tool.logs] for tool in catalog}
        typer.echo(json.dumps(report, indent=2))


def main():
    """Entry point for the CLI."""
    app()
