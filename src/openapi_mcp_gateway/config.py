"""
Gateway configuration.

Settings come from a YAML file; a few of them can be overridden through
environment variables (environment wins over the file).
"""

import os
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .exceptions import ConfigurationError

DEFAULT_CONFIG_FILE = "aap-mcp.yaml"

ALL_CATEGORY = "all"

READ_METHODS = ["GET", "HEAD", "OPTIONS"]
WRITE_METHODS = ["POST", "PUT", "PATCH", "DELETE"]

BOOLEAN_ENV_OVERRIDES = {
    "record_api_queries": "RECORD_API_QUERIES",
    "ignore_certificate_errors": "IGNORE_CERTIFICATE_ERRORS",
    "allow_write_operations": "ALLOW_WRITE_OPERATIONS",
    "enforce_category_on_call": "ENFORCE_CATEGORY_ON_CALL",
}


class ServiceConfig(BaseModel):
    """A backend service and where to find its OpenAPI document."""

    name: str
    url: Optional[str] = None
    path: Optional[str] = None
    base_url: Optional[str] = None

    @model_validator(mode="after")
    def _check_source(self) -> "ServiceConfig":
        if not self.url and not self.path:
            raise ValueError(f"service '{self.name}' needs either 'url' or 'path'")
        return self


class GatewayConfig(BaseModel):
    """Represents the gateway configuration file."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    base_url: str = "https://localhost"
    mcp_port: int = 3000
    record_api_queries: bool = False
    ignore_certificate_errors: bool = Field(False, alias="ignore-certificate-errors")
    allow_write_operations: bool = False
    enforce_category_on_call: bool = False
    identity_path: str = "/api/gateway/v1/me/"
    log_dir: str = "logs"
    services: List[ServiceConfig] = Field(default_factory=list)
    categories: Dict[str, List[str]]

    @property
    def allowed_methods(self) -> List[str]:
        """HTTP methods a tool may use under the current write policy."""
        if self.allow_write_operations:
            return READ_METHODS + WRITE_METHODS
        return list(READ_METHODS)

    def apply_environment(self, environ: Optional[Mapping[str, str]] = None) -> "GatewayConfig":
        """Return a copy with environment variable overrides applied."""
        environ = os.environ if environ is None else environ
        updates = {}
        if environ.get("BASE_URL"):
            updates["base_url"] = environ["BASE_URL"]
        if environ.get("MCP_PORT"):
            try:
                updates["mcp_port"] = int(environ["MCP_PORT"])
            except ValueError:
                raise ConfigurationError(f"Invalid MCP_PORT: {environ['MCP_PORT']}")
        for field, variable in BOOLEAN_ENV_OVERRIDES.items():
            if variable in environ:
                updates[field] = environ[variable].lower() == "true"
        return self.model_copy(update=updates)


def load_config(
    path: Union[str, Path, None] = None, environ: Optional[Mapping[str, str]] = None
) -> GatewayConfig:
    """Load the gateway configuration.

    Args:
        path: Path to the YAML file, ``aap-mcp.yaml`` in the working directory by default
        environ: Environment used for overrides, ``os.environ`` by default

    Returns:
        The validated configuration

    Raises:
        ConfigurationError: If the file cannot be read or is invalid
    """
    config_path = Path(path) if path else Path.cwd() / DEFAULT_CONFIG_FILE
    try:
        with open(config_path) as f:
            content = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Error loading {config_path}: {str(e)}")

    if not isinstance(content, dict) or not content.get("categories"):
        raise ConfigurationError("Invalid configuration: missing categories section")

    try:
        config = GatewayConfig.model_validate(content)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {str(e)}")

    return config.apply_environment(environ)
