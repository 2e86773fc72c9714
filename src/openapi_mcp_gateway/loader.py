"""
Loading of the OpenAPI documents of the configured services.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import httpx
import yaml

from .config import GatewayConfig, ServiceConfig
from .dereferencer import PathDereferencer
from .exceptions import DereferenceError, LoaderError
from .models import ServiceDocument

logger = logging.getLogger(__name__)


def parse_document(content: str, source: str = "") -> Dict[str, Any]:
    """Parse an OpenAPI document given as JSON or YAML text.

    Raises:
        LoaderError: If the content cannot be parsed
    """
    try:
        # Try JSON first
        return json.loads(content)
    except json.JSONDecodeError:
        try:
            return yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise LoaderError(f"Failed to parse specification {source}: {e}")


def validate_document(spec: Any, source: str = "") -> None:
    """Check the document is an OpenAPI 3.0 or 3.1 description.

    Raises:
        LoaderError: If the document is invalid
    """
    if not isinstance(spec, dict):
        raise LoaderError(f"Specification {source} must be a mapping")

    for field in ("openapi", "info", "paths"):
        if field not in spec:
            raise LoaderError(f"Specification {source} is missing required field: {field}")

    version = str(spec["openapi"])
    if not (version.startswith("3.0") or version.startswith("3.1")):
        raise LoaderError(f"Unsupported OpenAPI version in {source}: {version}")


class OpenAPILoader:
    """Reads or downloads each service's document and resolves its references."""

    def __init__(
        self,
        config: GatewayConfig,
        client: Optional[httpx.Client] = None,
        config_dir: Optional[Path] = None,
    ):
        self.config = config
        self.config_dir = config_dir or Path.cwd()
        self._client = client

    def _fetch(self, url: str) -> str:
        if self._client is not None:
            response = self._client.get(url)
        else:
            response = httpx.get(
                url,
                verify=not self.config.ignore_certificate_errors,
                follow_redirects=True,
            )
        response.raise_for_status()
        return response.text

    def load_service(self, service: ServiceConfig) -> ServiceDocument:
        """Load one service document.

        Raises:
            LoaderError: If the document cannot be read, parsed or dereferenced
        """
        if service.path:
            path = Path(service.path)
            if not path.is_absolute():
                path = self.config_dir / path
            source = str(path)
            try:
                content = path.read_text()
            except OSError as e:
                raise LoaderError(f"Failed to read specification file {source}: {e}")
            base_path = path.parent
        else:
            source = urljoin(self.config.base_url.rstrip("/") + "/", service.url)
            try:
                content = self._fetch(source)
            except httpx.HTTPError as e:
                raise LoaderError(f"Failed to download specification {source}: {e}")
            base_path = self.config_dir

        spec = parse_document(content, source)
        validate_document(spec, source)

        try:
            spec = PathDereferencer(
                spec,
                base_path=base_path,
                verify=not self.config.ignore_certificate_errors,
                client=self._client,
            ).dereference()
        except DereferenceError as e:
            raise LoaderError(f"Failed to dereference {source}: {e}")

        return ServiceDocument(
            service=service.name,
            base_url=(service.base_url or self.config.base_url).rstrip("/"),
            document=spec,
        )

    def load_all(self) -> List[ServiceDocument]:
        """Load every configured service, skipping the ones that fail."""
        documents = []
        for service in self.config.services:
            logger.info("Loading %s...", service.name)
            try:
                documents.append(self.load_service(service))
            except LoaderError as e:
                logger.error("Error loading OpenAPI spec for %s: %s", service.name, e)
        return documents
