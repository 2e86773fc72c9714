"""
Resolution of ``$ref`` references in OpenAPI documents.

Handles references local to the document (``#/components/schemas/Pet``), to a
sibling file (``./common.yaml#/components/schemas/Error``) and to a URL
(``https://example.com/common.json#/components/schemas/Error``). Local
references found inside an external document resolve against that document.

A reference met again while it is still being resolved is left in place as a
``{"$ref": ...}`` node; the schema translator turns those into open objects.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx
import yaml

from .exceptions import DereferenceError

YAML_SUFFIXES = (".yaml", ".yml")


def _is_url(location: str) -> bool:
    return location.startswith(("http://", "https://"))


def _parse(text: str, location: str) -> Any:
    if location.endswith(YAML_SUFFIXES):
        return yaml.safe_load(text)
    return json.loads(text)


def resolve_pointer(document: Any, pointer: str) -> Any:
    """Follow a JSON pointer such as ``/components/schemas/Pet``.

    Args:
        document: The document to traverse
        pointer: The pointer; an empty pointer designates the whole document

    Returns:
        The referenced value

    Raises:
        DereferenceError: If the pointer is malformed or leads nowhere
    """
    if not pointer:
        return document
    if not pointer.startswith("/"):
        raise DereferenceError(f"Invalid JSON pointer: {pointer}")

    current = document
    for token in pointer[1:].split("/"):
        token = token.replace("~1", "/").replace("~0", "~")
        try:
            if isinstance(current, list):
                current = current[int(token)]
            else:
                current = current[token]
        except (KeyError, TypeError, IndexError, ValueError):
            raise DereferenceError(f"Could not resolve pointer {pointer}")
    return current


class PathDereferencer:
    """Inlines the references found in a document's paths and components."""

    def __init__(
        self,
        spec: Dict[str, Any],
        base_path: Optional[Union[str, Path]] = None,
        verify: bool = True,
        client: Optional[httpx.Client] = None,
    ):
        """Initialize the dereferencer.

        Args:
            spec: The OpenAPI document; it is not modified
            base_path: Directory relative file references are read from,
                the working directory by default
            verify: Whether to verify TLS certificates of URL references
            client: HTTP client for URL references; a one-off request is
                made when not given
        """
        self.spec = spec
        self.base_path = Path(base_path) if base_path else Path.cwd()
        self.verify = verify
        self.client = client
        self._documents: Dict[str, Any] = {}
        self._active: List[str] = []

    def _fetch(self, url: str) -> str:
        if self.client is not None:
            response = self.client.get(url)
        else:
            response = httpx.get(url, verify=self.verify, follow_redirects=True)
        response.raise_for_status()
        return response.text

    def _external_document(self, location: str) -> Any:
        """Load (once) the file or URL a reference points into.

        Raises:
            DereferenceError: If it cannot be read or parsed
        """
        if location not in self._documents:
            try:
                if _is_url(location):
                    text = self._fetch(location)
                else:
                    text = (self.base_path / location).read_text()
                self._documents[location] = _parse(text, location)
            except (OSError, httpx.HTTPError, ValueError, yaml.YAMLError) as e:
                raise DereferenceError(
                    f"Failed to load external reference {location}: {str(e)}"
                )
        return self._documents[location]

    def _inline(self, value: Any, origin: str) -> Any:
        if isinstance(value, list):
            return [self._inline(item, origin) for item in value]
        if not isinstance(value, dict):
            return value
        ref = value.get("$ref")
        if isinstance(ref, str):
            return self._inline_reference(value, ref, origin)
        return {key: self._inline(item, origin) for key, item in value.items()}

    def _inline_reference(self, node: Dict[str, Any], ref: str, origin: str) -> Any:
        """Replace a ``$ref`` node by its target.

        Args:
            node: The object holding the reference
            ref: The reference string
            origin: Location of the document ``node`` belongs to, "" for the root

        Returns:
            The resolved value, with the node's sibling keys kept
        """
        location, _, pointer = ref.partition("#")
        origin = location or origin
        ref_key = f"{origin}#{pointer}"
        if ref_key in self._active:
            return {"$ref": ref}

        document = self._external_document(origin) if origin else self.spec
        target = resolve_pointer(document, pointer)

        self._active.append(ref_key)
        try:
            target = self._inline(target, origin)
        finally:
            self._active.pop()

        if not isinstance(target, dict):
            return target
        # the target wins over sibling keys of the $ref
        merged = {key: item for key, item in node.items() if key != "$ref"}
        merged.update(target)
        return merged

    def dereference(self) -> Dict[str, Any]:
        """Return a copy of the document with paths and components inlined.

        Raises:
            DereferenceError: If any reference cannot be resolved
        """
        self._active.clear()
        result = dict(self.spec)
        for section in ("paths", "components"):
            if isinstance(result.get(section), dict):
                result[section] = self._inline(result[section], "")
        return result
