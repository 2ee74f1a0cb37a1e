"""Load an OpenAPI document and check its version."""

import json
from pathlib import Path

import yaml

from openapi_tables.errors import SpecParseError, UnsupportedVersionError


def load_document(text: str) -> dict:
    """Parse JSON or YAML text into a document mapping."""
    # JSON is a subset of YAML, so one loader covers both
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as e:
        try:
            doc = json.loads(text)
        except (json.JSONDecodeError, ValueError):
            raise SpecParseError(f"Failed to parse OpenAPI document: {e}") from e

    if not isinstance(doc, dict):
        raise SpecParseError("OpenAPI document must be a JSON/YAML object", "#")
    return doc


def load_file(file_path: Path) -> dict:
    """Read and parse a document from disk."""
    return load_document(file_path.read_text(encoding="utf-8"))


def fetch_document(url: str, client, headers: dict[str, str] | None = None) -> dict:
    """Download a document through ``client`` (see ``openapi_tables.transport``)."""
    resp = client.get(url, headers)
    if not 200 <= resp.status < 300:
        raise SpecParseError(f"Failed to fetch OpenAPI document from {url}: HTTP {resp.status}")
    return load_document(resp.text())


def detect_version(doc: dict) -> str:
    """Return the ``openapi`` version string, rejecting anything but 3.x."""
    if "openapi" in doc:
        version = str(doc["openapi"])
        if not version.startswith("3."):
            raise UnsupportedVersionError(f"Unsupported OpenAPI version '{version}'", "#/openapi")
        return version
    if "swagger" in doc:
        raise UnsupportedVersionError(
            f"Swagger {doc['swagger']} documents are not supported; convert to OpenAPI 3.x",
            "#/swagger",
        )
    raise SpecParseError("Document has no 'openapi' version field", "#")
