"""Schema import: OpenAPI document -> table definitions.

Import is read-only over the document; it never calls the described API.
"""

import logging
from pathlib import Path

from openapi_tables.generator.mapper import DEFAULT_ROWID_COLUMN, generate_tables
from openapi_tables.generator.models import TableDefinition
from openapi_tables.parser.base import ResolvedSpec
from openapi_tables.parser.detect import fetch_document, load_file
from openapi_tables.parser.openapi import SpecResolver
from openapi_tables.transport import HttpClient

logger = logging.getLogger(__name__)


def is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def load_spec(source: str, client: HttpClient | None = None, headers: dict[str, str] | None = None) -> tuple[dict, str | None]:
    """Load a document from a file path or URL; returns it with its URL (if any)."""
    if not is_url(source):
        return load_file(Path(source)), None
    if client is not None:
        return fetch_document(source, client, headers), source
    with HttpClient() as owned:
        return fetch_document(source, owned, headers), source


def import_schema(
    doc: dict,
    spec_url: str | None = None,
    limit_to: list[str] | None = None,
    exclude: list[str] | None = None,
    rowid_column: str = DEFAULT_ROWID_COLUMN,
) -> tuple[ResolvedSpec, list[TableDefinition]]:
    """Resolve ``doc`` and generate its tables."""
    spec = SpecResolver(doc, spec_url=spec_url).resolve()
    tables = generate_tables(spec, limit_to=limit_to, exclude=exclude, rowid_column=rowid_column)
    logger.info("Imported %d tables from '%s'", len(tables), spec.title or spec_url or "document")
    return spec, tables
