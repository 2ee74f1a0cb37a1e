"""Run one query against a table end to end."""

import logging
import time
from typing import Any, Callable, Iterator

from openapi_tables.config import ServerOptions, scan_options
from openapi_tables.generator.mapper import to_snake_case
from openapi_tables.generator.models import TableDefinition
from openapi_tables.parser.openapi import path_placeholders
from openapi_tables.transport import HttpClient, Transport

from .extract import flatten_row
from .pagination import PageState, PaginationEngine
from .request import PredicateSet, RequestBuilder, build_headers, find_key

logger = logging.getLogger(__name__)


class TableScanner:
    """Executes queries for the tables of one server.

    The scanner only closes a transport it created itself.
    """

    def __init__(
        self,
        server: ServerOptions,
        transport: Transport | None = None,
        base_url: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.server = server
        self.base_url = server.base_url or base_url or ""
        self._owns_transport = transport is None
        self.transport = transport or HttpClient(timeout=server.timeout)
        self.headers = build_headers(server)
        self.sleep = sleep

    def scan(
        self,
        table: TableDefinition,
        predicates: PredicateSet | None = None,
        state: PageState | None = None,
    ) -> Iterator[dict[str, Any]]:
        """Yield flattened rows (``{column: value}``) of ``table``."""
        predicates = predicates or PredicateSet()
        options = scan_options(self.server, table, self.base_url)
        request = RequestBuilder(table, options.base_url, self.headers).build(predicates)
        logger.info("Scanning %s: %s", table.name, request.full_url)

        defaults = _path_values(table, predicates)
        engine = PaginationEngine(self.transport, options, sleep=self.sleep)
        for row in engine.rows(request, limit=predicates.limit, state=state):
            yield flatten_row(row, table, defaults)

    def close(self) -> None:
        if self._owns_transport:
            self.transport.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def _path_values(table: TableDefinition, predicates: PredicateSet) -> dict[str, Any]:
    """Predicate values of the endpoint's path placeholders, keyed by column name."""
    values = {}
    for name in path_placeholders(table.endpoint):
        column = table.column(name) or table.column(to_snake_case(name))
        key = find_key(predicates.equals, name)
        if column is not None and key is not None and predicates.equals[key] is not None:
            values[column.name] = predicates.equals[key]
    return values
