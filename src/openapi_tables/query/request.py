"""Translate equality predicates into one API request."""

import re
from typing import Any
from urllib.parse import quote, urlencode

from pydantic import BaseModel

from openapi_tables.config import ServerOptions
from openapi_tables.errors import MissingPathParameterError
from openapi_tables.generator.mapper import to_snake_case
from openapi_tables.generator.models import TableDefinition

DEFAULT_USER_AGENT = "openapi-tables/0.1"
DEFAULT_ACCEPT = "application/json"

_PLACEHOLDER = re.compile(r"\{([^{}]+)\}")


class PredicateSet(BaseModel):
    """Equality constraints pushed down by the planner, plus an optional LIMIT.

    Only ``column = value`` constraints arrive here; the planner keeps every
    other operator for itself.
    """

    equals: dict[str, Any] = {}
    limit: int | None = None


class RequestDescriptor(BaseModel):
    method: str = "GET"
    url: str
    params: list[tuple[str, str]] = []
    headers: dict[str, str] = {}
    single_resource: bool = False

    @property
    def full_url(self) -> str:
        if not self.params:
            return self.url
        sep = "&" if "?" in self.url else "?"
        return f"{self.url}{sep}{urlencode(self.params, quote_via=quote)}"

    def with_params(self, extra: list[tuple[str, str]]) -> "RequestDescriptor":
        return self.model_copy(update={"params": self.params + extra})

    def with_url(self, url: str) -> "RequestDescriptor":
        """The request for a next-page URL taken verbatim from a response."""
        return self.model_copy(update={"url": url, "params": []})


def format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_headers(server: ServerOptions) -> dict[str, str]:
    """Request headers: defaults < custom headers < auth < accept/user_agent."""
    headers = {"user-agent": DEFAULT_USER_AGENT, "accept": DEFAULT_ACCEPT}
    headers.update({k.lower(): v for k, v in server.headers.items()})

    if server.api_key:
        header = server.api_key_header or "Authorization"
        prefix = server.api_key_prefix
        if prefix:
            value = f"{prefix} {server.api_key}"
        elif header.lower() == "authorization":
            value = f"Bearer {server.api_key}"
        else:
            value = server.api_key
        headers[header.lower()] = value

    if server.bearer_token:
        headers["authorization"] = f"Bearer {server.bearer_token}"

    if server.user_agent:
        headers["user-agent"] = server.user_agent
    if server.accept:
        headers["accept"] = server.accept
    return headers


class RequestBuilder:
    """Builds the first request of a query for one table."""

    def __init__(self, table: TableDefinition, base_url: str, headers: dict[str, str] | None = None):
        self.table = table
        self.base_url = base_url.rstrip("/")
        self.headers = headers or {}

    def build(self, predicates: PredicateSet) -> RequestDescriptor:
        remaining = dict(predicates.equals)
        path = self._substitute(self.table.endpoint, remaining)

        rowid = self.table.rowid_column
        rowid_key = find_key(remaining, rowid) if rowid else None
        if rowid_key is not None and remaining[rowid_key] is not None:
            value = remaining.pop(rowid_key)
            return RequestDescriptor(
                url=f"{self.base_url}{path.rstrip('/')}/{quote(format_value(value), safe='')}",
                headers=dict(self.headers),
                single_resource=True,
            )

        params = [(name, format_value(value)) for name, value in remaining.items() if value is not None]
        return RequestDescriptor(url=f"{self.base_url}{path}", params=params, headers=dict(self.headers))

    def _substitute(self, template: str, remaining: dict[str, Any]) -> str:
        def replace(match: re.Match) -> str:
            name = match.group(1)
            key = find_key(remaining, name)
            if key is None or remaining[key] is None:
                raise MissingPathParameterError(name, template)
            return quote(format_value(remaining.pop(key)), safe="")

        return _PLACEHOLDER.sub(replace, template)


def find_key(values: dict[str, Any], name: str) -> str | None:
    """Key of ``values`` matching ``name`` exactly, ignoring case, or as its snake_case column."""
    if name in values:
        return name
    wanted = {name.lower(), to_snake_case(name)}
    return next((k for k in values if k.lower() in wanted), None)
