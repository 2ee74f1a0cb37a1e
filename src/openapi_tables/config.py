"""Server and table options.

Options reach us either as strings (host option lists) or as native values
from a YAML config file; pydantic validates and converts both. Defaults live
here and are resolved once per query into ``ScanOptions`` which every
component receives explicitly.
"""

import json
import os
from pathlib import Path
from typing import Any, Callable

import yaml
from pydantic import BaseModel, ValidationError, field_validator

from openapi_tables.errors import ConfigError
from openapi_tables.generator.models import TableDefinition

SecretLookup = Callable[[str], str | None]

DEFAULT_API_KEY_HEADER = "Authorization"
DEFAULT_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE_PARAM = "limit"
DEFAULT_CURSOR_PARAM = "after"
DEFAULT_MAX_PAGE_SIZE = 1000
DEFAULT_MAX_RETRY_DELAY = 60.0


class ServerOptions(BaseModel):
    """Server-level options shared by every table of one API."""

    base_url: str = ""
    spec_url: str | None = None
    api_key: str | None = None
    api_key_id: str | None = None
    api_key_header: str = DEFAULT_API_KEY_HEADER
    api_key_prefix: str | None = None
    bearer_token: str | None = None
    bearer_token_id: str | None = None
    headers: dict[str, str] = {}
    user_agent: str | None = None
    accept: str | None = None
    page_size: int = DEFAULT_PAGE_SIZE
    page_size_param: str = DEFAULT_PAGE_SIZE_PARAM
    cursor_param: str = DEFAULT_CURSOR_PARAM
    max_page_size: int = DEFAULT_MAX_PAGE_SIZE
    max_retry_delay: float = DEFAULT_MAX_RETRY_DELAY
    timeout: float = 30.0

    @field_validator("headers", mode="before")
    @classmethod
    def _parse_headers(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                value = json.loads(value) if value.strip() else {}
            except json.JSONDecodeError as e:
                raise ValueError(f"headers must be a JSON object: {e}") from e
        if isinstance(value, dict):
            return {str(k): str(v) for k, v in value.items()}
        return value

    @field_validator("base_url")
    @classmethod
    def _strip_slash(cls, value: str) -> str:
        return value.rstrip("/")

    def with_secrets(self, lookup: SecretLookup | None) -> "ServerOptions":
        """Return a copy with ``api_key_id`` / ``bearer_token_id`` resolved."""
        update = {}
        for literal, secret_id in (("api_key", "api_key_id"), ("bearer_token", "bearer_token_id")):
            key = getattr(self, secret_id)
            if getattr(self, literal) or not key:
                continue
            value = lookup(key) if lookup else None
            if value is None:
                raise ConfigError(f"Secret '{key}' referenced by {secret_id} could not be resolved")
            update[literal] = value
        return self.model_copy(update=update) if update else self


class TableOptions(BaseModel):
    """Table-level options; pagination fields override the server defaults."""

    endpoint: str
    rowid_column: str = "id"
    response_path: str | None = None
    object_path: str | None = None
    cursor_path: str | None = None
    cursor_param: str | None = None
    page_size_param: str | None = None
    page_size: int | None = None


class ScanOptions(BaseModel):
    """Effective options for one query (server defaults + table overrides)."""

    base_url: str
    response_path: str | None = None
    object_path: str | None = None
    cursor_path: str | None = None
    cursor_param: str = DEFAULT_CURSOR_PARAM
    page_size_param: str = DEFAULT_PAGE_SIZE_PARAM
    page_size: int = DEFAULT_PAGE_SIZE
    max_page_size: int = DEFAULT_MAX_PAGE_SIZE
    max_retry_delay: float = DEFAULT_MAX_RETRY_DELAY


def parse_server_options(options: dict[str, Any], lookup: SecretLookup | None = None) -> ServerOptions:
    """Validate raw server options and resolve secret ids."""
    try:
        server = ServerOptions(**options)
    except ValidationError as e:
        raise ConfigError(f"Invalid server options: {e}") from e
    return server.with_secrets(lookup)


def parse_table_options(options: dict[str, Any]) -> TableOptions:
    try:
        return TableOptions(**options)
    except ValidationError as e:
        raise ConfigError(f"Invalid table options: {e}") from e


def scan_options(server: ServerOptions, table: TableDefinition, base_url: str | None = None) -> ScanOptions:
    """Resolve the options one query runs with."""
    url = (base_url or server.base_url).rstrip("/")
    if not url:
        raise ConfigError(f"No base_url configured for table '{table.name}' and the spec has no server URL")
    return ScanOptions(
        base_url=url,
        response_path=table.response_path,
        object_path=table.object_path,
        cursor_path=table.cursor_path or None,
        cursor_param=table.cursor_param or server.cursor_param,
        page_size_param=table.page_size_param if table.page_size_param is not None else server.page_size_param,
        page_size=table.page_size if table.page_size is not None else server.page_size,
        max_page_size=server.max_page_size,
        max_retry_delay=server.max_retry_delay,
    )


def env_secret_lookup(key: str) -> str | None:
    """Resolve a secret id from the environment (CLI default)."""
    return os.environ.get(key)


def load_config(file_path: Path) -> dict:
    """Load a YAML config with ``server`` options and ``tables``."""
    try:
        data = yaml.safe_load(file_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse config {file_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config {file_path} must be a mapping")
    return data
