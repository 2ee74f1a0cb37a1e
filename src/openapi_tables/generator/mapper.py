"""Schema mapper: infers table definitions from resolved endpoint schemas."""

import logging
import re

from openapi_tables.parser.base import ArrayNode, Endpoint, ObjectNode, ResolvedSpec, ScalarNode, SchemaNode
from openapi_tables.parser.openapi import path_placeholders

from .models import CATCH_ALL_TYPE, Column, TableDefinition

logger = logging.getLogger(__name__)

DEFAULT_ROWID_COLUMN = "id"
CATCH_ALL_COLUMN = "attrs"

# Field names commonly used to wrap the row array of a collection response,
# checked in this order (GeoJSON "features" last).
CONTAINER_KEYS = ("data", "results", "items", "records", "entries", "features")

# (kind, format) -> column type; a format missing here falls back to (kind, None)
TYPE_MAP: dict[tuple[str, str | None], str] = {
    ("string", None): "text",
    ("string", "date"): "date",
    ("string", "date-time"): "timestamptz",
    ("integer", None): "bigint",
    ("integer", "int32"): "integer",
    ("integer", "int64"): "bigint",
    ("number", None): "double precision",
    ("number", "float"): "real",
    ("number", "double"): "double precision",
    ("boolean", None): "boolean",
}


def column_type(node: SchemaNode) -> str:
    """Map a schema node to its column type."""
    if isinstance(node, ScalarNode):
        return TYPE_MAP.get((node.kind, node.format), TYPE_MAP[(node.kind, None)])
    return CATCH_ALL_TYPE


def to_snake_case(name: str) -> str:
    s = re.sub(r"[^0-9a-zA-Z_]+", "_", name)
    s = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", s)
    s = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s)
    s = s.lower().rstrip("_") or "col"
    return f"_{s}" if s[0].isdigit() else s


def _placeholder_column(placeholder: str) -> Column:
    name = to_snake_case(placeholder)
    return Column(name=name, type="text", source=placeholder if placeholder != name else None)


def table_name_for(path: str, depth: int = 1) -> str:
    """Derive a table name from the last ``depth`` literal path segments.

    ``/api/v1/user-accounts`` -> ``user_accounts``.
    """
    segments = [s for s in path.strip("/").split("/") if s and not (s.startswith("{") and s.endswith("}"))]
    if not segments:
        return "root"
    return "_".join(to_snake_case(s) for s in segments[-depth:])


def item_schema(
    response_schema: SchemaNode | None,
    response_path: str | None = None,
    object_path: str | None = None,
) -> tuple[ObjectNode | None, str | None]:
    """Find the schema of one row inside a response schema.

    Returns the row object schema (None when it cannot be inferred) and the
    response path rows are read from, which is the given ``response_path`` or
    the container that was detected.
    """
    if response_schema is None:
        return None, response_path

    if response_path:
        container = _follow(response_schema, response_path)
    elif isinstance(response_schema, ObjectNode):
        container = response_schema
        response_path = "/"
        for key in CONTAINER_KEYS:
            prop = response_schema.properties.get(key)
            if isinstance(prop, ArrayNode):
                container, response_path = prop, f"/{key}"
                break
    else:
        container = response_schema

    item = container.items if isinstance(container, ArrayNode) else container
    if item is not None and object_path:
        item = _follow(item, object_path)
    if not isinstance(item, ObjectNode):
        return None, response_path
    return item, response_path


def _follow(node: SchemaNode, pointer: str) -> SchemaNode | None:
    for token in (t for t in pointer.split("/") if t):
        if isinstance(node, ObjectNode) and token in node.properties:
            node = node.properties[token]
        elif isinstance(node, ArrayNode) and token.isdigit():
            node = node.items
        else:
            return None
    return node


def map_table(
    name: str,
    endpoint: Endpoint,
    rowid_column: str = DEFAULT_ROWID_COLUMN,
    response_path: str | None = None,
    object_path: str | None = None,
    **pagination,
) -> TableDefinition:
    """Build the table definition for one endpoint.

    ``pagination`` may carry ``cursor_path``, ``cursor_param``,
    ``page_size_param`` and ``page_size`` overrides.
    """
    item, response_path = item_schema(endpoint.response_schema, response_path, object_path)

    columns: list[Column] = []
    seen: set[str] = set()
    collided = False
    for key, prop in (item.properties.items() if item is not None else ()):
        col_name = to_snake_case(key)
        if col_name in seen:
            collided = True
            n = 2
            while f"{col_name}_{n}" in seen:
                n += 1
            col_name = f"{col_name}_{n}"
        seen.add(col_name)
        columns.append(
            Column(
                name=col_name,
                type=column_type(prop),
                nullable=key not in item.required or prop.nullable,
                source=key if key != col_name else None,
            )
        )

    for param in endpoint.path_params():
        col_name = to_snake_case(param.name)
        if col_name not in seen:
            seen.add(col_name)
            columns.append(_placeholder_column(param.name))

    catch_all = None
    if item is None or item.open or collided:
        catch_all = CATCH_ALL_COLUMN if CATCH_ALL_COLUMN not in seen else f"{CATCH_ALL_COLUMN}_json"
        columns.append(Column(name=catch_all, type=CATCH_ALL_TYPE))

    rowid = next((c.name for c in columns if c.name.lower() == rowid_column.lower()), None)

    logger.debug("Mapped %s to table %s with %d columns", endpoint.path, name, len(columns))
    return TableDefinition(
        name=name,
        endpoint=endpoint.path,
        columns=tuple(columns),
        rowid_column=rowid,
        catch_all_column=catch_all,
        response_path=response_path,
        object_path=object_path,
        **pagination,
    )


def table_names(paths: list[str]) -> dict[str, str]:
    """Assign unique table names to endpoint paths (processed in sorted order)."""
    names: dict[str, str] = {}
    used: set[str] = set()
    for path in sorted(paths):
        literal_count = max(1, len([s for s in path.split("/") if s and not s.startswith("{")]))
        name = table_name_for(path)
        depth = 1
        while name in used and depth < literal_count:
            depth += 1
            name = table_name_for(path, depth)
        base, n = name, 2
        while name in used:
            name, n = f"{base}_{n}", n + 1
        used.add(name)
        names[path] = name
    return names


def generate_tables(
    spec: ResolvedSpec,
    limit_to: list[str] | None = None,
    exclude: list[str] | None = None,
    rowid_column: str = DEFAULT_ROWID_COLUMN,
) -> list[TableDefinition]:
    """Generate one table per collection endpoint of a resolved spec.

    ``limit_to`` / ``exclude`` filter by table name like
    ``IMPORT FOREIGN SCHEMA ... LIMIT TO (...)`` / ``EXCEPT (...)``.
    Single-resource paths such as ``/users/{id}`` are served through the
    row-id fast path of their collection table and get no table of their own.
    """
    paths = [p for p, ep in spec.endpoints.items() if not ep.is_single_resource()]
    names = table_names(paths)

    tables = []
    for path in sorted(paths):
        name = names[path]
        if limit_to is not None and name not in limit_to:
            continue
        if exclude is not None and name in exclude:
            continue
        endpoint = spec.endpoints[path]
        if endpoint.response_schema is None:
            logger.info("No response schema for %s; table %s gets a catch-all column only", path, name)
        tables.append(map_table(name, endpoint, rowid_column=rowid_column))
    return tables


def manual_table(name: str, endpoint: str, columns: list[Column], **options) -> TableDefinition:
    """Define a table by hand, skipping inference (undocumented endpoints)."""
    rowid_column = options.pop("rowid_column", None) or DEFAULT_ROWID_COLUMN
    rowid = next((c.name for c in columns if c.name.lower() == rowid_column.lower()), None)
    catch_all = next((c.name for c in columns if c.name in (CATCH_ALL_COLUMN, f"{CATCH_ALL_COLUMN}_json")), None)
    names = {c.name.lower() for c in columns}
    missing = [p for p in path_placeholders(endpoint) if p.lower() not in names and to_snake_case(p) not in names]
    if missing:
        columns = list(columns) + [_placeholder_column(p) for p in missing]
    return TableDefinition(
        name=name,
        endpoint=endpoint,
        columns=tuple(columns),
        rowid_column=rowid,
        catch_all_column=catch_all,
        **options,
    )
