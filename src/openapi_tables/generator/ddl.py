"""Render table definitions as ``CREATE FOREIGN TABLE`` statements."""

from .models import TableDefinition


def quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def render_table(table: TableDefinition, server: str, schema: str | None = None) -> str:
    """Return the DDL statement creating ``table`` on foreign server ``server``."""
    qualified = quote_ident(table.name)
    if schema:
        qualified = f"{quote_ident(schema)}.{qualified}"

    columns = ",\n".join(
        f"  {quote_ident(c.name)} {c.type}" + ("" if c.nullable else " not null") for c in table.columns
    )
    options = ",\n".join(f"    {k} {quote_literal(v)}" for k, v in table.options().items())
    return (
        f"create foreign table if not exists {qualified} (\n{columns}\n)\n"
        f"  server {quote_ident(server)}\n"
        f"  options (\n{options}\n  );"
    )


def render_tables(tables: list[TableDefinition], server: str, schema: str | None = None) -> list[str]:
    return [render_table(t, server, schema) for t in tables]
