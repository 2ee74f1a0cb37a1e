"""CLI entry point for openapi-tables."""

import json
import logging
from pathlib import Path

import click

from openapi_tables.config import env_secret_lookup, load_config, parse_server_options, parse_table_options
from openapi_tables.errors import OpenApiTablesError
from openapi_tables.generator.ddl import render_tables
from openapi_tables.generator.mapper import CATCH_ALL_COLUMN, manual_table, map_table
from openapi_tables.generator.models import CATCH_ALL_TYPE, Column, TableDefinition
from openapi_tables.importer import import_schema, is_url, load_spec
from openapi_tables.query.request import PredicateSet, build_headers
from openapi_tables.query.scan import TableScanner


def _parse_where(values: tuple[str, ...]) -> dict[str, str]:
    """Parse ``col=value`` pairs from ``--where`` options."""
    equals = {}
    for item in values:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            raise click.BadParameter(f"expected column=value, got '{item}'", param_hint="--where")
        equals[name.strip()] = value
    return equals


def _resolve_table(config: dict, name: str, server) -> tuple[TableDefinition, str | None]:
    """Find table ``name`` in the config, importing the spec when needed."""
    tables = config.get("tables") or {}
    raw = dict(tables.get(name) or {})
    columns = raw.pop("columns", None)

    if columns:
        cols = [Column(name=c, type=t) for c, t in columns.items()]
        opts = parse_table_options(raw)
        return manual_table(name, opts.endpoint, cols, **opts.model_dump(exclude={"endpoint"})), None

    source = config.get("spec") or server.spec_url
    if source:
        doc, spec_url = load_spec(str(source), headers=build_headers(server))
        spec, generated = import_schema(doc, spec_url=spec_url)
        if raw:
            opts = parse_table_options(raw)
            endpoint = spec.endpoints.get(opts.endpoint)
            if endpoint is not None:
                overrides = opts.model_dump(exclude={"endpoint", "rowid_column"}, exclude_none=True)
                return map_table(name, endpoint, rowid_column=opts.rowid_column, **overrides), spec.base_url
        else:
            for table in generated:
                if table.name == name:
                    return table, spec.base_url

    if raw:
        opts = parse_table_options(raw)
        cols = [Column(name=CATCH_ALL_COLUMN, type=CATCH_ALL_TYPE)]
        return manual_table(name, opts.endpoint, cols, **opts.model_dump(exclude={"endpoint"})), None

    raise click.ClickException(f"Table '{name}' is not defined in the config or the spec")


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(verbose: bool):
    """openapi-tables: query REST APIs described by OpenAPI as tables."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command("import-schema")
@click.argument("source")
@click.option("--server", "server_name", required=True, help="Foreign server name used in the generated DDL.")
@click.option("--schema", default=None, help="Target schema for the generated tables.")
@click.option("--limit-to", multiple=True, help="Only import these tables.")
@click.option("--except", "exclude", multiple=True, help="Skip these tables.")
@click.option("--rowid-column", default="id", show_default=True, help="Column used for single-resource lookups.")
@click.option("--format", "fmt", default="ddl", type=click.Choice(["ddl", "json"]), help="Output format.")
@click.option("-o", "--output", default=None, type=click.Path(path_type=Path), help="Write output to a file.")
def import_schema_cmd(
    source: str,
    server_name: str,
    schema: str | None,
    limit_to: tuple[str, ...],
    exclude: tuple[str, ...],
    rowid_column: str,
    fmt: str,
    output: Path | None,
):
    """Generate table definitions from an OpenAPI document (path or URL)."""
    try:
        doc, spec_url = load_spec(source)
        spec, tables = import_schema(
            doc,
            spec_url=spec_url,
            limit_to=list(limit_to) or None,
            exclude=list(exclude) or None,
            rowid_column=rowid_column,
        )
    except OpenApiTablesError as e:
        raise click.ClickException(str(e)) from e

    if fmt == "json":
        result = json.dumps([t.model_dump(mode="json") for t in tables], indent=2)
    else:
        result = "\n\n".join(render_tables(tables, server_name, schema))

    if output is None:
        click.echo(result)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(result + "\n", encoding="utf-8")
    click.echo(f"Wrote {len(tables)} tables from '{spec.title}' to {output}")


@main.command()
@click.argument("source")
def tables(source: str):
    """List the tables an OpenAPI document would produce."""
    try:
        doc, spec_url = load_spec(source)
        spec, defs = import_schema(doc, spec_url=spec_url)
    except OpenApiTablesError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"{spec.title} {spec.version} ({spec.base_url or 'no server URL'})")
    for table in defs:
        rowid = f", rowid {table.rowid_column}" if table.rowid_column else ""
        click.echo(f"  {table.name:<24} {table.endpoint} ({len(table.columns)} columns{rowid})")


@main.command()
@click.argument("config_path", type=click.Path(exists=True, path_type=Path))
@click.argument("table_name")
@click.option("-w", "--where", "where", multiple=True, help="Equality filter, e.g. --where status=active.")
@click.option("--limit", default=None, type=click.IntRange(min=0), help="Maximum number of rows.")
def query(config_path: Path, table_name: str, where: tuple[str, ...], limit: int | None):
    """Query one table and print rows as JSON lines."""
    try:
        config = load_config(config_path)
        if config.get("spec") and not is_url(str(config["spec"])):
            config["spec"] = str(config_path.parent / str(config["spec"]))
        server = parse_server_options(config.get("server") or {}, env_secret_lookup)
        table, spec_base_url = _resolve_table(config, table_name, server)
        predicates = PredicateSet(equals=_parse_where(where), limit=limit)

        with TableScanner(server, base_url=spec_base_url) as scanner:
            for row in scanner.scan(table, predicates):
                click.echo(json.dumps(row, default=str))
    except OpenApiTablesError as e:
        raise click.ClickException(str(e)) from e
