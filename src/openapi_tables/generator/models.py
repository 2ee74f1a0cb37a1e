"""Table definitions produced by schema import."""

from pydantic import BaseModel, ConfigDict

CATCH_ALL_TYPE = "jsonb"


class Column(BaseModel):
    """One table column; ``source`` is the JSON key the value is read from."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: str
    nullable: bool = True
    source: str | None = None

    @property
    def key(self) -> str:
        return self.source or self.name


class TableDefinition(BaseModel):
    """A foreign table backed by one API endpoint.

    Pagination fields left as ``None`` fall back to the server defaults when a
    query runs.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    endpoint: str
    columns: tuple[Column, ...] = ()
    rowid_column: str | None = None
    catch_all_column: str | None = None
    response_path: str | None = None
    object_path: str | None = None
    cursor_path: str | None = None
    cursor_param: str | None = None
    page_size_param: str | None = None
    page_size: int | None = None

    def column(self, name: str) -> Column | None:
        lowered = name.lower()
        for col in self.columns:
            if col.name.lower() == lowered:
                return col
        return None

    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def options(self) -> dict[str, str]:
        """Table options as they appear in ``CREATE FOREIGN TABLE ... OPTIONS``."""
        opts = {"endpoint": self.endpoint}
        if self.rowid_column:
            opts["rowid_column"] = self.rowid_column
        for key in ("response_path", "object_path", "cursor_path", "cursor_param", "page_size_param", "page_size"):
            value = getattr(self, key)
            if value is not None:
                opts[key] = str(value)
        return opts
