"""Extract rows from response bodies and coerce them to column types."""

import json
import logging
import math
import re
from datetime import date, datetime, timezone
from typing import Any

from openapi_tables.errors import NoArrayFoundError, PathNotFoundError, RowNotObjectError
from openapi_tables.generator.mapper import CONTAINER_KEYS
from openapi_tables.generator.models import CATCH_ALL_TYPE, Column, TableDefinition

from .pointer import MISSING, resolve_pointer

logger = logging.getLogger(__name__)

INT32_RANGE = (-(2**31), 2**31 - 1)


class ResponseExtractor:
    """Selects row objects out of one response body.

    ``response_path`` selects the array of row candidates; without it the body
    itself or one of the conventional container fields is used.
    ``object_path`` selects a sub-object inside each candidate (GeoJSON
    ``/properties``).
    """

    def __init__(self, response_path: str | None = None, object_path: str | None = None):
        self.response_path = response_path
        self.object_path = object_path

    def candidates(self, body: Any, single: bool = False) -> list:
        """Return the row candidates of a page.

        ``single`` is set for single-resource responses, where an object body
        is one row rather than a wrapper to search.
        """
        if self.response_path:
            data = resolve_pointer(body, self.response_path)
            if data is MISSING:
                if not single:
                    raise PathNotFoundError(self.response_path)
                data = body
        elif single:
            data = _container(body)
            data = body if data is None else data
        else:
            data = body if isinstance(body, list) else _container(body)
            if data is None:
                raise NoArrayFoundError(
                    "No row array found in response; set response_path "
                    f"(looked for {', '.join(CONTAINER_KEYS)})"
                )

        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            return [data]
        if data is None:
            return []
        raise NoArrayFoundError(f"Response data at '{self.response_path or '/'}' is {type(data).__name__}, not an array")

    def rows(self, body: Any, single: bool = False) -> list[dict]:
        """Return the row objects of a page, applying ``object_path``."""
        result = []
        for candidate in self.candidates(body, single):
            row = candidate
            if self.object_path and isinstance(candidate, (dict, list)):
                row = resolve_pointer(candidate, self.object_path)
                if row is MISSING:
                    row = candidate
            if not isinstance(row, dict):
                raise RowNotObjectError(_json_type(row))
            result.append(row)
        return result


def _container(body: Any):
    if not isinstance(body, dict):
        return None
    for key in CONTAINER_KEYS:
        value = body.get(key)
        if isinstance(value, (list, dict)):
            return value
    return None


def _json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return "array" if isinstance(value, list) else type(value).__name__


# --- cell coercion -----------------------------------------------------------


def to_camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p[:1].upper() + p[1:] for p in rest)


def find_value(row: dict, column: Column) -> Any:
    """Look a column up by source key, name, camelCase name, then case-insensitively."""
    for key in (column.key, column.name, to_camel_case(column.name)):
        if key in row:
            return row[key]
    lowered = column.name.lower()
    for key, value in row.items():
        if key.lower() == lowered:
            return value
    return None


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("boolean is not an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"{value} is not integral")
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if re.fullmatch(r"[+-]?\d+", text):
            return int(text)
        number = float(text)
        if not number.is_integer():
            raise ValueError(f"{value!r} is not integral")
        return int(number)
    raise TypeError(f"cannot convert {type(value).__name__} to integer")


def _to_float(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    if isinstance(value, (int, float)):
        try:
            return float(value)
        except OverflowError:
            raise ValueError(f"{value} is out of range for a float") from None
    if isinstance(value, str):
        number = float(value.strip())
        if math.isnan(number) or math.isinf(number):
            raise ValueError(f"{value!r} is not finite")
        return number
    raise TypeError(f"cannot convert {type(value).__name__} to number")


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise ValueError(f"{value!r} is not a boolean")


def _to_datetime(value: Any) -> datetime:
    if not isinstance(value, str):
        raise TypeError(f"cannot convert {type(value).__name__} to timestamp")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _to_date(value: Any) -> date:
    if isinstance(value, str) and re.fullmatch(r"\d{4}-\d{2}-\d{2}", value.strip()):
        return date.fromisoformat(value.strip())
    return _to_datetime(value).date()


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"))


def coerce(value: Any, column_type: str) -> Any:
    """Convert one JSON value to the Python value of ``column_type``.

    Raises ``ValueError``/``TypeError`` when the value does not fit.
    """
    if value is None:
        return None
    if column_type == "integer":
        number = _to_int(value)
        if not INT32_RANGE[0] <= number <= INT32_RANGE[1]:
            raise ValueError(f"{number} is out of range for integer")
        return number
    if column_type in ("bigint", "smallint"):
        return _to_int(value)
    if column_type in ("real", "double precision", "numeric"):
        return _to_float(value)
    if column_type == "boolean":
        return _to_bool(value)
    if column_type == "date":
        return _to_date(value)
    if column_type in ("timestamptz", "timestamp"):
        parsed = _to_datetime(value)
        return parsed if column_type == "timestamptz" else parsed.replace(tzinfo=None)
    if column_type in (CATCH_ALL_TYPE, "json"):
        return value
    return _to_text(value)


def flatten_row(row: dict, table: TableDefinition, defaults: dict[str, Any] | None = None) -> dict[str, Any]:
    """Turn one row object into ``{column: value}`` for the table's columns.

    A field that cannot be coerced becomes ``None`` instead of failing the row.
    ``defaults`` fills columns the row has no value for (path parameters the
    query was filtered on, which APIs rarely repeat in the body).
    """
    cells = {}
    for column in table.columns:
        if column.name == table.catch_all_column:
            cells[column.name] = row
            continue
        value = find_value(row, column)
        if value is None and defaults:
            value = defaults.get(column.name)
        try:
            cells[column.name] = coerce(value, column.type)
        except (ValueError, TypeError, OverflowError) as e:
            logger.debug("Column %s.%s: %s; using null", table.name, column.name, e)
            cells[column.name] = None
    return cells
