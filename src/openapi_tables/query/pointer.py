"""Pointer paths into parsed JSON documents.

A path is a ``/``-separated sequence of object keys or array indices
evaluated from the document root (``/data/items``, ``/links/next``). ``~1``
and ``~0`` escape ``/`` and ``~`` inside keys. ``""`` and ``"/"`` both select
the root.
"""

from typing import Any

from openapi_tables.errors import PathNotFoundError


class _Missing:
    def __repr__(self):
        return "MISSING"

    def __bool__(self):
        return False


MISSING: Any = _Missing()


def split_pointer(pointer: str) -> list[str]:
    if pointer in ("", "/"):
        return []
    tokens = pointer.split("/")
    if tokens[0] == "":
        tokens = tokens[1:]
    return [t.replace("~1", "/").replace("~0", "~") for t in tokens]


def _step(node: Any, token: str) -> Any:
    if isinstance(node, dict):
        return node.get(token, MISSING)
    if isinstance(node, list) and token.isdigit():
        index = int(token)
        return node[index] if index < len(node) else MISSING
    return MISSING


def resolve_pointer(doc: Any, pointer: str) -> Any:
    """Evaluate ``pointer`` against ``doc``.

    Returns ``MISSING`` when only the last component is absent; an absent
    intermediate component raises ``PathNotFoundError``.
    """
    tokens = split_pointer(pointer)
    node = doc
    for i, token in enumerate(tokens):
        node = _step(node, token)
        if node is MISSING:
            if i == len(tokens) - 1:
                return MISSING
            raise PathNotFoundError(pointer)
    return node


def lookup(doc: Any, pointer: str) -> Any:
    """Lenient lookup: ``None`` when any component is absent or the value is null."""
    try:
        value = resolve_pointer(doc, pointer)
    except PathNotFoundError:
        return None
    return None if value is MISSING else value
