import pytest

from openapi_tables.errors import PathNotFoundError
from openapi_tables.query.pointer import MISSING, lookup, resolve_pointer, split_pointer

DOC = {
    "data": [{"id": 1}, {"id": 2}],
    "meta": {"pagination": {"next": "https://x/?page=2"}, "total": None},
    "a/b": {"~key": "escaped"},
}


class TestSplitPointer:
    def test_root(self):
        assert split_pointer("") == []
        assert split_pointer("/") == []

    def test_escapes(self):
        assert split_pointer("/a~1b/~0key") == ["a/b", "~key"]


class TestResolvePointer:
    def test_root_selects_document(self):
        assert resolve_pointer(DOC, "/") is DOC

    def test_nested_key(self):
        assert resolve_pointer(DOC, "/meta/pagination/next") == "https://x/?page=2"

    def test_array_index(self):
        assert resolve_pointer(DOC, "/data/1/id") == 2

    def test_escaped_keys(self):
        assert resolve_pointer(DOC, "/a~1b/~0key") == "escaped"

    def test_missing_last_component(self):
        assert resolve_pointer(DOC, "/meta/cursor") is MISSING

    def test_explicit_null_is_not_missing(self):
        assert resolve_pointer(DOC, "/meta/total") is None

    def test_missing_intermediate_component(self):
        with pytest.raises(PathNotFoundError) as exc:
            resolve_pointer(DOC, "/links/next")
        assert exc.value.path == "/links/next"

    def test_index_out_of_range(self):
        assert resolve_pointer(DOC, "/data/5") is MISSING


class TestLookup:
    def test_present(self):
        assert lookup(DOC, "/data/0/id") == 1

    def test_absent_anywhere(self):
        assert lookup(DOC, "/links/next") is None
        assert lookup(DOC, "/meta/cursor") is None

    def test_missing_is_falsy(self):
        assert not MISSING
