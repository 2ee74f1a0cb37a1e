from pathlib import Path

import pytest

from openapi_tables.generator.mapper import (
    column_type,
    generate_tables,
    item_schema,
    manual_table,
    map_table,
    table_name_for,
    table_names,
    to_snake_case,
)
from openapi_tables.generator.models import Column
from openapi_tables.parser.base import ArrayNode, Endpoint, ObjectNode, Param, ScalarNode
from openapi_tables.parser.openapi import parse_openapi

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture(scope="module")
def spec():
    return parse_openapi(FIXTURES / "users.yaml")


@pytest.fixture(scope="module")
def tables(spec):
    return {t.name: t for t in generate_tables(spec)}


def _cols(table):
    return [(c.name, c.type, c.nullable) for c in table.columns]


def _endpoint(path: str, schema=None, params=None) -> Endpoint:
    return Endpoint(path=path, response_schema=schema, parameters=params or [])


class TestColumnType:
    @pytest.mark.parametrize(
        "node, expected",
        [
            (ScalarNode(kind="string"), "text"),
            (ScalarNode(kind="string", format="date"), "date"),
            (ScalarNode(kind="string", format="date-time"), "timestamptz"),
            (ScalarNode(kind="string", format="uuid"), "text"),
            (ScalarNode(kind="integer", format="int32"), "integer"),
            (ScalarNode(kind="integer", format="int64"), "bigint"),
            (ScalarNode(kind="integer"), "bigint"),
            (ScalarNode(kind="number", format="float"), "real"),
            (ScalarNode(kind="number", format="double"), "double precision"),
            (ScalarNode(kind="number"), "double precision"),
            (ScalarNode(kind="boolean"), "boolean"),
            (ArrayNode(items=ScalarNode(kind="string")), "jsonb"),
            (ObjectNode(properties={"a": ScalarNode(kind="string")}), "jsonb"),
        ],
    )
    def test_type_map(self, node, expected):
        assert column_type(node) == expected


class TestNames:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("createdAt", "created_at"),
            ("displayName", "display_name"),
            ("HTTPStatus", "http_status"),
            ("user-accounts", "user_accounts"),
            ("already_snake", "already_snake"),
            ("2fa", "_2fa"),
        ],
    )
    def test_to_snake_case(self, name, expected):
        assert to_snake_case(name) == expected

    def test_table_name_from_last_literal_segment(self):
        assert table_name_for("/api/v1/user-accounts") == "user_accounts"
        assert table_name_for("/users/{user_id}/posts") == "posts"
        assert table_name_for("/alerts/active", depth=2) == "alerts_active"

    def test_colliding_names_take_more_segments(self):
        names = table_names(["/v2/users", "/v1/users"])
        assert names == {"/v1/users": "users", "/v2/users": "v2_users"}

    def test_names_are_unique_without_more_segments(self):
        names = table_names(["/users", "/users/"])
        assert len(set(names.values())) == 2


class TestFixtureTables:
    def test_table_set(self, tables):
        assert sorted(tables) == ["active", "health", "pets", "posts", "users"]

    def test_single_resource_path_skipped(self, tables):
        assert all(t.endpoint != "/users/{id}" for t in tables.values())

    def test_users_container_detected(self, tables):
        users = tables["users"]
        assert users.endpoint == "/users"
        assert users.response_path == "/data"
        assert users.rowid_column == "id"
        assert users.catch_all_column is None

    def test_users_columns(self, tables):
        assert _cols(tables["users"]) == [
            ("id", "bigint", False),
            ("created_at", "timestamptz", True),
            ("email", "text", False),
            ("display_name", "text", True),
            ("birthday", "date", True),
            ("score", "real", True),
            ("active", "boolean", True),
            ("tags", "jsonb", True),
            ("address", "jsonb", True),
        ]

    def test_renamed_columns_keep_source_key(self, tables):
        users = tables["users"]
        assert users.column("created_at").source == "createdAt"
        assert users.column("display_name").key == "displayName"
        assert users.column("email").source is None

    def test_path_parameter_column(self, tables):
        posts = tables["posts"]
        assert _cols(posts) == [
            ("id", "bigint", True),
            ("title", "text", True),
            ("rating", "double precision", True),
            ("user_id", "text", True),
        ]
        assert posts.response_path is None

    def test_union_item_schema(self, tables):
        pets = tables["pets"]
        assert _cols(pets) == [
            ("name", "text", False),
            ("lives", "integer", True),
            ("breed", "text", True),
        ]
        assert pets.rowid_column is None

    def test_geojson_features(self, tables):
        active = tables["active"]
        assert active.response_path == "/features"
        assert _cols(active) == [("id", "text", True), ("properties", "jsonb", True)]

    def test_no_schema_gets_catch_all_only(self, tables):
        health = tables["health"]
        assert _cols(health) == [("attrs", "jsonb", True)]
        assert health.catch_all_column == "attrs"

    def test_object_path_selects_nested_schema(self, spec):
        table = map_table("active", spec.endpoints["/alerts/active"], object_path="/properties")
        assert table.column_names() == ["id", "event", "severity"]
        assert table.object_path == "/properties"
        assert table.response_path == "/features"

    def test_import_is_deterministic(self, spec):
        assert generate_tables(spec) == generate_tables(spec)

    def test_limit_to_and_except(self, spec):
        assert [t.name for t in generate_tables(spec, limit_to=["users", "pets"])] == ["pets", "users"]
        assert "users" not in [t.name for t in generate_tables(spec, exclude=["users"])]

    def test_custom_rowid_column(self, spec):
        tables = {t.name: t for t in generate_tables(spec, rowid_column="email")}
        assert tables["users"].rowid_column == "email"
        assert tables["posts"].rowid_column is None


class TestMapTable:
    def test_bare_object_response(self):
        schema = ObjectNode(properties={"status": ScalarNode(kind="string")})
        table = map_table("status", _endpoint("/status", schema))
        assert table.response_path == "/"
        assert table.column_names() == ["status"]

    def test_open_object_gets_catch_all(self):
        schema = ArrayNode(items=ObjectNode(properties={"id": ScalarNode(kind="string")}, open=True))
        table = map_table("things", _endpoint("/things", schema))
        assert table.column_names() == ["id", "attrs"]
        assert table.catch_all_column == "attrs"

    def test_catch_all_name_avoids_existing_field(self):
        schema = ArrayNode(items=ObjectNode(properties={"attrs": ScalarNode(kind="string")}, open=True))
        table = map_table("things", _endpoint("/things", schema))
        assert table.column_names() == ["attrs", "attrs_json"]
        assert table.catch_all_column == "attrs_json"

    def test_column_name_collision(self):
        schema = ArrayNode(
            items=ObjectNode(
                properties={"userId": ScalarNode(kind="string"), "user_id": ScalarNode(kind="integer")},
            )
        )
        table = map_table("things", _endpoint("/things", schema))
        assert table.column_names() == ["user_id", "user_id_2", "attrs"]
        assert table.column("user_id").source == "userId"

    def test_response_path_override(self):
        schema = ObjectNode(
            properties={
                "payload": ObjectNode(
                    properties={"rows": ArrayNode(items=ObjectNode(properties={"n": ScalarNode(kind="integer")}))}
                )
            }
        )
        table = map_table("things", _endpoint("/things", schema), response_path="/payload/rows")
        assert table.response_path == "/payload/rows"
        assert _cols(table) == [("n", "bigint", True)]

    def test_rowid_matched_case_insensitively(self):
        schema = ArrayNode(items=ObjectNode(properties={"ID": ScalarNode(kind="string")}))
        table = map_table("things", _endpoint("/things", schema))
        assert table.rowid_column == "id"

    def test_pagination_overrides_carried(self):
        table = map_table("things", _endpoint("/things"), cursor_path="/meta/next", page_size=50)
        assert table.cursor_path == "/meta/next"
        assert table.options()["page_size"] == "50"

    def test_item_schema_of_scalar_array(self):
        item, path = item_schema(ArrayNode(items=ScalarNode(kind="string")))
        assert item is None
        assert path is None

    def test_path_param_declared_on_endpoint(self):
        params = [Param(name="org", location="path", required=True)]
        table = map_table("members", _endpoint("/orgs/{org}/members", params=params))
        assert table.column_names() == ["org", "attrs"]

    def test_path_param_reuses_snake_cased_property(self):
        schema = ArrayNode(items=ObjectNode(properties={"userId": ScalarNode(kind="string"), "title": ScalarNode(kind="string")}))
        params = [Param(name="userId", location="path", required=True)]
        table = map_table("posts", _endpoint("/users/{userId}/posts", schema, params))
        assert table.column_names() == ["user_id", "title"]
        assert table.column("user_id").source == "userId"

    def test_path_param_column_is_snake_cased(self):
        params = [Param(name="orgId", location="path", required=True)]
        table = map_table("members", _endpoint("/orgs/{orgId}/members", params=params))
        assert table.column_names() == ["org_id", "attrs"]
        assert table.column("org_id").source == "orgId"


class TestManualTable:
    def test_manual_columns(self):
        cols = [Column(name="id", type="text"), Column(name="name", type="text")]
        table = manual_table("widgets", "/widgets", cols)
        assert table.column_names() == ["id", "name"]
        assert table.rowid_column == "id"
        assert table.catch_all_column is None

    def test_missing_placeholder_columns_added(self):
        table = manual_table("members", "/orgs/{org}/members", [Column(name="login", type="text")])
        assert table.column_names() == ["login", "org"]

    def test_options_passed_through(self):
        cols = [Column(name="code", type="text"), Column(name="attrs", type="jsonb")]
        table = manual_table("codes", "/codes", cols, rowid_column="code", response_path="/result")
        assert table.rowid_column == "code"
        assert table.catch_all_column == "attrs"
        assert table.response_path == "/result"

    def test_camel_case_placeholder_matches_existing_column(self):
        table = manual_table("posts", "/users/{userId}/posts", [Column(name="user_id", type="bigint")])
        assert table.column_names() == ["user_id"]

    def test_camel_case_placeholder_column_added(self):
        table = manual_table("posts", "/users/{userId}/posts", [Column(name="title", type="text")])
        assert table.column_names() == ["title", "user_id"]
        assert table.column("user_id").source == "userId"
