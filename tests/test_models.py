from openapi_tables.generator.models import Column, TableDefinition
from openapi_tables.parser.base import ArrayNode, Endpoint, ObjectNode, Param, ResolvedSpec, ScalarNode


class TestParam:
    def test_create_path_param(self):
        p = Param(name="id", location="path", required=True)
        assert p.name == "id"
        assert p.required is True
        assert p.description == ""


class TestSchemaNodes:
    def test_scalar_defaults(self):
        node = ScalarNode(kind="string")
        assert node.node == "scalar"
        assert node.format is None
        assert node.nullable is False

    def test_nested_roundtrip_keeps_node_types(self):
        obj = ObjectNode(
            properties={
                "id": ScalarNode(kind="integer", format="int64"),
                "tags": ArrayNode(items=ScalarNode(kind="string")),
                "owner": ObjectNode(properties={"name": ScalarNode(kind="string")}),
            },
            required={"id"},
        )
        restored = ObjectNode(**obj.model_dump())
        assert restored == obj
        assert isinstance(restored.properties["tags"], ArrayNode)
        assert isinstance(restored.properties["owner"], ObjectNode)


class TestEndpoint:
    def test_create_minimal_endpoint(self):
        ep = Endpoint(path="/api/users")
        assert ep.method == "GET"
        assert ep.parameters == []
        assert ep.response_schema is None

    def test_path_params(self):
        ep = Endpoint(
            path="/orgs/{org}/members",
            parameters=[
                Param(name="org", location="path", required=True),
                Param(name="role", location="query"),
            ],
        )
        assert [p.name for p in ep.path_params()] == ["org"]

    def test_single_resource(self):
        assert Endpoint(path="/users/{id}").is_single_resource()
        assert Endpoint(path="/users/{id}/").is_single_resource()
        assert not Endpoint(path="/users/{id}/posts").is_single_resource()

    def test_resolved_spec_serialization_roundtrip(self):
        spec = ResolvedSpec(
            title="T",
            endpoints={"/pets": Endpoint(path="/pets", response_schema=ArrayNode(items=ObjectNode()))},
        )
        restored = ResolvedSpec(**spec.model_dump())
        assert isinstance(restored.endpoints["/pets"].response_schema, ArrayNode)


class TestTableDefinition:
    TABLE = TableDefinition(
        name="users",
        endpoint="/users",
        columns=(Column(name="id", type="bigint"), Column(name="display_name", type="text", source="displayName")),
        rowid_column="id",
        page_size=50,
    )

    def test_column_lookup_is_case_insensitive(self):
        assert self.TABLE.column("ID").name == "id"
        assert self.TABLE.column("missing") is None

    def test_column_key(self):
        assert self.TABLE.column("display_name").key == "displayName"
        assert self.TABLE.column("id").key == "id"

    def test_options(self):
        assert self.TABLE.options() == {"endpoint": "/users", "rowid_column": "id", "page_size": "50"}

    def test_json_dump(self):
        data = self.TABLE.model_dump(mode="json")
        assert data["columns"][1] == {"name": "display_name", "type": "text", "nullable": True, "source": "displayName"}
