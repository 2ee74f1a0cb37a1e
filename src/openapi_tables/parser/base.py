"""Normalized data models for a resolved OpenAPI document.

The resolver converts raw document nodes into these models. Nothing
downstream of the resolver looks at the raw document again, so a
``SchemaNode`` tree never contains ``$ref`` or composition keywords.
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

ScalarKind = Literal["string", "integer", "number", "boolean"]


class ScalarNode(BaseModel):
    """A leaf value: string / integer / number / boolean, refined by format."""

    node: Literal["scalar"] = "scalar"
    kind: ScalarKind
    format: str | None = None
    nullable: bool = False


class ArrayNode(BaseModel):
    node: Literal["array"] = "array"
    items: "SchemaNode"
    nullable: bool = False


class ObjectNode(BaseModel):
    """An object with an ordered set of known properties.

    ``open`` is set when the object may carry fields beyond ``properties``
    (additionalProperties, untyped schemas, unions that could not be merged).
    """

    node: Literal["object"] = "object"
    properties: dict[str, "SchemaNode"] = {}
    required: set[str] = set()
    nullable: bool = False
    open: bool = False


SchemaNode = Annotated[Union[ScalarNode, ArrayNode, ObjectNode], Field(discriminator="node")]

ArrayNode.model_rebuild()
ObjectNode.model_rebuild()


class Param(BaseModel):
    """A single declared operation parameter."""

    name: str
    location: str  # path / query / header / cookie
    required: bool = False
    description: str = ""


class Endpoint(BaseModel):
    """A GET operation that can back a table."""

    path: str  # /users/{user_id}/posts
    method: str = "GET"
    operation_id: str | None = None
    summary: str = ""
    parameters: list[Param] = []
    response_schema: SchemaNode | None = None

    def path_params(self) -> list[Param]:
        return [p for p in self.parameters if p.location == "path"]

    def is_single_resource(self) -> bool:
        """True when the last path segment is a placeholder, e.g. ``/users/{id}``."""
        last = self.path.rstrip("/").rsplit("/", 1)[-1]
        return last.startswith("{") and last.endswith("}")


class ResolvedSpec(BaseModel):
    """Output of the resolver: endpoints, named schemas and server URL."""

    title: str = ""
    version: str = ""
    openapi: str = ""
    base_url: str | None = None
    endpoints: dict[str, Endpoint] = {}
    schemas: dict[str, SchemaNode] = {}
