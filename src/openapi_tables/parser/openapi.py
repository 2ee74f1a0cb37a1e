"""OpenAPI 3.x document resolver.

Resolves ``$ref`` pointers and ``allOf``/``oneOf``/``anyOf`` composition into
``SchemaNode`` trees and extracts the GET endpoints that can back tables.
"""

import logging
import re
from pathlib import Path
from urllib.parse import urljoin

from openapi_tables.errors import (
    CyclicReferenceError,
    InvalidCompositionError,
    SpecParseError,
    UnresolvedReferenceError,
)

from .base import ArrayNode, Endpoint, ObjectNode, Param, ResolvedSpec, ScalarNode, SchemaNode
from .detect import detect_version, load_file

logger = logging.getLogger(__name__)

SCALAR_KINDS = ("string", "integer", "number", "boolean")
RESPONSE_CODES = ("200", "201", "default")
SCHEMA_KEYWORDS = {"$ref", "type", "properties", "items", "allOf", "oneOf", "anyOf", "additionalProperties"}

_PLACEHOLDER = re.compile(r"\{([^{}]+)\}")


def escape_pointer(token: str) -> str:
    return token.replace("~", "~0").replace("/", "~1")


def unescape_pointer(token: str) -> str:
    return token.replace("~1", "/").replace("~0", "~")


def path_placeholders(template: str) -> list[str]:
    """Return placeholder names of a path template in order of appearance."""
    return _PLACEHOLDER.findall(template)


class SpecResolver:
    """Resolves one parsed OpenAPI document.

    A resolver instance memoises every named schema it resolves, so resolving
    all endpoints of a large document visits each component schema once.
    """

    def __init__(self, doc: dict, spec_url: str | None = None):
        self.doc = doc
        self.spec_url = spec_url
        self._cache: dict[str, SchemaNode] = {}
        self._stack: list[str] = []

    def resolve(self) -> ResolvedSpec:
        """Resolve the whole document into endpoints and named schemas."""
        version = detect_version(self.doc)
        info = self.doc.get("info") or {}
        if not isinstance(info, dict):
            raise SpecParseError("'info' must be an object", "#/info")

        schemas = {}
        components = self.doc.get("components") or {}
        for name in (components.get("schemas") or {}):
            schemas[name] = self.resolve_ref(f"#/components/schemas/{escape_pointer(name)}", "#/components/schemas")

        return ResolvedSpec(
            title=str(info.get("title", "")),
            version=str(info.get("version", "")),
            openapi=version,
            base_url=self.base_url(),
            endpoints=self.endpoints(),
            schemas=schemas,
        )

    # --- servers ----------------------------------------------------------

    def base_url(self) -> str | None:
        """First server URL with variables set to their defaults."""
        servers = self.doc.get("servers") or []
        if not servers or not isinstance(servers[0], dict) or not servers[0].get("url"):
            return None
        server = servers[0]
        url = str(server["url"])
        for name, var in (server.get("variables") or {}).items():
            if isinstance(var, dict) and "default" in var:
                url = url.replace("{" + name + "}", str(var["default"]))
        if self.spec_url and not re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", url):
            url = urljoin(self.spec_url, url)
        return url.rstrip("/")

    # --- endpoints --------------------------------------------------------

    def endpoints(self) -> dict[str, Endpoint]:
        paths = self.doc.get("paths") or {}
        if not isinstance(paths, dict):
            raise SpecParseError("'paths' must be an object", "#/paths")

        result = {}
        for path in sorted(paths):
            item_path = f"#/paths/{escape_pointer(path)}"
            item, item_path = self._deref(paths[path], item_path)
            if not isinstance(item, dict):
                raise SpecParseError("Path item must be an object", item_path)
            op = item.get("get")
            if not op:
                continue
            if not isinstance(op, dict):
                raise SpecParseError("Operation must be an object", f"{item_path}/get")
            result[path] = self._endpoint(path, item, op, item_path)
        return result

    def _endpoint(self, path: str, item: dict, op: dict, item_path: str) -> Endpoint:
        params = self._parameters(item.get("parameters") or [], f"{item_path}/parameters")
        for p in self._parameters(op.get("parameters") or [], f"{item_path}/get/parameters"):
            params = [q for q in params if (q.name, q.location) != (p.name, p.location)] + [p]

        declared = {p.name for p in params if p.location == "path"}
        for name in path_placeholders(path):
            if name not in declared:
                params.append(Param(name=name, location="path", required=True))

        return Endpoint(
            path=path,
            operation_id=op.get("operationId"),
            summary=op.get("summary") or op.get("description") or "",
            parameters=params,
            response_schema=self._response_schema(op, f"{item_path}/get"),
        )

    def _parameters(self, raw_params: list, path: str) -> list[Param]:
        if not isinstance(raw_params, list):
            raise SpecParseError("'parameters' must be a list", path)
        result = []
        for i, raw in enumerate(raw_params):
            param, param_path = self._deref(raw, f"{path}/{i}")
            if not isinstance(param, dict) or "name" not in param or "in" not in param:
                raise SpecParseError("Parameter needs 'name' and 'in'", param_path)
            location = param["in"]
            result.append(
                Param(
                    name=str(param["name"]),
                    location=location,
                    required=bool(param.get("required", location == "path")),
                    description=param.get("description", ""),
                )
            )
        return result

    def _response_schema(self, op: dict, op_path: str) -> SchemaNode | None:
        raw_responses = op.get("responses") or {}
        if not isinstance(raw_responses, dict):
            raise SpecParseError("'responses' must be an object", f"{op_path}/responses")
        responses = {str(code): resp for code, resp in raw_responses.items()}
        candidates = [c for c in RESPONSE_CODES if c in responses]
        candidates += sorted(c for c in responses if c.startswith("2") and c not in candidates)
        if not candidates:
            return None

        code = candidates[0]
        resp, resp_path = self._deref(responses[code], f"{op_path}/responses/{code}")
        if resp is None:
            return None
        if not isinstance(resp, dict):
            raise SpecParseError("Response must be an object", resp_path)
        content = resp.get("content") or {}
        if not isinstance(content, dict):
            raise SpecParseError("'content' must be an object", f"{resp_path}/content")
        if not content:
            return None

        media = _pick_media_type(content)
        media_path = f"{resp_path}/content/{escape_pointer(media)}"
        media_obj = content[media] or {}
        if not isinstance(media_obj, dict):
            raise SpecParseError("Media type must be an object", media_path)
        schema = media_obj.get("schema")
        if schema is None:
            return None
        return self.resolve_schema(schema, f"{media_path}/schema")

    # --- schemas ----------------------------------------------------------

    def resolve_ref(self, ref: str, path: str) -> SchemaNode:
        """Resolve a ``$ref`` to a schema, detecting reference cycles."""
        if ref in self._cache:
            return self._cache[ref]
        if ref in self._stack:
            chain = self._stack[self._stack.index(ref):] + [ref]
            raise CyclicReferenceError(chain, path)

        target = self._lookup(ref, path)
        self._stack.append(ref)
        try:
            node = self.resolve_schema(target, ref)
        finally:
            self._stack.pop()
        self._cache[ref] = node
        return node

    def resolve_schema(self, raw, path: str) -> SchemaNode:
        """Convert a raw schema object into a ``SchemaNode``."""
        if not isinstance(raw, dict):
            raise SpecParseError("Schema must be an object", path)

        if "$ref" in raw:
            node = self.resolve_ref(raw["$ref"], path)
            if raw.get("nullable") and not node.nullable:
                node = node.model_copy(update={"nullable": True})
            return node
        if "allOf" in raw:
            return self._merge_all_of(raw, path)
        for key in ("oneOf", "anyOf"):
            if key in raw:
                return self._merge_union(raw, key, path)

        nullable = bool(raw.get("nullable", False))
        schema_type = raw.get("type")
        if isinstance(schema_type, list):
            nullable = nullable or "null" in schema_type
            types = [t for t in schema_type if t != "null"]
            schema_type = types[0] if len(types) == 1 else ("mixed" if types else None)

        if schema_type == "array":
            items = raw.get("items")
            item_node = self.resolve_schema(items, f"{path}/items") if items else ObjectNode(open=True)
            return ArrayNode(items=item_node, nullable=nullable)
        if schema_type in SCALAR_KINDS:
            return ScalarNode(kind=schema_type, format=raw.get("format"), nullable=nullable)
        if schema_type in (None, "object"):
            return self._object(raw, path, nullable)

        # "mixed", "null" or a type name we do not know: keep it opaque
        logger.debug("Treating schema type %r at %s as opaque JSON", schema_type, path)
        return ObjectNode(open=True, nullable=True)

    def _object(self, raw: dict, path: str, nullable: bool) -> ObjectNode:
        props = raw.get("properties") or {}
        if not isinstance(props, dict):
            raise SpecParseError("'properties' must be an object", f"{path}/properties")
        properties = {
            name: self.resolve_schema(prop, f"{path}/properties/{escape_pointer(name)}")
            for name, prop in props.items()
        }
        required = raw.get("required") or []
        if not isinstance(required, list) or not all(isinstance(r, str) for r in required):
            raise SpecParseError("'required' must be a list of property names", f"{path}/required")
        extra = raw.get("additionalProperties")
        return ObjectNode(
            properties=properties,
            required=set(required) & set(properties),
            nullable=nullable,
            open=bool(extra) or not properties,
        )

    def _merge_all_of(self, raw: dict, path: str) -> ObjectNode:
        members = [(m, f"{path}/allOf/{i}") for i, m in enumerate(raw["allOf"])]
        sibling = {k: v for k, v in raw.items() if k != "allOf"}
        if "properties" in sibling:
            members.append((sibling, path))

        properties: dict[str, SchemaNode] = {}
        required: set[str] = set()
        is_open = False
        for member, member_path in members:
            if isinstance(member, dict) and not SCHEMA_KEYWORDS & member.keys():
                continue  # annotation-only member (description, example, ...)
            node = self.resolve_schema(member, member_path)
            if not isinstance(node, ObjectNode):
                raise InvalidCompositionError(f"allOf member is {node.node}, not an object", member_path)
            properties.update(node.properties)
            required |= node.required
            is_open = is_open or node.open

        return ObjectNode(
            properties=properties,
            required=required,
            nullable=bool(raw.get("nullable", False)),
            open=is_open or not properties,
        )

    def _merge_union(self, raw: dict, key: str, path: str) -> SchemaNode:
        branches = [self.resolve_schema(b, f"{path}/{key}/{i}") for i, b in enumerate(raw[key])]
        objects = [b for b in branches if isinstance(b, ObjectNode)]
        others = [b for b in branches if not isinstance(b, ObjectNode)]

        if not objects:
            kinds = {b.kind for b in others if isinstance(b, ScalarNode)}
            if len(kinds) == 1 and all(isinstance(b, ScalarNode) for b in others):
                formats = {b.format for b in others}
                return ScalarNode(kind=kinds.pop(), format=formats.pop() if len(formats) == 1 else None, nullable=True)
            return ObjectNode(open=True, nullable=True)

        properties: dict[str, SchemaNode] = {}
        for obj in objects:
            for name, prop in obj.properties.items():
                if name not in properties:
                    properties[name] = prop
                elif not _same_shape(properties[name], prop):
                    properties[name] = ObjectNode(open=True, nullable=True)

        required = set.intersection(*(o.required for o in objects)) if not others else set()
        properties = {
            name: prop if name in required or prop.nullable else prop.model_copy(update={"nullable": True})
            for name, prop in properties.items()
        }
        return ObjectNode(
            properties=properties,
            required=required,
            nullable=bool(raw.get("nullable", False)) or bool(others and any(b.nullable for b in others)),
            open=bool(others) or any(o.open for o in objects) or not properties,
        )

    # --- references -------------------------------------------------------

    def _lookup(self, ref: str, path: str):
        if not isinstance(ref, str) or not ref.startswith("#"):
            raise UnresolvedReferenceError(str(ref), path)
        node = self.doc
        for token in ref[1:].split("/")[1:]:
            token = unescape_pointer(token)
            if isinstance(node, dict) and token in node:
                node = node[token]
            elif isinstance(node, list) and token.isdigit() and int(token) < len(node):
                node = node[int(token)]
            else:
                raise UnresolvedReferenceError(ref, path)
        return node

    def _deref(self, raw, path: str):
        """Follow ``$ref`` chains of non-schema objects (parameters, responses)."""
        seen = []
        while isinstance(raw, dict) and "$ref" in raw:
            ref = raw["$ref"]
            if ref in seen:
                raise CyclicReferenceError(seen + [ref], path)
            seen.append(ref)
            raw = self._lookup(ref, path)
            path = ref
        return raw, path


def _pick_media_type(content: dict) -> str:
    if "application/json" in content:
        return "application/json"
    for media in content:
        if media.endswith("json"):
            return media
    return next(iter(content))


def _same_shape(a: SchemaNode, b: SchemaNode) -> bool:
    if a.node != b.node:
        return False
    if isinstance(a, ScalarNode):
        return a.kind == b.kind
    return True


def parse_openapi(file_path: Path, spec_url: str | None = None) -> ResolvedSpec:
    """Parse and resolve an OpenAPI file."""
    return SpecResolver(load_file(file_path), spec_url=spec_url).resolve()
