"""Load an OpenAPI document and resolve it into a schema/operation graph.

Sources:
  - a local file path (JSON or YAML, detected from the content)
  - ``resource:<name>`` for specs bundled in apiforge/specs/
  - an http(s) URL, fetched with httpx

Resolution replaces every $ref with the node it points to. allOf members are
merged structurally into one object; anyOf/oneOf become a ComposedSchema
with one member per branch; discriminator property names are kept.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx
import yaml

from .catalog import PARAMETER_LOCATIONS, Operation, Parameter
from .errors import SpecNotFound, SpecParseError, SpecUnresolvable
from .naming import synthesize_operation_id
from .schema import (
    ArraySchema,
    ComposedSchema,
    ObjectSchema,
    PrimitiveSchema,
    Property,
    Schema,
)

logger = logging.getLogger(__name__)

SPEC_DIR = Path(__file__).parent / "specs"
RESOURCE_PREFIX = "resource:"
URL_TIMEOUT = 30.0

HTTP_METHODS = ("get", "put", "post", "delete", "patch", "head", "options", "trace")
_JSON_MEDIA_TYPES = ("application/json", "application/*+json", "text/json")
_SCHEMA_POINTER = "#/components/schemas/"


@dataclass
class LoadedSpec:
    """A fully resolved specification plus its metadata."""

    source: str
    title: str
    version: str
    document: dict[str, Any]
    schemas: dict[str, Schema] = field(default_factory=dict)
    operations: list[Operation] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    sha256: str = ""
    size: int = 0

    def operations_for_tag(self, tag: str) -> list[Operation]:
        """Every operation whose primary tag is ``tag``, in declaration order."""
        return [op for op in self.operations if op.primary_tag == tag]


class _Resolver:
    """Turns raw schema dicts into Schema nodes, following local $refs."""

    def __init__(self, document: dict[str, Any], warnings: list[str]):
        self.document = document
        self.warnings = warnings
        # pointer -> node; populated before a node is filled so cycles
        # resolve to the same (partially built) node
        self._visited: dict[str, Schema] = {}

    def lookup(self, pointer: str) -> Any:
        if not pointer.startswith("#/"):
            raise SpecUnresolvable(pointer, "only local references are supported")
        node: Any = self.document
        for part in pointer[2:].split("/"):
            part = part.replace("~1", "/").replace("~0", "~")
            if not isinstance(node, dict) or part not in node:
                raise SpecUnresolvable(pointer)
            node = node[part]
        return node

    def deref(self, raw: Any) -> Any:
        """Follow $ref chains on non-schema objects (parameters, bodies, responses)."""
        seen: set[str] = set()
        while isinstance(raw, dict) and "$ref" in raw:
            pointer = raw["$ref"]
            if pointer in seen:
                raise SpecUnresolvable(pointer, "reference cycle")
            seen.add(pointer)
            raw = self.lookup(pointer)
        return raw

    def schema(self, raw: Any, name: str | None = None) -> Schema:
        if not isinstance(raw, dict) or not raw:
            return PrimitiveSchema(name=name)
        if "$ref" in raw:
            return self._resolve_ref(raw["$ref"])
        alias = _allof_alias(raw)
        if alias is not None:
            return self.schema(alias, name)
        node = _allocate(raw, name)
        self._fill(node, raw)
        return node

    def _resolve_ref(self, pointer: str) -> Schema:
        if pointer in self._visited:
            return self._visited[pointer]
        raw = self.lookup(pointer)
        name = pointer.rsplit("/", 1)[-1] if pointer.startswith(_SCHEMA_POINTER) else None
        if isinstance(raw, dict) and ("$ref" in raw or _allof_alias(raw) is not None):
            # Placeholder guards against alias loops (A -> B -> A)
            self._visited[pointer] = PrimitiveSchema(name=name)
            target = raw["$ref"] if "$ref" in raw else None
            node = self._resolve_ref(target) if target else self.schema(_allof_alias(raw), name)
            self._visited[pointer] = node
            return node
        node = _allocate(raw if isinstance(raw, dict) else {}, name)
        self._visited[pointer] = node
        if isinstance(raw, dict):
            self._fill(node, raw)
        return node

    def _fill(self, node: Schema, raw: dict[str, Any]) -> None:
        node.title = raw.get("title")
        node.description = raw.get("description", "") or ""
        node.read_only = bool(raw.get("readOnly", False))
        _, nullable = _type_of(raw)
        node.nullable = nullable

        if isinstance(node, ObjectSchema):
            self._fill_object(node, raw)
        elif isinstance(node, ComposedSchema):
            node.members = [self.schema(member) for member in raw.get(node.kind, [])]
            node.discriminator = _discriminator(raw)
        elif isinstance(node, ArraySchema):
            node.items = self.schema(raw.get("items", {}))
        elif isinstance(node, PrimitiveSchema):
            _fill_primitive(node, raw)

    def _fill_object(self, node: ObjectSchema, raw: dict[str, Any]) -> None:
        required = set(raw.get("required", []) or [])
        for member_raw in raw.get("allOf", []) or []:
            member = self.schema(member_raw)
            if isinstance(member, ObjectSchema):
                for prop_name, prop in member.properties.items():
                    node.properties[prop_name] = Property(
                        prop.schema, prop.required or prop_name in required
                    )
                node.discriminator = node.discriminator or member.discriminator
            else:
                self.warnings.append(
                    f"allOf member of {node.name or 'inline schema'} is not an object; ignored"
                )
        for prop_name, prop_raw in (raw.get("properties") or {}).items():
            node.properties[prop_name] = Property(
                self.schema(prop_raw), prop_name in required
            )
        for prop_name in required:
            if prop_name in node.properties:
                node.properties[prop_name].required = True
        node.discriminator = _discriminator(raw) or node.discriminator


def _type_of(raw: dict[str, Any]) -> tuple[str | None, bool]:
    """Return (type, nullable), accepting 3.1-style type lists."""
    declared = raw.get("type")
    nullable = bool(raw.get("nullable", False))
    if isinstance(declared, list):
        nullable = nullable or "null" in declared
        declared = next((t for t in declared if t != "null"), None)
    return declared, nullable


def _allof_alias(raw: dict[str, Any]) -> Any:
    """A single-member allOf without own properties is an alias of that member."""
    members = raw.get("allOf")
    if isinstance(members, list) and len(members) == 1 and "properties" not in raw:
        return members[0]
    return None


def _discriminator(raw: dict[str, Any]) -> str | None:
    discriminator = raw.get("discriminator")
    if isinstance(discriminator, dict):
        return discriminator.get("propertyName")
    return None


def _allocate(raw: dict[str, Any], name: str | None) -> Schema:
    declared, _ = _type_of(raw)
    if "allOf" in raw:
        return ObjectSchema(name=name)
    # {type: object, oneOf: [...]} is still a union
    for kind in ("oneOf", "anyOf"):
        if kind in raw:
            return ComposedSchema(name=name, kind=kind)
    if "properties" in raw or declared == "object":
        return ObjectSchema(name=name)
    if declared == "array" or "items" in raw:
        return ArraySchema(name=name)
    return PrimitiveSchema(name=name)


def _fill_primitive(node: PrimitiveSchema, raw: dict[str, Any]) -> None:
    node.kind, _ = _type_of(raw)
    if node.kind is None and "enum" in raw:
        node.kind = "string"
    node.format = raw.get("format")
    node.enum = list(raw["enum"]) if isinstance(raw.get("enum"), list) else None
    node.default = raw.get("default")
    node.min_length = raw.get("minLength")
    node.max_length = raw.get("maxLength")
    node.pattern = raw.get("pattern")
    node.minimum = raw.get("minimum")
    node.maximum = raw.get("maximum")


def _pick_media_schema(content: Any) -> Any:
    if not isinstance(content, dict) or not content:
        return None
    for media_type in _JSON_MEDIA_TYPES:
        if media_type in content:
            return (content[media_type] or {}).get("schema")
    first = next(iter(content.values())) or {}
    return first.get("schema")


def _pick_success_status(statuses: list[str]) -> str | None:
    for preferred in ("200", "201"):
        if preferred in statuses:
            return preferred
    for status in statuses:
        if status.startswith("2"):
            return status
    return "default" if "default" in statuses else None


def _check_document(document: Any) -> list[str]:
    """Structural diagnostics for a parsed document."""
    if not isinstance(document, dict):
        return [f"document root must be a mapping, got {type(document).__name__}"]
    diagnostics = []
    if "openapi" not in document and "swagger" not in document:
        diagnostics.append("missing 'openapi' version field")
    if not isinstance(document.get("info"), dict):
        diagnostics.append("missing or invalid 'info' object")
    paths = document.get("paths")
    if not isinstance(paths, dict):
        diagnostics.append("'paths' must be a mapping")
    else:
        for path, item in paths.items():
            if not str(path).startswith("/"):
                diagnostics.append(f"path {path!r} must start with '/'")
            if not isinstance(item, dict):
                diagnostics.append(f"path item {path!r} must be a mapping")
    return diagnostics


class SpecLoader:
    """Reads, parses and resolves specification documents."""

    def __init__(self, http_client: httpx.Client | None = None):
        self._http_client = http_client

    def load(self, source: str) -> LoadedSpec:
        logger.info("Loading spec from: %s", source)
        raw = self._read(source)
        document = self._parse(source, raw)
        spec = self._resolve(source, document)
        spec.sha256 = hashlib.sha256(raw).hexdigest()
        spec.size = len(raw)
        for warning in spec.warnings:
            logger.warning("%s: %s", source, warning)
        logger.info("Loaded spec: %s %s (%d operations)", spec.title, spec.version, len(spec.operations))
        return spec

    def _read(self, source: str) -> bytes:
        if source.startswith(RESOURCE_PREFIX):
            path = SPEC_DIR / source[len(RESOURCE_PREFIX):]
            if not path.is_file():
                raise SpecNotFound(f"Bundled spec not found: {source}")
            return path.read_bytes()
        if source.startswith(("http://", "https://")):
            return self._fetch(source)
        path = Path(source)
        if not path.is_file():
            raise SpecNotFound(f"Spec file not found: {source}")
        return path.read_bytes()

    def _fetch(self, url: str) -> bytes:
        try:
            if self._http_client is not None:
                response = self._http_client.get(url)
            else:
                response = httpx.get(url, timeout=URL_TIMEOUT, follow_redirects=True)
        except httpx.HTTPError as exc:
            raise SpecNotFound(f"Failed to fetch spec {url}: {exc}") from exc
        if response.status_code >= 400:
            raise SpecNotFound(f"Failed to fetch spec {url}: HTTP {response.status_code}")
        return response.content

    def _parse(self, source: str, raw: bytes) -> dict[str, Any]:
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise SpecParseError(source, [f"not valid UTF-8: {exc}"]) from exc
        try:
            if text.lstrip().startswith(("{", "[")):
                document = json.loads(text)
            else:
                document = yaml.safe_load(text)
        except (json.JSONDecodeError, yaml.YAMLError) as exc:
            raise SpecParseError(source, [str(exc)]) from exc
        diagnostics = _check_document(document)
        if diagnostics:
            raise SpecParseError(source, diagnostics)
        return document

    def _resolve(self, source: str, document: dict[str, Any]) -> LoadedSpec:
        info = document.get("info", {})
        spec = LoadedSpec(
            source=source,
            title=str(info.get("title", "")),
            version=str(info.get("version", "")),
            document=document,
        )
        resolver = _Resolver(document, spec.warnings)
        components = (document.get("components") or {}).get("schemas") or {}
        for schema_name in components:
            spec.schemas[schema_name] = resolver.schema({"$ref": _SCHEMA_POINTER + schema_name})
        spec.operations = self._parse_operations(document, resolver, spec.warnings)
        return spec

    def _parse_operations(self, document: dict[str, Any], resolver: _Resolver,
                          warnings: list[str]) -> list[Operation]:
        operations: list[Operation] = []
        declared_ids = {
            raw_op.get("operationId")
            for raw_item in document.get("paths", {}).values()
            for method, raw_op in (resolver.deref(raw_item) or {}).items()
            if method in HTTP_METHODS and isinstance(raw_op, dict)
        }
        used_ids: set[str] = set()

        for path, raw_item in document.get("paths", {}).items():
            item = resolver.deref(raw_item)
            shared = self._parse_parameters(item.get("parameters", []), resolver, warnings)

            for method in HTTP_METHODS:
                raw_op = item.get(method)
                if not isinstance(raw_op, dict):
                    continue

                operation_id = raw_op.get("operationId")
                if not operation_id:
                    operation_id = synthesize_operation_id(method, path)
                    warnings.append(
                        f"Generated operationId for {method.upper()} {path}: {operation_id}"
                    )
                if operation_id in used_ids:
                    suffix = 2
                    # a renamed id never takes one declared later in the document
                    while f"{operation_id}_{suffix}" in used_ids | declared_ids:
                        suffix += 1
                    unique = f"{operation_id}_{suffix}"
                    warnings.append(f"Duplicate operationId {operation_id}; renamed to {unique}")
                    operation_id = unique
                used_ids.add(operation_id)

                own = self._parse_parameters(raw_op.get("parameters", []), resolver, warnings)
                merged = {(p.name, p.location): p for p in shared}
                merged.update({(p.name, p.location): p for p in own})

                tags = list(dict.fromkeys(raw_op.get("tags") or [])) or ["default"]

                request_schema = None
                request_required = False
                body = resolver.deref(raw_op.get("requestBody"))
                if isinstance(body, dict):
                    body_raw = _pick_media_schema(body.get("content"))
                    if body_raw is not None:
                        request_schema = resolver.schema(body_raw)
                        request_required = bool(body.get("required", False))

                responses: dict[str, Schema] = {}
                for status, raw_response in (raw_op.get("responses") or {}).items():
                    response = resolver.deref(raw_response)
                    if not isinstance(response, dict):
                        continue
                    response_raw = _pick_media_schema(response.get("content"))
                    if response_raw is not None:
                        responses[str(status)] = resolver.schema(response_raw)
                success = _pick_success_status(list(responses))

                operations.append(Operation(
                    id=operation_id,
                    http_method=method.upper(),
                    path=path,
                    primary_tag=tags[0],
                    all_tags=tuple(tags),
                    summary=raw_op.get("summary", "") or "",
                    description=raw_op.get("description", "") or "",
                    request_schema=request_schema,
                    request_required=request_required,
                    response_schema=responses.get(success) if success else None,
                    responses=responses,
                    parameters=tuple(merged.values()),
                ))
        return operations

    def _parse_parameters(self, raw_params: Any, resolver: _Resolver,
                          warnings: list[str]) -> list[Parameter]:
        params: list[Parameter] = []
        for raw in raw_params or []:
            param = resolver.deref(raw)
            if not isinstance(param, dict) or "name" not in param:
                continue
            location = param.get("in", "query")
            if location not in PARAMETER_LOCATIONS:
                warnings.append(f"Parameter {param['name']!r} in {location} is not supported; dropped")
                continue
            params.append(Parameter(
                name=param["name"],
                location=location,
                schema=resolver.schema(param.get("schema", {})),
                required=bool(param.get("required", location == "path")),
                description=param.get("description", "") or "",
            ))
        return params


def load_spec(source: str) -> LoadedSpec:
    """Load a spec with a default loader."""
    return SpecLoader().load(source)
