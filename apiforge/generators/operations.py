"""Per-operation method shape shared by the client, service and endpoint generators.

Parameter binding rules:
- path parameters are always bound individually
- query parameters are bound individually up to QUERY_PARAM_LIMIT, beyond
  that they collapse into one ``query_params`` mapping
- a request body becomes a ``request`` parameter
- header parameters other than STANDARD_HEADERS collapse into ``headers``
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..naming import to_snake_name, to_type_name
from ..type_mapper import TypeRef, map_schema, python_param_type

if TYPE_CHECKING:
    from ..catalog import Operation, Parameter

QUERY_PARAM_LIMIT = 3

# Set by the transport or the generated client itself
STANDARD_HEADERS = frozenset({
    "content-type", "accept", "authorization", "user-agent", "host", "connection",
})

BODY_PARAM = "request"
QUERY_BAG_PARAM = "query_params"
HEADERS_PARAM = "headers"
_RESERVED = frozenset({"self", BODY_PARAM, QUERY_BAG_PARAM, HEADERS_PARAM, "service", "http_request"})

_PLACEHOLDER = re.compile(r"\{([^}/]+)\}")


@dataclass
class BoundParam:
    wire: str
    name: str
    annotation: str
    required: bool
    imports: frozenset[str] = frozenset()

    @property
    def signature(self) -> str:
        if self.required:
            return f"{self.name}: {self.annotation}"
        annotation = self.annotation if self.annotation == "Any" else f"{self.annotation} | None"
        return f"{self.name}: {annotation} = None"


@dataclass
class OperationShape:
    """Everything a generated method needs to know about one operation."""

    operation: Operation
    method_name: str
    path_params: list[BoundParam] = field(default_factory=list)
    query_params: list[BoundParam] = field(default_factory=list)
    header_params: list[BoundParam] = field(default_factory=list)
    query_bag: bool = False
    body: TypeRef | None = None
    body_required: bool = False
    response: TypeRef | None = None

    @property
    def imports(self) -> set[str]:
        found: set[str] = set()
        for param in self.path_params + self.query_params + self.header_params:
            found |= param.imports
        for ref in (self.body, self.response):
            if ref is not None:
                found |= ref.imports
        return found

    @property
    def records(self) -> list[str]:
        names: list[str] = []
        for ref in (self.body, self.response):
            if ref is not None:
                names += [r for r in ref.records if r not in names]
        return names

    def client_signature(self) -> str:
        """Parameters of the generated client and service method."""
        positional = [p.signature for p in self.path_params]
        if self.body is not None:
            positional.append(
                f"{BODY_PARAM}: {self.body.annotation}" if self.body_required
                else f"{BODY_PARAM}: {self.body.optional()} = None"
            )
        keyword = []
        if self.query_bag:
            keyword.append(f"{QUERY_BAG_PARAM}: dict[str, Any] | None = None")
        else:
            keyword += [p.signature for p in self.query_params]
        if self.header_params:
            keyword.append(f"{HEADERS_PARAM}: dict[str, str] | None = None")
        params = ["self"] + positional
        if keyword:
            params += ["*"] + keyword
        return ", ".join(params)

    def call_arguments(self) -> str:
        """Arguments forwarding the client signature to another method."""
        args = [p.name for p in self.path_params]
        if self.body is not None:
            args.append(BODY_PARAM)
        if self.query_bag:
            args.append(f"{QUERY_BAG_PARAM}={QUERY_BAG_PARAM}")
        else:
            args += [f"{p.name}={p.name}" for p in self.query_params]
        if self.header_params:
            args.append(f"{HEADERS_PARAM}={HEADERS_PARAM}")
        return ", ".join(args)

    def url_expression(self) -> str:
        """f-string building the request path with quoted path parameters."""
        by_wire = {p.wire: p.name for p in self.path_params}

        def substitute(match: re.Match) -> str:
            name = by_wire.get(match.group(1)) or to_snake_name(match.group(1))
            return "{quote(str(" + name + "), safe='')}"

        path = self.operation.path
        if not self.path_params:
            return repr(path)
        return "f" + repr(_PLACEHOLDER.sub(substitute, path))

    def route_path(self) -> str:
        """Operation path with placeholders renamed to the bound parameter names."""
        by_wire = {p.wire: p.name for p in self.path_params}
        return _PLACEHOLDER.sub(
            lambda m: "{" + (by_wire.get(m.group(1)) or to_snake_name(m.group(1))) + "}",
            self.operation.path,
        )

    @property
    def returns(self) -> str:
        return "None" if self.response is None else self.response.annotation


def _bind(param: Parameter, taken: set[str]) -> BoundParam:
    name = to_snake_name(param.name)
    if name in _RESERVED:
        name += "_param"
    while name in taken:
        name += "_"
    taken.add(name)
    ref = python_param_type(param.schema)
    return BoundParam(param.name, name, ref.annotation, param.required, ref.imports)


def build_shape(operation: Operation) -> OperationShape:
    base = to_type_name(operation.id)
    shape = OperationShape(operation, to_snake_name(operation.id))
    taken: set[str] = set()

    shape.path_params = [_bind(p, taken) for p in operation.params_in("path")]
    # Path parameters are always required on the wire
    for param in shape.path_params:
        param.required = True

    query = operation.params_in("query")
    shape.query_bag = len(query) > QUERY_PARAM_LIMIT
    shape.query_params = [_bind(p, taken) for p in query]

    shape.header_params = [
        _bind(p, taken) for p in operation.params_in("header")
        if p.name.lower() not in STANDARD_HEADERS
    ]

    if operation.request_schema is not None:
        shape.body = map_schema(operation.request_schema, f"{base}Request")
        shape.body_required = operation.request_required
    if operation.response_schema is not None:
        shape.response = map_schema(operation.response_schema, f"{base}Response")
    return shape


def is_model(ref: TypeRef | None) -> bool:
    return ref is not None and ref.kind in ("record", "union")


def dump_expression(ref: TypeRef, value: str) -> str:
    """Expression turning ``value`` (of type ``ref``) into JSON-ready data."""
    if is_model(ref):
        return f"{value}.model_dump(mode=\"json\", by_alias=True, exclude_none=True)"
    if ref.records:
        return f"TypeAdapter({ref.annotation}).dump_python({value}, mode=\"json\", by_alias=True)"
    return value


def load_expression(ref: TypeRef | None, value: str) -> str:
    """Expression validating decoded JSON ``value`` into ``ref``."""
    if ref is None:
        return "None"
    if is_model(ref):
        return f"{ref.annotation}.model_validate({value})"
    if ref.annotation == "Any":
        return value
    return f"TypeAdapter({ref.annotation}).validate_python({value})"


def needs_type_adapter(shapes: list[OperationShape]) -> bool:
    for shape in shapes:
        if shape.body is not None and not is_model(shape.body) and shape.body.records:
            return True
        if shape.response is not None and not is_model(shape.response) and \
                shape.response.annotation != "Any":
            return True
    return False


def shapes_context(shapes: list[OperationShape]) -> list[dict[str, Any]]:
    """Template-ready dicts, one per operation."""
    methods = []
    for shape in shapes:
        op = shape.operation
        methods.append({
            "name": shape.method_name,
            "operation_id": op.id,
            "summary": (op.summary or op.description or op.id).strip().splitlines()[0],
            "http_method": op.http_method.upper(),
            "verb": op.http_method.lower(),
            "path": op.path,
            "route_path": shape.route_path(),
            "signature": shape.client_signature(),
            "call_args": shape.call_arguments(),
            "url": shape.url_expression(),
            "path_params": shape.path_params,
            "query_params": shape.query_params,
            "header_params": shape.header_params,
            "query_bag": shape.query_bag,
            "body": shape.body,
            "body_required": shape.body_required,
            "body_is_model": is_model(shape.body),
            "body_expr": dump_expression(shape.body, BODY_PARAM) if shape.body else None,
            "returns": shape.returns,
            "load_expr": load_expression(shape.response, "response.json()"),
        })
    return methods
