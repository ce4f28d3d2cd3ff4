"""In-memory schema graph produced by the spec loader.

A schema node is one of:
- PrimitiveSchema  (kind + format + constraints; kind None means untyped)
- ArraySchema      (items)
- ObjectSchema     (ordered properties, each with a required flag)
- RefSchema        (target pointer; only exists before resolution)
- ComposedSchema   (allOf / anyOf / oneOf members)

Nodes compare by identity so cyclic graphs can be walked with a visited set
of node ids. Component schemas carry their component name in ``name``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator


@dataclass(eq=False)
class Schema:
    name: str | None = None
    title: str | None = None
    description: str = ""
    nullable: bool = False
    read_only: bool = False


@dataclass(eq=False)
class PrimitiveSchema(Schema):
    kind: str | None = None
    format: str | None = None
    enum: list[Any] | None = None
    default: Any = None
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None
    minimum: float | None = None
    maximum: float | None = None

    @property
    def is_opaque(self) -> bool:
        return self.kind is None


@dataclass(eq=False)
class ArraySchema(Schema):
    items: Schema = field(default_factory=PrimitiveSchema)


@dataclass
class Property:
    schema: Schema
    required: bool = False


@dataclass(eq=False)
class ObjectSchema(Schema):
    properties: dict[str, Property] = field(default_factory=dict)
    discriminator: str | None = None

    @property
    def has_properties(self) -> bool:
        return bool(self.properties)


@dataclass(eq=False)
class RefSchema(Schema):
    target: str = ""


@dataclass(eq=False)
class ComposedSchema(Schema):
    kind: str = "oneOf"
    members: list[Schema] = field(default_factory=list)
    discriminator: str | None = None


def is_record(schema: Schema) -> bool:
    """True for schemas that become a named record when generated."""
    if isinstance(schema, ObjectSchema):
        return schema.has_properties
    return isinstance(schema, ComposedSchema)


def walk(schema: Schema, seen: set[int] | None = None) -> Iterator[Schema]:
    """Yield every node reachable from ``schema`` exactly once."""
    seen = set() if seen is None else seen
    stack = [schema]
    while stack:
        node = stack.pop()
        if id(node) in seen:
            continue
        seen.add(id(node))
        yield node
        if isinstance(node, ArraySchema):
            stack.append(node.items)
        elif isinstance(node, ObjectSchema):
            stack.extend(prop.schema for prop in reversed(list(node.properties.values())))
        elif isinstance(node, ComposedSchema):
            stack.extend(reversed(node.members))
