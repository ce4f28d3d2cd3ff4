"""Map schema nodes to Python type descriptors.

Handles:
- string formats (date, date-time, uuid)
- integer widths (int32 default, int64)
- number as Decimal unless float/double
- arrays as list[T]
- object-with-properties and oneOf/anyOf as generated record names
- untyped / free-form objects as Any
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .naming import to_type_name
from .schema import (
    ArraySchema,
    ComposedSchema,
    ObjectSchema,
    PrimitiveSchema,
    Schema,
    is_record,
)

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1


@dataclass(frozen=True)
class TypeRef:
    """A target-language type descriptor."""

    kind: str
    annotation: str
    imports: frozenset[str] = field(default_factory=frozenset)
    records: tuple[str, ...] = ()

    def optional(self) -> str:
        if self.annotation == "Any":
            return "Any"
        return f"{self.annotation} | None"


_OPAQUE = TypeRef("opaque", "Any", frozenset({"from typing import Any"}))

# (kind, format) -> descriptor; (kind, None) is the fallback for a kind
_PRIMITIVES: dict[tuple[str, str | None], TypeRef] = {
    ("string", None): TypeRef("text", "str"),
    ("string", "date"): TypeRef("calendar-date", "date", frozenset({"from datetime import date"})),
    ("string", "date-time"): TypeRef(
        "timestamp-with-offset", "AwareDatetime", frozenset({"from pydantic import AwareDatetime"})
    ),
    ("string", "uuid"): TypeRef("opaque-id", "UUID", frozenset({"from uuid import UUID"})),
    ("integer", None): TypeRef("int32", "int"),
    ("integer", "int32"): TypeRef("int32", "int"),
    ("integer", "int64"): TypeRef("int64", "int"),
    ("number", None): TypeRef("decimal", "Decimal", frozenset({"from decimal import Decimal"})),
    ("number", "float"): TypeRef("float", "float"),
    ("number", "double"): TypeRef("float", "float"),
    ("boolean", None): TypeRef("boolean", "bool"),
}


def record_name(schema: Schema, suggested: str) -> str:
    """Generated class name for a record schema."""
    if schema.name:
        return to_type_name(schema.name)
    if schema.title:
        return to_type_name(schema.title)
    return to_type_name(suggested)


def map_primitive(kind: str | None, fmt: str | None = None) -> TypeRef:
    """Look up the descriptor for a (kind, format) pair."""
    if kind is None:
        return _OPAQUE
    return _PRIMITIVES.get((kind, fmt)) or _PRIMITIVES.get((kind, None)) or _OPAQUE


def map_schema(schema: Schema | None, suggested: str = "Inline",
               _seen: frozenset[int] = frozenset()) -> TypeRef:
    """Resolve a schema node to a TypeRef.

    ``suggested`` names inline records; array items get an ``Item`` suffix.
    """
    if schema is None or id(schema) in _seen:
        return _OPAQUE
    seen = _seen | {id(schema)}

    if is_record(schema):
        name = record_name(schema, suggested)
        kind = "union" if isinstance(schema, ComposedSchema) else "record"
        return TypeRef(kind, name, records=(name,))

    if isinstance(schema, ArraySchema):
        item = map_schema(schema.items, suggested + "Item", seen)
        return TypeRef("sequence", f"list[{item.annotation}]", item.imports, item.records)

    if isinstance(schema, ObjectSchema):
        return TypeRef("opaque", "dict[str, Any]", frozenset({"from typing import Any"}))

    if isinstance(schema, PrimitiveSchema):
        return map_primitive(schema.kind, schema.format)

    return _OPAQUE


def python_param_type(schema: Schema | None) -> TypeRef:
    """Descriptor for a path/query/header parameter; records collapse to Any."""
    ref = map_schema(schema, "Param")
    if ref.records:
        return _OPAQUE
    return ref
