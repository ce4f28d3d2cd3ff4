"""Emit one pydantic record module per object or union schema.

Roots reachable from an operation, with the name each gets when inline:
- request body           -> {OperationId}Request
- 2xx response           -> {OperationId}Response
- any other response     -> {OperationId}ErrorResponse
- object parameter       -> {ParameterName}
Nested object properties are named Parent + PropertyName, array items get
an ``Item`` suffix, union members get ``Option{n}``. Component schemas keep
their component name.

Records are emitted once per (tag package, class name) per run; later
operations reaching the same record reuse the module already written.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..layout import DATA_TYPES
from ..naming import to_package_name, to_snake_name, to_type_name
from ..schema import ArraySchema, ComposedSchema, ObjectSchema, PrimitiveSchema, Schema, is_record
from ..type_mapper import INT32_MAX, INT32_MIN, map_schema, record_name
from .base import ArtifactGenerator, GeneratedFile, format_imports

if TYPE_CHECKING:
    from ..catalog import Operation
    from ..layout import DetectedLayout
    from ..spec_loader import LoadedSpec

logger = logging.getLogger(__name__)

# Python-level names a wire field must not shadow on a BaseModel
_RESERVED_FIELDS = frozenset({"model_config", "model_fields", "schema", "json", "dict", "copy"})


def operation_roots(operation: Operation) -> list[tuple[Schema, str]]:
    """(schema, suggested name) for every schema an operation declares."""
    base = to_type_name(operation.id)
    roots: list[tuple[Schema, str]] = []
    if operation.request_schema is not None:
        roots.append((operation.request_schema, f"{base}Request"))
    for status, schema in operation.responses.items():
        success = status.startswith("2") or (status == "default" and schema is operation.response_schema)
        suffix = "Response" if success else "ErrorResponse"
        roots.append((schema, f"{base}{suffix}"))
    for param in operation.parameters:
        roots.append((param.schema, to_type_name(param.name)))
    return roots


def _field_name(wire_name: str) -> str:
    name = to_snake_name(wire_name)
    if name in _RESERVED_FIELDS or name.startswith("model_"):
        name += "_"
    return name


def _constraints(schema: Schema, kind: str) -> list[str]:
    if not isinstance(schema, PrimitiveSchema):
        return []
    args = []
    if schema.min_length is not None:
        args.append(f"min_length={schema.min_length!r}")
    if schema.max_length is not None:
        args.append(f"max_length={schema.max_length!r}")
    if schema.pattern:
        args.append(f"pattern={schema.pattern!r}")
    minimum, maximum = schema.minimum, schema.maximum
    if kind == "int32":
        minimum = INT32_MIN if minimum is None else minimum
        maximum = INT32_MAX if maximum is None else maximum
    if minimum is not None:
        args.append(f"ge={minimum!r}")
    if maximum is not None:
        args.append(f"le={maximum!r}")
    return args


class DataTypeGenerator(ArtifactGenerator):
    """Records for every schema reachable from one operation."""

    category = DATA_TYPES
    name = "data types"

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._emitted: set[tuple[str, str]] = set()

    def begin_run(self, dry_run: bool = False) -> None:
        super().begin_run(dry_run)
        self._emitted.clear()

    def generate(self, layout: DetectedLayout, spec: LoadedSpec,
                 operation: Operation) -> list[GeneratedFile]:
        files: list[GeneratedFile] = []
        for schema, suggested in operation_roots(operation):
            self._emit(layout, spec, operation.primary_tag, schema, suggested, files)
        logger.debug("%s: %d record modules", operation.id, len(files))
        return files

    def _emit(self, layout: DetectedLayout, spec: LoadedSpec, tag: str,
              schema: Schema, suggested: str, files: list[GeneratedFile]) -> None:
        if isinstance(schema, ArraySchema):
            self._emit(layout, spec, tag, schema.items, suggested + "Item", files)
            return
        if not is_record(schema):
            return

        class_name = record_name(schema, suggested)
        key = (to_package_name(tag), class_name)
        if key in self._emitted:
            return
        # Marked before recursing so self-referencing records terminate
        self._emitted.add(key)

        if isinstance(schema, ComposedSchema):
            context = self._union_context(schema, class_name)
            children = [(m, f"{class_name}Option{i}") for i, m in enumerate(schema.members, 1)]
        else:
            context = self._record_context(schema, class_name)
            children = [
                (prop.schema, class_name + to_type_name(wire))
                for wire, prop in schema.properties.items()
            ]
        context["source"] = spec.source
        content = self.render("record.py.j2", **context)
        files.append(self.write(self.type_file(layout, tag, class_name), content))

        for child, child_name in children:
            self._emit(layout, spec, tag, child, child_name, files)

    def _record_context(self, schema: ObjectSchema, class_name: str) -> dict[str, Any]:
        imports = {"from pydantic import BaseModel, ConfigDict"}
        siblings: set[str] = set()
        fields = []
        for wire, prop in schema.properties.items():
            ref = map_schema(prop.schema, class_name + to_type_name(wire))
            imports |= ref.imports
            siblings.update(r for r in ref.records if r != class_name)

            annotation = ref.annotation
            if isinstance(prop.schema, PrimitiveSchema) and prop.schema.enum and \
                    all(isinstance(v, str) for v in prop.schema.enum):
                annotation = "Literal[" + ", ".join(repr(v) for v in prop.schema.enum) + "]"
                imports.add("from typing import Literal")

            field_args = []
            if (prop.schema.nullable or not prop.required) and annotation != "Any":
                annotation = f"{annotation} | None"
            if not prop.required:
                default = getattr(prop.schema, "default", None)
                field_args.append("None" if default is None else repr(default))
            name = _field_name(wire)
            if name != wire:
                field_args.append(f"alias={wire!r}")
            field_args += _constraints(prop.schema, ref.kind)
            if prop.schema.description:
                field_args.append(f"description={prop.schema.description.strip()!r}")

            if field_args == ["None"]:
                default_expr = "None"
            elif field_args:
                imports.add("from pydantic import Field")
                default_expr = f"Field({', '.join(field_args)})"
            else:
                default_expr = ""
            fields.append({"name": name, "annotation": annotation, "default": default_expr})

        if schema.discriminator:
            imports.add("from typing import ClassVar")
        return {
            "class_name": class_name,
            "description": schema.description or schema.title or "",
            "imports": format_imports(sorted(imports) + [
                f"from .{to_snake_name(s)} import {s}" for s in sorted(siblings)
            ]),
            "fields": fields,
            "discriminator": schema.discriminator,
            "union": False,
        }

    def _union_context(self, schema: ComposedSchema, class_name: str) -> dict[str, Any]:
        imports = {"from pydantic import BaseModel, ConfigDict"}
        siblings: set[str] = set()
        fields = []
        for i, member in enumerate(schema.members, 1):
            ref = map_schema(member, f"{class_name}Option{i}")
            imports |= ref.imports
            siblings.update(r for r in ref.records if r != class_name)
            fields.append({"name": f"option{i}", "annotation": ref.optional(), "default": "None"})
        if schema.discriminator:
            imports.add("from typing import ClassVar")
        return {
            "class_name": class_name,
            "description": schema.description or schema.title or "",
            "imports": format_imports(sorted(imports) + [
                f"from .{to_snake_name(s)} import {s}" for s in sorted(siblings)
            ]),
            "fields": fields,
            "discriminator": schema.discriminator,
            "union": True,
            "composition": schema.kind,
        }
