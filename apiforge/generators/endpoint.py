"""Emit one FastAPI router per tag, plus the shared error_handlers module."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..layout import ENDPOINT, SERVICE
from ..naming import module_file_name, to_package_name, to_snake_name
from .base import ArtifactGenerator, GeneratedFile, format_imports, record_import, tag_class_name
from .operations import OperationShape, build_shape, shapes_context
from .service import errors_module

if TYPE_CHECKING:
    from ..catalog import Operation
    from ..layout import DetectedLayout
    from ..spec_loader import LoadedSpec

logger = logging.getLogger(__name__)

HANDLERS_MODULE = "error_handlers"
CREATED_METHODS = frozenset({"post"})


def _route_parameters(shape: OperationShape) -> tuple[list[str], list[str]]:
    """(parameters, service call arguments) for one route function."""
    required: list[str] = []
    optional: list[str] = []
    call: list[str] = []

    for param in shape.path_params:
        required.append(f"{param.name}: {param.annotation}")
        call.append(param.name)
    if shape.body is not None:
        if shape.body_required:
            required.append(f"request: {shape.body.annotation}")
        else:
            optional.append(f"request: {shape.body.optional()} = None")
        call.append("request")

    if shape.query_bag:
        required.append("http_request: Request")
        call.append("query_params=dict(http_request.query_params)")
    else:
        for param in shape.query_params:
            if param.required:
                optional.append(f"{param.name}: {param.annotation} = Query(..., alias={param.wire!r})")
            else:
                annotation = param.annotation if param.annotation == "Any" else f"{param.annotation} | None"
                optional.append(f"{param.name}: {annotation} = Query(None, alias={param.wire!r})")
            call.append(f"{param.name}={param.name}")

    if shape.header_params:
        entries = []
        for param in shape.header_params:
            default = "..." if param.required else "None"
            annotation = "str" if param.required else "str | None"
            optional.append(f"{param.name}: {annotation} = Header({default}, alias={param.wire!r})")
            entries.append(f"{param.wire!r}: {param.name}")
        call.append("headers=_drop_none({" + ", ".join(entries) + "})")
    return required + optional, call


class EndpointGenerator(ArtifactGenerator):
    """One APIRouter per tag mounted under /api/{tag package}."""

    category = ENDPOINT
    name = "endpoint"

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._handlers_written = False

    def begin_run(self, dry_run: bool = False) -> None:
        super().begin_run(dry_run)
        self._handlers_written = False

    def generate(self, layout: DetectedLayout, spec: LoadedSpec,
                 operation: Operation) -> list[GeneratedFile]:
        files: list[GeneratedFile] = []
        if not self._handlers_written:
            files.append(self._write_handlers(layout, spec))

        tag = operation.primary_tag
        if self.is_claimed(tag):
            return files

        shapes = [build_shape(op) for op in spec.operations_for_tag(tag)]
        service_class = tag_class_name(tag, "Service")
        imports = {
            "from typing import Any",
            "from fastapi import APIRouter, Depends",
            f"local:from {layout.tag_module(SERVICE, tag)}.{to_snake_name(service_class)} "
            f"import {service_class}",
        }
        routes = shapes_context(shapes)
        for shape, route in zip(shapes, routes):
            imports |= shape.imports
            imports.update(record_import(layout, tag, r) for r in shape.records)
            params, call = _route_parameters(shape)
            route["params"] = params + [f"service: {service_class} = Depends(get_service)"]
            route["service_args"] = ", ".join(call)
            route["status_code"] = 201 if shape.operation.http_method.lower() in CREATED_METHODS else None
            route["response_model"] = shape.returns if shape.response is not None else None
            if shape.query_bag:
                imports.add("from fastapi import Request")
            if shape.query_params and not shape.query_bag:
                imports.add("from fastapi import Query")
            if shape.header_params:
                imports.add("from fastapi import Header")

        content = self.render(
            "router.py.j2",
            source=spec.source,
            tag=tag,
            prefix=f"/api/{to_package_name(tag)}",
            service_class=service_class,
            imports=format_imports(imports),
            routes=routes,
        )
        path = layout.tag_dir(ENDPOINT, tag) / module_file_name(f"{tag_class_name(tag, '')}Router")
        files.append(self.write(path, content))
        self.claim_tag(tag)
        logger.info("Generated router for %s with %d routes", tag, len(shapes))
        return files

    def _write_handlers(self, layout: DetectedLayout, spec: LoadedSpec) -> GeneratedFile:
        content = self.render(
            "error_handlers.py.j2",
            source=spec.source,
            imports=format_imports({
                "from fastapi import FastAPI, Request",
                "from fastapi.responses import JSONResponse",
                f"local:from {errors_module(layout)} import RequestValidationFailed",
            }),
        )
        path = layout.module_dir(layout.endpoint) / f"{HANDLERS_MODULE}.py"
        written = self.write(path, content)
        self._handlers_written = True
        return written
