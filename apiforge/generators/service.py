"""Emit one async service class per tag, plus the shared api_errors module."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..layout import CLIENT, SERVICE
from ..naming import module_file_name, to_snake_name
from .base import ArtifactGenerator, GeneratedFile, format_imports, record_import, tag_class_name
from .operations import build_shape, shapes_context

if TYPE_CHECKING:
    from ..catalog import Operation
    from ..layout import DetectedLayout
    from ..spec_loader import LoadedSpec

logger = logging.getLogger(__name__)

ERRORS_MODULE = "api_errors"

# status -> generated exception class; anything else is UpstreamError
STATUS_ERRORS: dict[int, str] = {
    400: "InvalidArgumentError",
    401: "UnauthorizedError",
    403: "ForbiddenError",
    404: "NotFoundError",
    429: "RateLimitedError",
}


def errors_module(layout: DetectedLayout) -> str:
    return f"{layout.base_package}.{ERRORS_MODULE}"


class ServiceGenerator(ArtifactGenerator):
    """One service per tag delegating to the tag's client."""

    category = SERVICE
    name = "service"

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._errors_written = False

    def begin_run(self, dry_run: bool = False) -> None:
        super().begin_run(dry_run)
        self._errors_written = False

    def generate(self, layout: DetectedLayout, spec: LoadedSpec,
                 operation: Operation) -> list[GeneratedFile]:
        files: list[GeneratedFile] = []
        if not self._errors_written:
            files.append(self._write_errors(layout, spec))

        tag = operation.primary_tag
        if self.is_claimed(tag):
            return files

        shapes = [build_shape(op) for op in spec.operations_for_tag(tag)]
        client_class = tag_class_name(tag, "Client")
        class_name = tag_class_name(tag, "Service")
        imports = {
            "import logging",
            "from typing import Any",
            "import httpx",
            f"local:from {layout.tag_module(CLIENT, tag)}.{to_snake_name(client_class)} "
            f"import {client_class}",
            f"local:from {errors_module(layout)} import map_upstream_error, require_request, "
            "validate_request",
        }
        for shape in shapes:
            imports |= shape.imports
            imports.update(record_import(layout, tag, r) for r in shape.records)

        content = self.render(
            "service.py.j2",
            source=spec.source,
            tag=tag,
            class_name=class_name,
            client_class=client_class,
            imports=format_imports(imports),
            methods=shapes_context(shapes),
        )
        path = layout.tag_dir(SERVICE, tag) / module_file_name(class_name)
        files.append(self.write(path, content))
        self.claim_tag(tag)
        logger.info("Generated service %s with %d methods", class_name, len(shapes))
        return files

    def _write_errors(self, layout: DetectedLayout, spec: LoadedSpec) -> GeneratedFile:
        content = self.render(
            "api_errors.py.j2",
            source=spec.source,
            status_errors=sorted(STATUS_ERRORS.items()),
        )
        path = layout.module_dir(layout.base_package) / f"{ERRORS_MODULE}.py"
        written = self.write(path, content)
        self._errors_written = True
        return written
