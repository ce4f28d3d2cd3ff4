"""Emit one httpx.AsyncClient binding per tag."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..layout import CLIENT
from ..naming import module_file_name
from .base import ArtifactGenerator, GeneratedFile, format_imports, record_import, tag_class_name
from .operations import build_shape, needs_type_adapter, shapes_context

if TYPE_CHECKING:
    from ..catalog import Operation
    from ..layout import DetectedLayout
    from ..spec_loader import LoadedSpec

logger = logging.getLogger(__name__)

# Retry policy baked into generated clients
RETRY_INITIAL_DELAY = 1.0
RETRY_MAX_DELAY = 10.0
RETRY_STATUS_CODES = (503,)
DEFAULT_MAX_RETRIES = 3
DEFAULT_TIMEOUT = 30.0


class ClientGenerator(ArtifactGenerator):
    """One client class per tag, one async method per operation."""

    category = CLIENT
    name = "client"

    def generate(self, layout: DetectedLayout, spec: LoadedSpec,
                 operation: Operation) -> list[GeneratedFile]:
        tag = operation.primary_tag
        if self.is_claimed(tag):
            return []

        shapes = [build_shape(op) for op in spec.operations_for_tag(tag)]
        imports = {
            "import asyncio", "import logging", "import random",
            "from typing import Any", "from urllib.parse import quote", "import httpx",
        }
        for shape in shapes:
            imports |= shape.imports
            imports.update(record_import(layout, tag, r) for r in shape.records)
        if needs_type_adapter(shapes):
            imports.add("from pydantic import TypeAdapter")

        class_name = tag_class_name(tag, "Client")
        content = self.render(
            "client.py.j2",
            source=spec.source,
            tag=tag,
            class_name=class_name,
            imports=format_imports(imports),
            methods=shapes_context(shapes),
            initial_delay=RETRY_INITIAL_DELAY,
            max_delay=RETRY_MAX_DELAY,
            retry_status_codes=RETRY_STATUS_CODES,
            max_retries=DEFAULT_MAX_RETRIES,
            timeout=DEFAULT_TIMEOUT,
        )
        path = layout.tag_dir(CLIENT, tag) / module_file_name(class_name)
        written = self.write(path, content)
        self.claim_tag(tag)
        logger.info("Generated client %s with %d methods", class_name, len(shapes))
        return [written]
