"""Operation catalog: the flattened, indexed list of operations in one spec.

Two catalogs can coexist in a run (legacy and target); each carries the
label it was built with.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable

from .errors import SpecError
from .schema import Schema

if TYPE_CHECKING:
    from .spec_loader import LoadedSpec

logger = logging.getLogger(__name__)

PARAMETER_LOCATIONS = ("path", "query", "header")


@dataclass(frozen=True)
class Parameter:
    name: str
    location: str
    schema: Schema
    required: bool = False
    description: str = ""


@dataclass(frozen=True, eq=False)
class Operation:
    id: str
    http_method: str
    path: str
    primary_tag: str
    all_tags: tuple[str, ...]
    summary: str = ""
    description: str = ""
    request_schema: Schema | None = None
    request_required: bool = False
    response_schema: Schema | None = None
    responses: dict[str, Schema] = field(default_factory=dict)
    parameters: tuple[Parameter, ...] = ()

    def params_in(self, location: str) -> list[Parameter]:
        return [p for p in self.parameters if p.location == location]

    @property
    def display_name(self) -> str:
        return self.summary or self.id


class OperationCatalog:
    """Indexes operations by id and by tag, preserving declaration order."""

    def __init__(self, label: str, operations: Iterable[Operation] = (),
                 warnings: Iterable[str] = ()):
        self.label = label
        self.warnings: list[str] = list(warnings)
        self._operations: list[Operation] = []
        self._by_id: dict[str, Operation] = {}
        self._by_tag: dict[str, list[Operation]] = {}
        for operation in operations:
            self.add(operation)

    @classmethod
    def from_spec(cls, spec: LoadedSpec, label: str) -> OperationCatalog:
        catalog = cls(label, spec.operations, spec.warnings)
        logger.info(
            "Built %s catalog with %d operations across %d tags",
            label, len(catalog), len(catalog.tags()),
        )
        return catalog

    def add(self, operation: Operation) -> None:
        if operation.id in self._by_id:
            raise SpecError(f"Duplicate operation id {operation.id!r} in {self.label} catalog")
        self._operations.append(operation)
        self._by_id[operation.id] = operation
        for tag in operation.all_tags:
            bucket = self._by_tag.setdefault(tag, [])
            if operation not in bucket:
                bucket.append(operation)

    def __len__(self) -> int:
        return len(self._operations)

    def __iter__(self):
        return iter(self._operations)

    @property
    def operations(self) -> list[Operation]:
        return list(self._operations)

    def tags(self) -> list[str]:
        return list(self._by_tag)

    def get(self, operation_id: str) -> Operation | None:
        return self._by_id.get(operation_id)

    def find_by_tags(self, tags: Iterable[str]) -> list[Operation]:
        """Operations carrying any of ``tags``, de-duplicated, in catalog order."""
        wanted = set(tags)
        return [op for op in self._operations if wanted.intersection(op.all_tags)]

    def find_by_ids(self, ids: Iterable[str]) -> list[Operation]:
        """Operations for ``ids`` in the order given; unknown ids are dropped."""
        found: list[Operation] = []
        for operation_id in ids:
            operation = self._by_id.get(operation_id)
            if operation is None:
                logger.debug("Operation %s not in %s catalog, skipping", operation_id, self.label)
                continue
            if operation not in found:
                found.append(operation)
        return found

    def fuzzy_find(self, query: str | None) -> Operation | None:
        """Exact id, case-insensitive id, summary substring, then path substring."""
        if not query:
            return None
        exact = self._by_id.get(query)
        if exact is not None:
            return exact
        lowered = query.lower()
        for operation in self._operations:
            if operation.id.lower() == lowered:
                return operation
        for operation in self._operations:
            if operation.summary and lowered in operation.summary.lower():
                return operation
        for operation in self._operations:
            if lowered in operation.path.lower():
                return operation
        return None
