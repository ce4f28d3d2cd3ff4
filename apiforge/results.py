"""Run result accumulator and per-unit outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

SUCCESS = "success"
PARTIAL = "partial"
FAILED = "failed"


@dataclass(frozen=True)
class OperationMapping:
    legacy_id: str | None
    new_id: str
    tag: str

    def to_dict(self) -> dict[str, Any]:
        return {"legacyOperationId": self.legacy_id, "newOperationId": self.new_id, "tag": self.tag}


@dataclass
class UnitOutcome:
    """Result of one unit of work (an operation or a file): success or error."""

    unit: str
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    mappings: list[OperationMapping] = field(default_factory=list)
    todos: list[str] = field(default_factory=list)
    error: str | None = None
    # False for bookkeeping outcomes (operation correlation) that are not units of work
    counts: bool = True

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, unit: str, error: str) -> UnitOutcome:
        return cls(unit, error=error)


@dataclass
class GenerationResult:
    """Append-only record of one run; finalized once by the orchestrator."""

    mode: str = ""
    scope: str = ""
    created_files: list[str] = field(default_factory=list)
    updated_files: list[str] = field(default_factory=list)
    deleted_files: list[str] = field(default_factory=list)
    operation_mappings: list[OperationMapping] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    todos: list[str] = field(default_factory=list)
    report_path: str | None = None
    success: bool = False
    partial_success: bool = False
    succeeded_units: int = 0
    finalized: bool = False

    def add_created(self, path: str) -> None:
        if path not in self.created_files and path not in self.updated_files:
            self.created_files.append(path)

    def add_updated(self, path: str) -> None:
        if path not in self.updated_files and path not in self.created_files:
            self.updated_files.append(path)

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def add_todo(self, item: str) -> None:
        if item not in self.todos:
            self.todos.append(item)

    def absorb(self, outcome: UnitOutcome) -> None:
        """Fold one unit's outcome into the run; files written before a failure are kept."""
        for path in outcome.created:
            self.add_created(path)
        for path in outcome.updated:
            self.add_updated(path)
        self.operation_mappings.extend(outcome.mappings)
        for todo in outcome.todos:
            self.add_todo(todo)
        if outcome.ok and outcome.counts:
            self.succeeded_units += 1
        else:
            self.add_error(outcome.error)

    def finalize(self) -> None:
        self.success = not self.errors
        self.partial_success = bool(self.errors) and self.succeeded_units > 0
        self.finalized = True

    @property
    def status(self) -> str:
        if self.success:
            return SUCCESS
        if self.partial_success:
            return PARTIAL
        return FAILED

    @property
    def unmapped(self) -> list[OperationMapping]:
        return [m for m in self.operation_mappings if m.legacy_id is None]
