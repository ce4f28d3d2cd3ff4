"""Exception hierarchy for the generation/migration engine.

Fatal classes (config, spec, layout) abort a run before any unit of work
starts. Unit-level classes (generation, migration) are caught around each
unit by the orchestrator and turned into result entries.
"""

from __future__ import annotations


class ApiforgeError(Exception):
    """Base class for every error raised by apiforge."""


class FatalConfigError(ApiforgeError):
    """Bad mode/scope combination or a missing required input."""


class SpecError(ApiforgeError):
    """A specification could not be loaded."""


class SpecNotFound(SpecError):
    """The spec path, resource or URL does not resolve."""


class SpecParseError(SpecError):
    """The spec document is malformed."""

    def __init__(self, source: str, diagnostics: list[str]):
        self.source = source
        self.diagnostics = list(diagnostics)
        super().__init__(f"Failed to parse spec {source}: " + "; ".join(self.diagnostics))


class SpecUnresolvable(SpecError):
    """A $ref pointer does not match any component."""

    def __init__(self, pointer: str, reason: str = "no such component"):
        self.pointer = pointer
        super().__init__(f"Cannot resolve reference {pointer!r}: {reason}")


class LayoutUndetectable(ApiforgeError):
    """No base module path could be inferred from the project tree."""


class GenerationError(ApiforgeError):
    """Generating artifacts for one operation failed."""

    def __init__(self, operation_id: str, message: str):
        self.operation_id = operation_id
        super().__init__(f"Failed to generate {operation_id}: {message}")


class MigrationError(ApiforgeError):
    """Rewriting one legacy file failed."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"Failed to migrate {path}: {message}")


class ReportWriteError(ApiforgeError):
    """The run report could not be written. Never changes run status."""
