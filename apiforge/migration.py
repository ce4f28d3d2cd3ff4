"""Locate and rewrite legacy XML/form-encoded integration code in a Python tree.

Scanning is two-staged:
  1. a file is a candidate when its text contains any LEGACY_FILE_INDICATORS
  2. inside a candidate file, a routine (def / async def) is a candidate when
     its decorators carry a legacy media type or its source mentions any
     ROUTINE_TRIGGERS

For each candidate routine the engine:
  - rewrites legacy media-type literals to application/json
  - retypes parameters annotated with DOCUMENT_TYPES to dict[str, Any]
  - redirects LEGACY_CODEC_CALLS to json.dumps, keeping the arguments
Then, per file, legacy imports are removed and the replacement imports are
added. Rewrites are recorded as source-span edits on the file's ParsedUnit
and applied in one pass, so every byte outside an edited span survives,
comments and formatting included. Files without edits are never written.

Operation correlation (find_legacy_operation), first match wins:
  exact id -> normalized path containment -> id containment
  -> at least two shared significant summary words -> unmapped (None)
"""

from __future__ import annotations

import ast
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

from .errors import MigrationError
from .layout import iter_source_files
from .results import OperationMapping, UnitOutcome

if TYPE_CHECKING:
    from .catalog import Operation, OperationCatalog
    from .layout import DetectedLayout

logger = logging.getLogger(__name__)

# Matched case-insensitively against the whole file text
LEGACY_FILE_INDICATORS = (
    "processxml.do",
    "xmldata",
    "application/x-www-form-urlencoded",
    "text/xml",
    "application/xml",
    "xml.etree",
    "ElementTree",
    "lxml",
    "xml.dom",
    "minidom",
    "xmltodict",
    "XMLParser",
)

# Matched case-sensitively against one routine's source
ROUTINE_TRIGGERS = (
    "xmldata",
    "processxml",
    "process_xml",
    "marshal",
    "unmarshal",
    "tostring",
    "fromstring",
    "xmltodict",
    "ElementTree",
    "Element",
    "Document",
)

LEGACY_MEDIA_TYPES = frozenset({
    "application/x-www-form-urlencoded",
    "text/xml",
    "application/xml",
})
JSON_MEDIA_TYPE = "application/json"

LEGACY_IMPORT_PREFIXES = ("xml.etree", "xml.dom", "xml.sax", "lxml", "xmltodict", "defusedxml")

DOCUMENT_TYPES = frozenset({"Element", "ElementTree", "Document", "_Element"})
STRUCTURED_TYPE = "dict[str, Any]"

LEGACY_CODEC_CALLS = frozenset({
    "marshal", "unmarshal", "process_xml", "processXml",
    "to_xml", "from_xml", "tostring", "fromstring",
})
LEGACY_QUALIFIED_CALLS = frozenset({"xmltodict.parse", "xmltodict.unparse"})
ENCODE_CALL = "json.dumps"

JSON_IMPORT = "import json"
ANY_IMPORT = "from typing import Any"

STOP_WORDS = frozenset({
    "the", "and", "for", "with", "from", "into", "onto", "this", "that", "these",
    "those", "are", "was", "were", "has", "have", "its", "via", "per", "api",
    "endpoint", "operation", "request", "response",
})
MIN_SHARED_WORDS = 2
MIN_WORD_LENGTH = 3

_PATH_PARAM = re.compile(r"\{[^}]*\}")
_WORD = re.compile(r"[a-z0-9]+")


# -- correlation -----------------------------------------------------------

def normalize_path(path: str) -> str:
    """Lower-case, drop {params}, collapse slashes: /Sale/{id}/ -> /sale."""
    lowered = _PATH_PARAM.sub("", path.lower())
    return "/" + "/".join(part for part in lowered.split("/") if part)


def significant_words(text: str | None) -> set[str]:
    return {
        word for word in _WORD.findall((text or "").lower())
        if len(word) >= MIN_WORD_LENGTH and word not in STOP_WORDS
    }


def _contains_either(a: str, b: str) -> bool:
    return bool(a) and bool(b) and (a in b or b in a)


def find_legacy_operation(legacy: OperationCatalog | None, target: Operation) -> Operation | None:
    """Best legacy counterpart of ``target``, or None when nothing correlates."""
    if legacy is None or len(legacy) == 0:
        return None

    direct = legacy.get(target.id)
    if direct is not None:
        return direct

    target_path = normalize_path(target.path)
    if target_path.strip("/"):
        for candidate in legacy:
            candidate_path = normalize_path(candidate.path)
            if candidate_path.strip("/") and _contains_either(candidate_path, target_path):
                return candidate

    target_id = target.id.lower()
    for candidate in legacy:
        if _contains_either(candidate.id.lower(), target_id):
            return candidate

    target_words = significant_words(target.summary)
    if len(target_words) >= MIN_SHARED_WORDS:
        for candidate in legacy:
            if len(target_words & significant_words(candidate.summary)) >= MIN_SHARED_WORDS:
                return candidate
    return None


# -- source editing --------------------------------------------------------

@dataclass(frozen=True)
class SourceEdit:
    """Replace source[start:end] (character offsets) with ``text``."""

    start: int
    end: int
    text: str


class ParsedUnit:
    """One source file: its text, syntax tree and the pending edits.

    Shared by every LegacyCodeLocation in the file.
    """

    def __init__(self, path: Path, source: str):
        self.path = path
        self.source = source
        self.tree = ast.parse(source, filename=str(path))
        self.edits: list[SourceEdit] = []
        self.newline = "\r\n" if "\r\n" in source else "\n"
        self._lines = source.split("\n")
        self._line_starts = [0]
        for line in self._lines[:-1]:
            self._line_starts.append(self._line_starts[-1] + len(line) + 1)

    def offset(self, lineno: int, col_offset: int) -> int:
        """Character offset of an ast (1-based line, UTF-8 byte column) position."""
        line = self._lines[lineno - 1]
        chars = len(line.encode("utf-8")[:col_offset].decode("utf-8"))
        return self._line_starts[lineno - 1] + chars

    def span(self, node: ast.AST) -> tuple[int, int]:
        return (
            self.offset(node.lineno, node.col_offset),
            self.offset(node.end_lineno, node.end_col_offset),
        )

    def segment(self, node: ast.AST) -> str:
        start, end = self.span(node)
        return self.source[start:end]

    @property
    def modified(self) -> bool:
        return bool(self.edits)

    def replace(self, node: ast.AST, text: str) -> bool:
        start, end = self.span(node)
        return self.add_edit(SourceEdit(start, end, text))

    def add_edit(self, edit: SourceEdit) -> bool:
        """Record ``edit``; identical spans are recorded once."""
        for existing in self.edits:
            if (existing.start, existing.end) == (edit.start, edit.end):
                return False
            if edit.start < existing.end and existing.start < edit.end:
                raise MigrationError(str(self.path), f"overlapping edits at {edit.start}")
        self.edits.append(edit)
        return True

    def remove_statement(self, node: ast.stmt, top_level: bool) -> None:
        start, end = self.span(node)
        line_start = self._line_starts[node.lineno - 1]
        before = self.source[line_start:start]
        end_line_start = self._line_starts[node.end_lineno - 1]
        rest_of_line = self._lines[node.end_lineno - 1][end - end_line_start:]
        if top_level and not before.strip() and not rest_of_line.strip():
            # Whole lines: drop them including the newline
            line_end = (self._line_starts[node.end_lineno]
                        if node.end_lineno < len(self._lines) else len(self.source))
            self.add_edit(SourceEdit(line_start, line_end, ""))
        else:
            self.add_edit(SourceEdit(start, end, "pass"))

    def insert_line(self, lineno: int, text: str) -> None:
        """Insert ``text`` as a new line before 1-based line ``lineno``."""
        if lineno > len(self._lines):
            prefix = "" if self.source.endswith("\n") or not self.source else self.newline
            self.add_edit(SourceEdit(len(self.source), len(self.source), prefix + text + self.newline))
        else:
            position = self._line_starts[lineno - 1]
            self.add_edit(SourceEdit(position, position, text + self.newline))

    def render(self) -> str:
        result = self.source
        for edit in sorted(self.edits, key=lambda e: (e.start, e.end), reverse=True):
            result = result[:edit.start] + edit.text + result[edit.end:]
        return result


@dataclass
class LegacyCodeLocation:
    """A candidate routine inside a legacy file."""

    file_path: Path
    unit: ParsedUnit
    routine: ast.FunctionDef | ast.AsyncFunctionDef
    needs_json: bool = False
    needs_any: bool = False
    edits_applied: int = 0

    @property
    def name(self) -> str:
        return self.routine.name


# -- predicates ------------------------------------------------------------

def has_legacy_indicators(text: str) -> bool:
    lowered = text.lower()
    return any(indicator.lower() in lowered for indicator in LEGACY_FILE_INDICATORS)


def is_legacy_media_type(value: object) -> bool:
    if not isinstance(value, str):
        return False
    return value.split(";", 1)[0].strip().lower() in LEGACY_MEDIA_TYPES


def _dotted(node: ast.AST) -> str:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        prefix = _dotted(node.value)
        return f"{prefix}.{node.attr}" if prefix else ""
    return ""


def is_legacy_codec_call(node: ast.Call) -> bool:
    func = node.func
    if isinstance(func, ast.Name):
        return func.id in LEGACY_CODEC_CALLS
    if isinstance(func, ast.Attribute):
        return func.attr in LEGACY_CODEC_CALLS or _dotted(func) in LEGACY_QUALIFIED_CALLS
    return False


def names_document_type(annotation: ast.AST | None) -> bool:
    if annotation is None:
        return False
    for node in ast.walk(annotation):
        if isinstance(node, ast.Name) and node.id in DOCUMENT_TYPES:
            return True
        if isinstance(node, ast.Attribute) and node.attr in DOCUMENT_TYPES:
            return True
        if isinstance(node, ast.Constant) and isinstance(node.value, str) and \
                node.value.rsplit(".", 1)[-1] in DOCUMENT_TYPES:
            return True
    return False


def is_legacy_import(node: ast.AST) -> bool:
    return any(_legacy_module(name) for name in _imported_modules(node))


def _imported_modules(node: ast.AST) -> list[str]:
    if isinstance(node, ast.Import):
        return [alias.name for alias in node.names]
    if isinstance(node, ast.ImportFrom) and node.level == 0 and node.module:
        return [node.module]
    return []


def _legacy_module(module: str) -> bool:
    return any(module == p or module.startswith(p + ".") for p in LEGACY_IMPORT_PREFIXES)


def is_candidate_routine(unit: ParsedUnit, routine: ast.FunctionDef | ast.AsyncFunctionDef) -> bool:
    for decorator in routine.decorator_list:
        for node in ast.walk(decorator):
            if isinstance(node, ast.Constant) and is_legacy_media_type(node.value):
                return True
    text = unit.segment(routine)
    return any(trigger in text for trigger in ROUTINE_TRIGGERS)


def _parameters(args: ast.arguments) -> list[ast.arg]:
    found = list(args.posonlyargs) + list(args.args) + list(args.kwonlyargs)
    found += [a for a in (args.vararg, args.kwarg) if a is not None]
    return found


# -- engine ----------------------------------------------------------------

class MigrationEngine:
    """Scans a source tree for legacy wire-format code and rewrites it."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def correlate(self, legacy: OperationCatalog | None,
                  operations: Iterable[Operation]) -> list[UnitOutcome]:
        """Exactly one mapping outcome per target operation."""
        outcomes = []
        for operation in operations:
            match = find_legacy_operation(legacy, operation)
            outcome = UnitOutcome(operation.id, counts=False, mappings=[
                OperationMapping(match.id if match else None, operation.id, operation.primary_tag)
            ])
            if match is None:
                logger.info("No legacy operation correlates with %s", operation.id)
                outcome.todos.append(f"Map unmapped operation {operation.id} to a legacy operation manually")
            else:
                logger.info("Correlated %s -> %s", operation.id, match.id)
            outcomes.append(outcome)
        return outcomes

    def find_locations(self, unit: ParsedUnit) -> list[LegacyCodeLocation]:
        return [
            LegacyCodeLocation(unit.path, unit, node)
            for node in ast.walk(unit.tree)
            if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef))
            and is_candidate_routine(unit, node)
        ]

    def rewrite_location(self, location: LegacyCodeLocation) -> int:
        """Record the edits for one routine; returns how many were added."""
        unit = location.unit
        routine = location.routine
        added = 0

        for decorator in routine.decorator_list:
            added += self._rewrite_media_types(unit, decorator)
        for stmt in routine.body:
            added += self._rewrite_media_types(unit, stmt)

        for param in _parameters(routine.args):
            if names_document_type(param.annotation) and unit.replace(param.annotation, STRUCTURED_TYPE):
                location.needs_any = True
                added += 1

        for stmt in routine.body:
            for node in ast.walk(stmt):
                if isinstance(node, ast.Call) and is_legacy_codec_call(node):
                    if unit.replace(node.func, ENCODE_CALL):
                        location.needs_json = True
                        added += 1

        location.edits_applied = added
        if added:
            logger.debug("Rewrote %d spans in %s.%s", added, unit.path.name, routine.name)
        return added

    def _rewrite_media_types(self, unit: ParsedUnit, root: ast.AST) -> int:
        added = 0
        for node in ast.walk(root):
            if isinstance(node, ast.Constant) and is_legacy_media_type(node.value):
                if unit.replace(node, repr(JSON_MEDIA_TYPE)):
                    added += 1
        return added

    def fix_imports(self, unit: ParsedUnit, needs_json: bool, needs_any: bool) -> None:
        """Drop legacy imports, add json / typing.Any where the rewrite needs them."""
        top_level = set(map(id, unit.tree.body))
        for node in ast.walk(unit.tree):
            if isinstance(node, (ast.Import, ast.ImportFrom)) and is_legacy_import(node):
                kept = []
                if isinstance(node, ast.Import):
                    kept = [a for a in node.names if not _legacy_module(a.name)]
                if kept:
                    unit.replace(node, "import " + ", ".join(
                        a.name + (f" as {a.asname}" if a.asname else "") for a in kept
                    ))
                else:
                    unit.remove_statement(node, id(node) in top_level)

        missing = []
        if needs_json and not self._has_import(unit, "json", None):
            missing.append(JSON_IMPORT)
        if needs_any and not self._has_import(unit, "typing", "Any"):
            missing.append(ANY_IMPORT)
        if missing:
            unit.insert_line(self._import_line(unit), unit.newline.join(missing))

    @staticmethod
    def _has_import(unit: ParsedUnit, module: str, name: str | None) -> bool:
        for node in unit.tree.body:
            if name is None and isinstance(node, ast.Import):
                if any(a.name == module and a.asname is None for a in node.names):
                    return True
            if name is not None and isinstance(node, ast.ImportFrom) and node.module == module:
                if any(a.name == name and a.asname is None for a in node.names):
                    return True
        return False

    @staticmethod
    def _import_line(unit: ParsedUnit) -> int:
        """Line before which new imports go: after the last top-level import."""
        body = unit.tree.body
        last = None
        for node in body:
            if isinstance(node, (ast.Import, ast.ImportFrom)):
                last = node
        if last is not None:
            return last.end_lineno + 1
        if body and isinstance(body[0], ast.Expr) and isinstance(getattr(body[0], "value", None), ast.Constant) \
                and isinstance(body[0].value.value, str):
            return body[0].end_lineno + 1
        return 1

    def migrate_file(self, path: Path) -> UnitOutcome | None:
        """Rewrite one file; None when the file carries no legacy code."""
        # newline="" keeps CRLF endings so spans match the bytes written back
        with path.open(encoding="utf-8", newline="") as handle:
            text = handle.read()
        if not has_legacy_indicators(text):
            return None
        try:
            unit = ParsedUnit(path, text)
        except SyntaxError as exc:
            raise MigrationError(str(path), f"cannot parse: {exc.msg} (line {exc.lineno})") from exc

        locations = self.find_locations(unit)
        if not locations:
            logger.debug("%s has legacy indicators but no candidate routines", path)
            return None
        needs_json = needs_any = False
        for location in locations:
            if self.rewrite_location(location):
                needs_json = needs_json or location.needs_json
                needs_any = needs_any or location.needs_any
        if not unit.modified:
            return None

        self.fix_imports(unit, needs_json, needs_any)
        rewritten = unit.render()
        if self.dry_run:
            logger.info("[dry-run] would rewrite %s (%d edits)", path, len(unit.edits))
        else:
            path.write_text(rewritten, encoding="utf-8", newline="")
            logger.info("Rewrote %s (%d edits)", path, len(unit.edits))
        return UnitOutcome(
            str(path),
            updated=[str(path)],
            todos=[f"Review rewritten legacy code in {path}"],
        )

    def migrate(self, layout: DetectedLayout, exclude: Iterable[str] = ()) -> list[UnitOutcome]:
        """One outcome per rewritten or failed file under the layout's source root."""
        skip = {str(Path(p).resolve()) for p in exclude}
        outcomes = []
        scanned = 0
        for path in iter_source_files(Path(layout.source_root)):
            if str(path.resolve()) in skip:
                continue
            scanned += 1
            try:
                outcome = self.migrate_file(path)
            except MigrationError as exc:
                error = exc
            except (OSError, ValueError) as exc:
                error = MigrationError(str(path), str(exc))
            else:
                if outcome is not None:
                    outcomes.append(outcome)
                continue
            logger.error("%s", error)
            outcomes.append(UnitOutcome.failure(str(path), str(error)))
        logger.info("Scanned %d files, %d rewritten", scanned,
                    sum(1 for o in outcomes if o.ok))
        return outcomes

    def run(self, legacy: OperationCatalog | None, target: OperationCatalog,
            layout: DetectedLayout, operations: list[Operation] | None = None,
            exclude: Iterable[str] = ()) -> list[UnitOutcome]:
        operations = target.operations if operations is None else operations
        outcomes = self.correlate(legacy, operations)
        outcomes += self.migrate(layout, exclude)
        return outcomes
