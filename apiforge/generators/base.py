"""Shared plumbing for the artifact generators: templates, imports, writes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable

import jinja2

from ..naming import module_file_name, to_snake_name, to_type_name

if TYPE_CHECKING:
    from ..catalog import Operation
    from ..layout import DetectedLayout
    from ..spec_loader import LoadedSpec

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates"

# Module roots rendered in the first import block of generated files
_STDLIB_MODULES = frozenset({
    "__future__", "asyncio", "datetime", "decimal", "json", "logging",
    "random", "typing", "urllib", "uuid",
})


@dataclass(frozen=True)
class GeneratedFile:
    """A file produced by a generator. ``overwritten`` means it already existed."""

    path: Path
    overwritten: bool


def create_environment() -> jinja2.Environment:
    env = jinja2.Environment(
        loader=jinja2.FileSystemLoader(str(TEMPLATE_DIR)),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["pyrepr"] = repr
    return env


def write_source(path: Path, content: str, dry_run: bool = False) -> GeneratedFile:
    """Write ``content`` to ``path`` unless ``dry_run``; classify created vs updated."""
    overwritten = path.exists()
    if dry_run:
        logger.info("[dry-run] would write %s", path)
        return GeneratedFile(path, overwritten)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    logger.debug("Wrote %s (%d bytes)", path, len(content))
    return GeneratedFile(path, overwritten)


def format_imports(lines: Iterable[str]) -> str:
    """Merge ``import x`` / ``from x import y`` lines into sorted groups.

    Standard-library imports come first, then third-party, then absolute
    imports from the generated tree (``local:`` prefix), then relative ones.
    """
    plain: dict[str, set[str]] = {"stdlib": set(), "third": set(), "local": set()}
    froms: dict[str, dict[str, set[str]]] = {"stdlib": {}, "third": {}, "local": {}, "relative": {}}
    for line in lines:
        group = None
        if line.startswith("local:"):
            group, line = "local", line[len("local:"):]
        if line.startswith("import "):
            module = line[len("import "):].strip()
            group = group or _group_of(module)
            plain[group].add(module)
        elif line.startswith("from "):
            module, _, names = line[len("from "):].partition(" import ")
            module = module.strip()
            if module.startswith("."):
                group = "relative"
            group = group or _group_of(module)
            froms[group].setdefault(module, set()).update(
                n.strip() for n in names.split(",") if n.strip()
            )
    blocks = []
    for group in ("stdlib", "third", "local", "relative"):
        rendered = [f"import {m}" for m in sorted(plain.get(group, ()))]
        rendered += [
            f"from {m} import {', '.join(sorted(names))}"
            for m, names in sorted(froms[group].items())
        ]
        if rendered:
            blocks.append("\n".join(rendered))
    return "\n\n".join(blocks)


def _group_of(module: str) -> str:
    return "stdlib" if module.split(".", 1)[0] in _STDLIB_MODULES else "third"


class ArtifactGenerator:
    """Base class: one instance per run, fed one operation at a time.

    Subclasses implement ``generate``. Tag-scoped generators call
    ``claim_tag`` so the complete tag artifact is produced once, by the first
    operation of that tag seen in the run.
    """

    category: str = ""
    name: str = "artifact"

    def __init__(self, env: jinja2.Environment | None = None, dry_run: bool = False):
        self.env = env or create_environment()
        self.dry_run = dry_run
        self._claimed_tags: set[str] = set()

    def begin_run(self, dry_run: bool = False) -> None:
        """Reset per-run state."""
        self.dry_run = dry_run
        self._claimed_tags.clear()

    def generate(self, layout: DetectedLayout, spec: LoadedSpec,
                 operation: Operation) -> list[GeneratedFile]:
        raise NotImplementedError

    def is_claimed(self, tag: str) -> bool:
        return tag in self._claimed_tags

    def claim_tag(self, tag: str) -> None:
        self._claimed_tags.add(tag)

    def render(self, template_name: str, **context: Any) -> str:
        return self.env.get_template(template_name).render(**context)

    def write(self, path: Path, content: str) -> GeneratedFile:
        return write_source(path, content, self.dry_run)

    def type_file(self, layout: DetectedLayout, tag: str, type_name: str) -> Path:
        return layout.tag_dir(self.category, tag) / module_file_name(type_name)


def tag_class_name(tag: str, suffix: str) -> str:
    """TransactionsClient, PaymentMethodsService, ..."""
    return to_type_name(tag) + suffix


def record_import(layout: DetectedLayout, tag: str, record: str) -> str:
    """Absolute import line for a generated record of ``tag``."""
    from ..layout import DATA_TYPES

    module = f"{layout.tag_module(DATA_TYPES, tag)}.{to_snake_name(record)}"
    return f"local:from {module} import {record}"
