"""Detect the module layout of an existing Python service tree.

Base module path, in priority order:
  1. exactly one file builds an application (FastAPI(), Flask(), ...) or
     defines create_app -> that file's package
  2. the package with the most framework-component markers
  3. the shortest dotted prefix shared by at least half of all packages
  4. otherwise LayoutUndetectable

Each category package is then located under the base by conventional name,
then by marker density, then defaulted to ``{base}.{default name}``.
"""

from __future__ import annotations

import ast
import logging
from collections import Counter
from dataclasses import asdict, dataclass, field
from pathlib import Path

from .errors import LayoutUndetectable
from .naming import to_package_name

logger = logging.getLogger(__name__)

DATA_TYPES = "data_types"
CLIENT = "client"
SERVICE = "service"
ENDPOINT = "endpoint"
MAPPER = "mapper"

CATEGORIES = (DATA_TYPES, CLIENT, SERVICE, ENDPOINT, MAPPER)

# Sub-package used when nothing better is found
DEFAULT_CATEGORY_NAMES: dict[str, str] = {
    DATA_TYPES: "models",
    CLIENT: "clients",
    SERVICE: "services",
    ENDPOINT: "routers",
    MAPPER: "mappers",
}

# Conventional direct children of the base package, checked in order
CATEGORY_NAME_HINTS: dict[str, tuple[str, ...]] = {
    DATA_TYPES: ("models", "model", "schemas", "dto", "dtos", "domain", "entities"),
    CLIENT: ("clients", "client", "integrations", "integration", "external"),
    SERVICE: ("services", "service", "business", "logic"),
    ENDPOINT: ("routers", "router", "api", "routes", "controllers", "controller",
               "web", "rest", "endpoints"),
    MAPPER: ("mappers", "mapper", "mapping", "converters", "converter"),
}

APP_FACTORIES = frozenset({"FastAPI", "Flask", "Starlette", "Quart", "Sanic", "Litestar"})
APP_FACTORY_FUNCTIONS = frozenset({"create_app"})
ROUTE_DECORATORS = frozenset({"get", "post", "put", "delete", "patch", "route", "api_route"})
ROUTER_FACTORIES = frozenset({"APIRouter", "Blueprint"})
HTTP_CLIENT_FACTORIES = frozenset({"httpx.Client", "httpx.AsyncClient", "requests.Session"})
RECORD_BASES = frozenset({"BaseModel", "TypedDict"})
CLASS_SUFFIXES: dict[str, tuple[str, ...]] = {
    SERVICE: ("Service",),
    CLIENT: ("Client",),
    MAPPER: ("Mapper", "Converter"),
}

IGNORED_DIRS = frozenset({
    ".git", ".hg", ".venv", "venv", "env", "__pycache__", "node_modules",
    "build", "dist", ".tox", ".mypy_cache", ".pytest_cache", "tests", "test",
})

LAYOUT_FILE = "detected-layout.json"


@dataclass
class DetectedLayout:
    """Dotted module paths for the base package and each category."""

    base_package: str
    source_root: str
    data_types: str = ""
    client: str = ""
    service: str = ""
    endpoint: str = ""
    mapper: str = ""

    def __post_init__(self) -> None:
        for category in CATEGORIES:
            if not getattr(self, category):
                setattr(self, category, default_category_path(self.base_package, category))

    def validate(self) -> None:
        if not self.base_package or not self.base_package.strip():
            raise LayoutUndetectable("Base package is required but was not detected")
        missing = [c for c in CATEGORIES if not getattr(self, c).strip()]
        if missing:
            raise LayoutUndetectable(f"Category paths not detected: {', '.join(missing)}")

    def category_path(self, category: str) -> str:
        if category not in CATEGORIES:
            raise ValueError(f"Unknown category: {category}")
        return getattr(self, category)

    def module_dir(self, module_path: str) -> Path:
        return Path(self.source_root, *module_path.split("."))

    def tag_dir(self, category: str, tag: str) -> Path:
        """Directory for one tag under a category: {category}/{tag package}."""
        return self.module_dir(self.category_path(category)) / to_package_name(tag)

    def tag_module(self, category: str, tag: str) -> str:
        return f"{self.category_path(category)}.{to_package_name(tag)}"

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


def default_category_path(base: str, category: str) -> str:
    return f"{base}.{DEFAULT_CATEGORY_NAMES[category]}" if base else ""


@dataclass
class ModuleStats:
    """What the scanner saw in one package."""

    path: str
    file_count: int = 0
    markers: Counter = field(default_factory=Counter)

    @property
    def component_count(self) -> int:
        return sum(self.markers.values())


def _dotted(node: ast.AST) -> str:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        prefix = _dotted(node.value)
        return f"{prefix}.{node.attr}" if prefix else node.attr
    if isinstance(node, ast.Call):
        return _dotted(node.func)
    return ""


class _MarkerVisitor(ast.NodeVisitor):
    """Counts application-entry and component markers in one module."""

    def __init__(self) -> None:
        self.is_entry = False
        self.markers: Counter = Counter()

    def visit_Module(self, node: ast.Module) -> None:
        for stmt in node.body:
            if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)) and \
                    stmt.name in APP_FACTORY_FUNCTIONS:
                self.is_entry = True
        self.generic_visit(node)

    def visit_Call(self, node: ast.Call) -> None:
        callee = _dotted(node.func)
        short = callee.rsplit(".", 1)[-1]
        if short in APP_FACTORIES:
            self.is_entry = True
        elif short in ROUTER_FACTORIES:
            self.markers[ENDPOINT] += 1
        elif callee in HTTP_CLIENT_FACTORIES:
            self.markers[CLIENT] += 1
        self.generic_visit(node)

    def _visit_function(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> None:
        for decorator in node.decorator_list:
            target = decorator.func if isinstance(decorator, ast.Call) else decorator
            if isinstance(target, ast.Attribute) and target.attr in ROUTE_DECORATORS:
                self.markers[ENDPOINT] += 1
        self.generic_visit(node)

    visit_FunctionDef = _visit_function
    visit_AsyncFunctionDef = _visit_function

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        bases = {_dotted(b).rsplit(".", 1)[-1] for b in node.bases}
        decorators = {_dotted(d).rsplit(".", 1)[-1] for d in node.decorator_list}
        if bases & RECORD_BASES or "dataclass" in decorators:
            self.markers[DATA_TYPES] += 1
        for category, suffixes in CLASS_SUFFIXES.items():
            if node.name.endswith(suffixes):
                self.markers[category] += 1
        self.generic_visit(node)


def find_source_root(project_root: Path) -> Path:
    src = project_root / "src"
    if src.is_dir() and any(iter_source_files(src)):
        return src
    return project_root


def iter_source_files(root: Path):
    for path in sorted(root.rglob("*.py")):
        relative = path.relative_to(root)
        if any(part in IGNORED_DIRS for part in relative.parts[:-1]):
            continue
        name = path.name
        if name == "conftest.py" or name.startswith("test_") or name.endswith("_test.py"):
            continue
        yield path


def module_path_of(file_path: Path, source_root: Path) -> str:
    """Dotted package path of the directory holding ``file_path``."""
    return ".".join(file_path.relative_to(source_root).parts[:-1])


class LayoutDetector:
    """Infers a DetectedLayout from a project tree."""

    def detect(self, project_root: str | Path) -> DetectedLayout:
        root = Path(project_root).resolve()
        if not root.is_dir():
            raise LayoutUndetectable(f"Project root is not a directory: {project_root}")
        source_root = find_source_root(root)
        logger.info("Scanning project for packages at: %s", source_root)

        modules, entry_modules = self.scan(source_root)
        base = self.determine_base(modules, entry_modules)
        layout = DetectedLayout(base_package=base, source_root=str(source_root))
        for category in CATEGORIES:
            found = self.find_category(modules, base, category)
            if found:
                setattr(layout, category, found)
        layout.validate()
        logger.info("Detected layout: %s", layout.to_dict())
        return layout

    def scan(self, source_root: Path) -> tuple[dict[str, ModuleStats], list[str]]:
        """Parse every source file; return per-package stats and entry packages."""
        modules: dict[str, ModuleStats] = {}
        entry_modules: list[str] = []
        parsed = 0
        for path in iter_source_files(source_root):
            try:
                tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
            except (SyntaxError, UnicodeDecodeError, ValueError) as exc:
                logger.warning("Failed to parse file: %s (%s)", path, exc)
                continue
            parsed += 1
            module_path = module_path_of(path, source_root)
            stats = modules.setdefault(module_path, ModuleStats(module_path))
            stats.file_count += 1
            visitor = _MarkerVisitor()
            visitor.visit(tree)
            stats.markers.update(visitor.markers)
            if visitor.is_entry:
                logger.info("Found application entry point in package: %s", module_path or "<root>")
                entry_modules.append(module_path)
        if parsed == 0:
            raise LayoutUndetectable(f"No parseable Python source files under {source_root}")
        return modules, entry_modules

    def determine_base(self, modules: dict[str, ModuleStats], entry_modules: list[str]) -> str:
        if len(entry_modules) == 1 and entry_modules[0]:
            logger.info("Using application entry package as base: %s", entry_modules[0])
            return entry_modules[0]

        candidates = [m for m in sorted(modules) if m and modules[m].component_count > 0]
        if candidates:
            best = max(candidates, key=lambda m: modules[m].component_count)
            logger.info(
                "Using package with most components as base: %s (%d)",
                best, modules[best].component_count,
            )
            return best

        common = common_root_package([m for m in modules if m])
        if common:
            logger.info("Using common root package as base: %s", common)
            return common

        raise LayoutUndetectable(
            "Unable to determine base package: no application entry point, no framework "
            "components and no shared package prefix were found"
        )

    def find_category(self, modules: dict[str, ModuleStats], base: str, category: str) -> str:
        """Direct child of ``base`` holding ``category``; nested packages count toward it."""
        prefix = base + "."
        for hint in CATEGORY_NAME_HINTS[category]:
            candidate = prefix + hint
            if any(m == candidate or m.startswith(candidate + ".") for m in modules):
                return candidate

        density: Counter = Counter()
        for module, stats in modules.items():
            if module.startswith(prefix) and stats.markers[category] > 0:
                child = prefix + module[len(prefix):].split(".", 1)[0]
                density[child] += stats.markers[category]
        if density:
            return min(density, key=lambda m: (-density[m], m))

        return default_category_path(base, category)


def common_root_package(packages: list[str]) -> str | None:
    """Shortest proper dotted prefix shared by at least half of ``packages``."""
    if not packages:
        return None
    counts: Counter = Counter()
    for package in packages:
        parts = package.split(".")
        for i in range(1, len(parts)):
            counts[".".join(parts[:i])] += 1
    qualifying = [p for p, n in counts.items() if n * 2 >= len(packages)]
    if not qualifying:
        return None
    return min(qualifying, key=lambda p: (p.count("."), p))
