"""Run reports: a markdown summary and a counts-only JSON summary."""

from __future__ import annotations

import dataclasses
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import jinja2

from .errors import ReportWriteError
from .generators.base import create_environment

if TYPE_CHECKING:
    from .config import RunConfig
    from .layout import DetectedLayout
    from .results import GenerationResult
    from .spec_loader import LoadedSpec

logger = logging.getLogger(__name__)

REPORT_NAME = "GENERATION_REPORT_{mode}_{scope}_{timestamp}.md"
SUMMARY_NAME = "GENERATION_SUMMARY_{mode}_{scope}_{timestamp}.json"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

DEFAULT_FOLLOW_UPS = [
    "Review generated code for correctness",
    "Configure the target API base URL and credentials",
    "Run integration tests against a sandbox environment",
    "Review and update error handling as needed",
    "Verify PCI compliance for card data handling",
]
MIGRATION_FOLLOW_UPS = [
    "Test backward compatibility with existing clients",
    "Plan the migration strategy for production",
    "Update API documentation",
]


class JsonEncoder(json.JSONEncoder):
    """Encodes paths, dataclasses, sets and datetimes; one instance per run."""

    def __init__(self, **kwargs: Any):
        kwargs.setdefault("indent", 2)
        kwargs.setdefault("sort_keys", False)
        super().__init__(**kwargs)

    def default(self, o: Any) -> Any:
        if isinstance(o, Path):
            return str(o)
        if dataclasses.is_dataclass(o) and not isinstance(o, type):
            to_dict = getattr(o, "to_dict", None)
            return to_dict() if callable(to_dict) else dataclasses.asdict(o)
        if isinstance(o, (set, frozenset)):
            return sorted(o)
        if isinstance(o, datetime):
            return o.isoformat()
        return super().default(o)

    def write(self, value: Any, path: Path) -> None:
        path.write_text(self.encode(value) + "\n", encoding="utf-8")


def spec_info(spec: LoadedSpec | None) -> dict[str, Any] | None:
    if spec is None:
        return None
    return {
        "source": spec.source,
        "size": spec.size,
        "sha256": spec.sha256,
        "title": spec.title,
        "version": spec.version,
    }


def summary_counts(result: GenerationResult) -> dict[str, Any]:
    return {
        "created": len(result.created_files),
        "updated": len(result.updated_files),
        "deleted": len(result.deleted_files),
        "mappings": len(result.operation_mappings),
        "unmapped": len(result.unmapped),
        "errors": len(result.errors),
        "todos": len(result.todos),
        "status": result.status,
    }


class ReportBuilder:
    """Renders the run report into the project root."""

    def __init__(self, encoder: JsonEncoder, env: jinja2.Environment | None = None):
        self.encoder = encoder
        self.env = env or create_environment()

    def follow_ups(self, result: GenerationResult, config: RunConfig) -> list[str]:
        if result.todos:
            return list(result.todos)
        items = list(DEFAULT_FOLLOW_UPS)
        if config.is_migration:
            items += MIGRATION_FOLLOW_UPS
        return items

    def render(self, result: GenerationResult, config: RunConfig, layout: DetectedLayout | None,
               target: LoadedSpec | None, legacy: LoadedSpec | None, generated_at: datetime) -> str:
        return self.env.get_template("report.md.j2").render(
            generated_at=generated_at.isoformat(timespec="seconds"),
            config=config,
            specs=[("Target", spec_info(target)), ("Legacy", spec_info(legacy))],
            layout_json=self.encoder.encode(layout) if layout is not None else None,
            result=result,
            show_mappings=config.is_migration,
            follow_ups=self.follow_ups(result, config),
        )

    def build(self, result: GenerationResult, config: RunConfig, layout: DetectedLayout | None,
              target: LoadedSpec | None, legacy: LoadedSpec | None,
              now: datetime | None = None) -> str:
        """Write both reports; return the markdown report path.

        Under dry-run the path is computed but nothing is written. A write
        failure is logged and never raised.
        """
        now = now or datetime.now()
        names = {"mode": config.mode, "scope": config.scope, "timestamp": now.strftime(TIMESTAMP_FORMAT)}
        root = Path(config.project_root)
        report_path = root / REPORT_NAME.format(**names)
        summary_path = root / SUMMARY_NAME.format(**names)

        if config.dry_run:
            logger.info("[dry-run] would write %s", report_path)
            return str(report_path)
        try:
            self._write(result, config, layout, target, legacy, now, report_path, summary_path)
        except ReportWriteError as exc:
            logger.error("%s", exc)
        return str(report_path)

    def _write(self, result: GenerationResult, config: RunConfig, layout: DetectedLayout | None,
               target: LoadedSpec | None, legacy: LoadedSpec | None, now: datetime,
               report_path: Path, summary_path: Path) -> None:
        content = self.render(result, config, layout, target, legacy, now)
        try:
            report_path.write_text(content, encoding="utf-8")
            self.encoder.write(summary_counts(result), summary_path)
        except OSError as exc:
            raise ReportWriteError(f"Failed to write report {report_path}: {exc}") from exc
        logger.info("Report written to %s", report_path)
