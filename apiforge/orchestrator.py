"""Sequences one run and isolates per-unit failures.

Stages:
  ScanLayout -> LoadSpecs -> FilterScope -> Backup -> Generate -> Migrate
  -> Report -> Finalize

ScanLayout, LoadSpecs and an empty FilterScope are fatal: the run stops with
one error entry and a failed status. Backup only runs for non-dry-run
migrations and never fails the run. Generate and Migrate turn each unit of
work into a UnitOutcome folded into the result, so one failing operation or
file never hides the progress made by the others.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from .backup import GitBackup
from .catalog import OperationCatalog
from .config import SCOPE_OPERATIONS, SCOPE_TAGS
from .errors import FatalConfigError, GenerationError, LayoutUndetectable, SpecError
from .generators import FieldMapperGenerator, create_environment, default_generators
from .layout import LAYOUT_FILE, LayoutDetector
from .migration import MigrationEngine
from .report import JsonEncoder, ReportBuilder
from .results import GenerationResult, OperationMapping, UnitOutcome
from .spec_loader import SpecLoader

if TYPE_CHECKING:
    from .catalog import Operation
    from .config import RunConfig
    from .generators import ArtifactGenerator
    from .layout import DetectedLayout
    from .spec_loader import LoadedSpec

logger = logging.getLogger(__name__)


class Orchestrator:
    """One run of the pipeline; collaborators are passed in by ``build_orchestrator``."""

    def __init__(
        self,
        loader: SpecLoader,
        detector: LayoutDetector,
        generators: list[ArtifactGenerator],
        migration: MigrationEngine,
        reports: ReportBuilder,
        encoder: JsonEncoder,
        backup: GitBackup | None = None,
    ):
        self.loader = loader
        self.detector = detector
        self.generators = generators
        self.migration = migration
        self.reports = reports
        self.encoder = encoder
        self.backup = backup or GitBackup()
        self.layout: DetectedLayout | None = None
        self.target_spec: LoadedSpec | None = None
        self.legacy_spec: LoadedSpec | None = None

    def run(self, config: RunConfig) -> GenerationResult:
        result = GenerationResult(mode=config.mode, scope=config.scope)
        self.begin_run(config)
        logger.info("Starting %s run (scope=%s, dry_run=%s)", config.mode, config.scope, config.dry_run)
        try:
            self.layout = self.scan_layout(config)
            self.target_spec, self.legacy_spec = self.load_specs(config)
            target = OperationCatalog.from_spec(self.target_spec, "target")
            legacy = (OperationCatalog.from_spec(self.legacy_spec, "legacy")
                      if self.legacy_spec is not None else None)
            operations = self.filter_scope(config, target)
        except (FatalConfigError, SpecError, LayoutUndetectable) as exc:
            logger.error("Run aborted: %s", exc)
            result.add_error(str(exc))
            result.finalize()
            return result

        for warning in self.target_spec.warnings:
            result.add_todo(f"Review target spec warning: {warning}")

        if config.is_migration and not config.dry_run:
            self.backup.create(config.project_root, config.backup_label)

        for operation in operations:
            result.absorb(self.generate_operation(config, operation))

        if config.is_migration:
            for outcome in self.migration.run(
                legacy, target, self.layout, operations,
                exclude=result.created_files + result.updated_files,
            ):
                result.absorb(outcome)

        result.finalize()
        result.report_path = self.reports.build(
            result, config, self.layout, self.target_spec, self.legacy_spec,
        )
        logger.info(
            "Run finished: %s (%d created, %d updated, %d errors)",
            result.status, len(result.created_files), len(result.updated_files), len(result.errors),
        )
        return result

    def scan_layout(self, config: RunConfig) -> DetectedLayout:
        layout = self.detector.detect(config.project_root)
        path = Path(config.project_root) / LAYOUT_FILE
        if config.dry_run:
            logger.info("[dry-run] would write %s", path)
            return layout
        try:
            self.encoder.write(layout, path)
        except OSError as exc:
            logger.warning("Failed to save detected layout to %s: %s", path, exc)
        return layout

    def load_specs(self, config: RunConfig) -> tuple[LoadedSpec, LoadedSpec | None]:
        target = self.loader.load(config.target_spec)
        legacy = self.loader.load(config.legacy_spec) if config.is_migration else None
        return target, legacy

    def filter_scope(self, config: RunConfig, catalog: OperationCatalog) -> list[Operation]:
        if config.scope == SCOPE_TAGS:
            operations = catalog.find_by_tags(config.tags)
        elif config.scope == SCOPE_OPERATIONS:
            operations = catalog.find_by_ids(config.operation_ids)
        else:
            operations = catalog.operations
        if not operations:
            raise FatalConfigError(f"No operations found for scope {config.scope!r}")
        logger.info("Processing %d operations", len(operations))
        return operations

    def generate_operation(self, config: RunConfig, operation: Operation) -> UnitOutcome:
        outcome = UnitOutcome(operation.id)
        for generator in self.generators:
            if isinstance(generator, FieldMapperGenerator) and not config.is_migration:
                continue
            try:
                files = generator.generate(self.layout, self.target_spec, operation)
            except Exception as exc:  # confined to this operation
                logger.exception("Failed to generate %s for %s", generator.name, operation.id)
                error = exc if isinstance(exc, GenerationError) else GenerationError(operation.id, str(exc))
                outcome.error = str(error)
                return outcome
            for generated in files:
                (outcome.updated if generated.overwritten else outcome.created).append(str(generated.path))
        if not config.is_migration:
            outcome.mappings.append(OperationMapping(None, operation.id, operation.primary_tag))
        logger.info("Generated %s (%d files)", operation.id, len(outcome.created) + len(outcome.updated))
        return outcome

    def begin_run(self, config: RunConfig) -> None:
        self.migration.dry_run = config.dry_run
        for generator in self.generators:
            generator.begin_run(config.dry_run)


def build_orchestrator(http_client=None) -> Orchestrator:
    """Assemble the object graph for one run."""
    env = create_environment()
    encoder = JsonEncoder()
    return Orchestrator(
        loader=SpecLoader(http_client),
        detector=LayoutDetector(),
        generators=default_generators(env),
        migration=MigrationEngine(),
        reports=ReportBuilder(encoder, env),
        encoder=encoder,
    )
