"""Run configuration: the invocation contract, validated before a run starts."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Mapping

from .errors import FatalConfigError

MIGRATE = "migrate"
SCAFFOLD = "scaffold"

SCOPE_ALL = "all"
SCOPE_TAGS = "tags"
SCOPE_OPERATIONS = "operations"

# Accepted spellings -> canonical value
MODE_ALIASES: dict[str, str] = {
    "migrate": MIGRATE,
    "upgrade": MIGRATE,
    "scaffold": SCAFFOLD,
    "create": SCAFFOLD,
}
SCOPE_ALIASES: dict[str, str] = {
    "all": SCOPE_ALL,
    "tags": SCOPE_TAGS,
    "operations": SCOPE_OPERATIONS,
    "operationids": SCOPE_OPERATIONS,
}

DEFAULT_BACKUP_LABEL = "backup/legacy-to-target"
DEFAULT_PROJECT_ROOT = "."

TARGET_SPEC_ENV = "APIFORGE_TARGET_SPEC"
LEGACY_SPEC_ENV = "APIFORGE_LEGACY_SPEC"
DEFAULT_TARGET_SPEC = "resource:target-openapi.yaml"
DEFAULT_LEGACY_SPEC = "resource:legacy-openapi.yaml"


def _selectors(value: Any) -> list[str]:
    """Accept a list or a comma-separated string."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [str(v).strip() for v in value if str(v).strip()]


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@dataclass
class RunConfig:
    mode: str
    scope: str = SCOPE_ALL
    tags: list[str] = field(default_factory=list)
    operation_ids: list[str] = field(default_factory=list)
    target_spec: str | None = DEFAULT_TARGET_SPEC
    legacy_spec: str | None = None
    project_root: str = DEFAULT_PROJECT_ROOT
    backup_label: str = DEFAULT_BACKUP_LABEL
    dry_run: bool = False

    @classmethod
    def from_args(cls, args: Mapping[str, Any], environ: Mapping[str, str] | None = None) -> RunConfig:
        """Build from a request mapping (camelCase keys) and validate.

        Spec paths fall back to the environment, then the bundled specs.
        """
        environ = os.environ if environ is None else environ
        mode = normalize_mode(args.get("mode"))
        legacy_spec = args.get("legacySpecPath") or environ.get(LEGACY_SPEC_ENV)
        if mode == MIGRATE and not legacy_spec:
            legacy_spec = DEFAULT_LEGACY_SPEC
        config = cls(
            mode=mode,
            scope=normalize_scope(args.get("scope") or SCOPE_ALL),
            tags=_selectors(args.get("tags")),
            operation_ids=_selectors(args.get("operationIds")),
            target_spec=args.get("targetSpecPath") or environ.get(TARGET_SPEC_ENV) or DEFAULT_TARGET_SPEC,
            legacy_spec=legacy_spec,
            project_root=args.get("projectRoot") or DEFAULT_PROJECT_ROOT,
            backup_label=args.get("backupLabel") or DEFAULT_BACKUP_LABEL,
            dry_run=_flag(args.get("dryRun", False)),
        )
        config.validate()
        return config

    @property
    def is_migration(self) -> bool:
        return self.mode == MIGRATE

    def validate(self) -> None:
        if self.mode not in (MIGRATE, SCAFFOLD):
            raise FatalConfigError(f"Invalid mode: {self.mode!r}. Must be 'migrate' or 'scaffold'")
        if self.scope not in (SCOPE_ALL, SCOPE_TAGS, SCOPE_OPERATIONS):
            raise FatalConfigError(
                f"Invalid scope: {self.scope!r}. Must be 'all', 'tags' or 'operations'"
            )
        if self.scope == SCOPE_TAGS and not self.tags:
            raise FatalConfigError("Tags must be provided when scope is 'tags'")
        if self.scope == SCOPE_OPERATIONS and not self.operation_ids:
            raise FatalConfigError("Operation ids must be provided when scope is 'operations'")
        if self.is_migration and not self.legacy_spec:
            raise FatalConfigError("Legacy spec path is required in migrate mode")
        if not self.target_spec:
            raise FatalConfigError("Target spec path is required")
        if not self.project_root:
            raise FatalConfigError("Project root is required")

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "scope": self.scope,
            "tags": list(self.tags),
            "operationIds": list(self.operation_ids),
            "targetSpecPath": self.target_spec,
            "legacySpecPath": self.legacy_spec,
            "projectRoot": self.project_root,
            "backupLabel": self.backup_label,
            "dryRun": self.dry_run,
        }


def normalize_mode(value: Any) -> str:
    if not value:
        raise FatalConfigError("Mode is required: 'migrate' or 'scaffold'")
    mode = MODE_ALIASES.get(str(value).strip().lower())
    if mode is None:
        raise FatalConfigError(f"Invalid mode: {value!r}. Must be 'migrate' or 'scaffold'")
    return mode


def normalize_scope(value: Any) -> str:
    scope = SCOPE_ALIASES.get(str(value).strip().lower())
    if scope is None:
        raise FatalConfigError(f"Invalid scope: {value!r}. Must be 'all', 'tags' or 'operations'")
    return scope
