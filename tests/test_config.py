"""Tests for the config module."""

import pytest

from apiforge.config import (
    DEFAULT_BACKUP_LABEL,
    DEFAULT_LEGACY_SPEC,
    DEFAULT_TARGET_SPEC,
    LEGACY_SPEC_ENV,
    MIGRATE,
    SCAFFOLD,
    SCOPE_ALL,
    SCOPE_OPERATIONS,
    SCOPE_TAGS,
    TARGET_SPEC_ENV,
    RunConfig,
    normalize_mode,
    normalize_scope,
)
from apiforge.errors import FatalConfigError


class TestNormalize:
    """Accepted spellings of mode and scope."""

    @pytest.mark.parametrize("value,expected", [
        ("migrate", MIGRATE), ("upgrade", MIGRATE), ("Scaffold", SCAFFOLD), (" create ", SCAFFOLD),
    ])
    def test_modes(self, value, expected):
        assert normalize_mode(value) == expected

    @pytest.mark.parametrize("value,expected", [
        ("all", SCOPE_ALL), ("TAGS", SCOPE_TAGS), ("operations", SCOPE_OPERATIONS),
        ("operationIds", SCOPE_OPERATIONS),
    ])
    def test_scopes(self, value, expected):
        assert normalize_scope(value) == expected

    def test_missing_mode(self):
        with pytest.raises(FatalConfigError, match="Mode is required"):
            normalize_mode(None)

    def test_unknown_mode(self):
        with pytest.raises(FatalConfigError):
            normalize_mode("rewrite")

    def test_unknown_scope(self):
        with pytest.raises(FatalConfigError):
            normalize_scope("everything")


class TestFromArgs:
    """Request mappings to a validated RunConfig."""

    def test_scaffold_defaults(self):
        config = RunConfig.from_args({"mode": "scaffold"}, environ={})
        assert config.scope == SCOPE_ALL
        assert config.target_spec == DEFAULT_TARGET_SPEC
        assert config.legacy_spec is None
        assert config.project_root == "."
        assert config.backup_label == DEFAULT_BACKUP_LABEL
        assert not config.dry_run
        assert not config.is_migration

    def test_migrate_gets_bundled_legacy_spec(self):
        config = RunConfig.from_args({"mode": "upgrade"}, environ={})
        assert config.is_migration
        assert config.legacy_spec == DEFAULT_LEGACY_SPEC

    def test_environment_fallback(self):
        config = RunConfig.from_args(
            {"mode": "migrate"},
            environ={TARGET_SPEC_ENV: "/specs/new.yaml", LEGACY_SPEC_ENV: "/specs/old.yaml"},
        )
        assert config.target_spec == "/specs/new.yaml"
        assert config.legacy_spec == "/specs/old.yaml"

    def test_explicit_paths_win(self):
        config = RunConfig.from_args(
            {"mode": "scaffold", "targetSpecPath": "mine.yaml"},
            environ={TARGET_SPEC_ENV: "/specs/new.yaml"},
        )
        assert config.target_spec == "mine.yaml"

    def test_comma_separated_selectors(self):
        config = RunConfig.from_args(
            {"mode": "scaffold", "scope": "tags", "tags": "Transactions, Payment Methods,"},
            environ={},
        )
        assert config.tags == ["Transactions", "Payment Methods"]

    def test_list_selectors(self):
        config = RunConfig.from_args(
            {"mode": "scaffold", "scope": "operationIds", "operationIds": ["getTransaction", " "]},
            environ={},
        )
        assert config.operation_ids == ["getTransaction"]

    @pytest.mark.parametrize("value,expected", [("true", True), ("0", False), (True, True), (None, False)])
    def test_dry_run_flag(self, value, expected):
        assert RunConfig.from_args({"mode": "scaffold", "dryRun": value}, environ={}).dry_run is expected

    def test_tags_scope_requires_tags(self):
        with pytest.raises(FatalConfigError, match="Tags must be provided"):
            RunConfig.from_args({"mode": "scaffold", "scope": "tags"}, environ={})

    def test_operations_scope_requires_ids(self):
        with pytest.raises(FatalConfigError, match="Operation ids"):
            RunConfig.from_args({"mode": "scaffold", "scope": "operations", "tags": "x"}, environ={})

    def test_round_trip_keys(self):
        config = RunConfig.from_args({"mode": "migrate", "projectRoot": "/srv/app"}, environ={})
        assert config.to_dict() == {
            "mode": "migrate",
            "scope": "all",
            "tags": [],
            "operationIds": [],
            "targetSpecPath": DEFAULT_TARGET_SPEC,
            "legacySpecPath": DEFAULT_LEGACY_SPEC,
            "projectRoot": "/srv/app",
            "backupLabel": DEFAULT_BACKUP_LABEL,
            "dryRun": False,
        }


class TestValidate:
    """Direct construction still validates."""

    def test_migrate_without_legacy(self):
        with pytest.raises(FatalConfigError, match="Legacy spec path"):
            RunConfig(mode=MIGRATE, legacy_spec=None).validate()

    def test_missing_target(self):
        with pytest.raises(FatalConfigError, match="Target spec path"):
            RunConfig(mode=SCAFFOLD, target_spec="").validate()
