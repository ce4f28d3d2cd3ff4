"""End-to-end runs through the orchestrator and the request/response contract."""

import json
from pathlib import Path

import pytest

from apiforge.backup import GitBackup
from apiforge.config import RunConfig
from apiforge.generators import ArtifactGenerator, DataTypeGenerator, create_environment
from apiforge.layout import LAYOUT_FILE, LayoutDetector
from apiforge.migration import MigrationEngine
from apiforge.orchestrator import Orchestrator, build_orchestrator
from apiforge.report import JsonEncoder, ReportBuilder
from apiforge.results import FAILED, PARTIAL, SUCCESS
from apiforge.spec_loader import SpecLoader
from apiforge.tool import execute

_LEGACY_GATEWAY = '''import xml.etree.ElementTree as ET


def post_sale(session, doc: ET.Element):
    return session.post("/processxml.do", data=ET.tostring(doc),
                        headers={"Content-Type": "application/xml"})
'''


class ExplodingGenerator(ArtifactGenerator):
    """Fails for one operation id, writes nothing otherwise."""

    name = "exploding"

    def __init__(self, fail_on, **kwargs):
        super().__init__(**kwargs)
        self.fail_on = set(fail_on)

    def generate(self, layout, spec, operation):
        if operation.id in self.fail_on:
            raise RuntimeError("template exploded")
        return []


class RecordingBackup(GitBackup):
    def __init__(self):
        self.calls = []

    def create(self, project_root, label):
        self.calls.append((str(project_root), label))
        return True


def _orchestrator(generators=None, backup=None):
    env = create_environment()
    encoder = JsonEncoder()
    return Orchestrator(
        loader=SpecLoader(),
        detector=LayoutDetector(),
        generators=generators if generators is not None else [DataTypeGenerator(env)],
        migration=MigrationEngine(),
        reports=ReportBuilder(encoder, env),
        encoder=encoder,
        backup=backup,
    )


def _config(project, **args):
    merged = {"mode": "scaffold", "projectRoot": str(project)}
    merged.update(args)
    return RunConfig.from_args(merged, environ={})


def _tree(root: Path):
    return sorted(str(p.relative_to(root)) for p in root.rglob("*") if p.is_file())


class TestScaffold:
    """Scaffold runs over the bundled target spec."""

    def test_full_run(self, project):
        result = build_orchestrator().run(_config(project))
        assert result.status == SUCCESS
        assert result.errors == []
        assert str(project / "app/clients/transactions/transactions_client.py") in result.created_files
        assert [m.new_id for m in result.operation_mappings] == [
            "processPayment", "getTransaction", "refundTransaction", "listTransactions",
            "createPaymentMethod",
        ]
        assert all(m.legacy_id is None for m in result.operation_mappings)
        assert not (project / "app/mappers").exists()
        assert Path(result.report_path).is_file()
        layout = json.loads((project / LAYOUT_FILE).read_text())
        assert layout["base_package"] == "app"

    def test_tag_scope(self, project):
        result = build_orchestrator().run(_config(project, scope="tags", tags="Payment Methods"))
        assert [m.new_id for m in result.operation_mappings] == ["createPaymentMethod"]
        assert not (project / "app/clients/transactions").exists()

    def test_second_run_updates(self, project):
        first = build_orchestrator().run(_config(project))
        second = build_orchestrator().run(_config(project))
        assert second.created_files == []
        assert sorted(second.updated_files) == sorted(first.created_files)

    def test_dry_run_matches_real_run(self, project):
        before = _tree(project)
        dry = build_orchestrator().run(_config(project, dryRun=True))
        assert _tree(project) == before
        real = build_orchestrator().run(_config(project))
        assert dry.status == real.status == SUCCESS
        assert dry.created_files == real.created_files
        assert dry.updated_files == real.updated_files
        assert [m.to_dict() for m in dry.operation_mappings] == \
            [m.to_dict() for m in real.operation_mappings]


class TestFailureIsolation:
    """One failing operation never hides the others."""

    def test_partial(self, project, orders_spec_path):
        orchestrator = _orchestrator([DataTypeGenerator(), ExplodingGenerator(["getOrder"])])
        result = orchestrator.run(_config(project, targetSpecPath=str(orders_spec_path)))
        assert result.status == PARTIAL
        assert len(result.errors) == 1
        assert "getOrder" in result.errors[0]
        assert "template exploded" in result.errors[0]
        assert [m.new_id for m in result.operation_mappings] == ["createOrder", "cancelOrder"]
        assert str(project / "app/models/orders/order.py") in result.created_files

    def test_every_operation_fails(self, project, orders_spec_path):
        orchestrator = _orchestrator([ExplodingGenerator(["createOrder", "getOrder", "cancelOrder"])])
        result = orchestrator.run(_config(project, targetSpecPath=str(orders_spec_path)))
        assert result.status == FAILED
        assert len(result.errors) == 3

    def test_every_operation_fails_in_migration(self, project):
        ids = ["processPayment", "getTransaction", "refundTransaction", "listTransactions",
               "createPaymentMethod"]
        orchestrator = _orchestrator([ExplodingGenerator(ids)], backup=RecordingBackup())
        result = orchestrator.run(_config(project, mode="migrate"))
        assert result.status == FAILED
        assert len(result.errors) == 5
        assert result.succeeded_units == 0
        assert [m.new_id for m in result.operation_mappings] == ids


class TestFatal:
    """Fatal stages stop the run with a single error entry."""

    def test_missing_spec(self, project, tmp_path):
        result = _orchestrator().run(_config(project, targetSpecPath=str(tmp_path / "nope.yaml")))
        assert result.status == FAILED
        assert len(result.errors) == 1
        assert result.created_files == []

    def test_empty_scope(self, project):
        result = _orchestrator().run(_config(project, scope="tags", tags="Nope"))
        assert result.status == FAILED
        assert result.errors == ["No operations found for scope 'tags'"]

    def test_unknown_ids_only(self, project):
        result = _orchestrator().run(_config(project, scope="operations", operationIds="nope"))
        assert result.status == FAILED

    def test_layout_undetectable(self, tmp_path):
        empty = tmp_path / "empty"
        empty.mkdir()
        result = _orchestrator().run(_config(empty))
        assert result.status == FAILED
        assert len(result.errors) == 1
        assert list(empty.iterdir()) == []


class TestMigrate:
    """Migration runs: mappers, correlation, legacy rewrite and backup."""

    @pytest.fixture
    def legacy_project(self, project, source_writer):
        source_writer(project, "app/gateway/legacy.py", _LEGACY_GATEWAY)
        return project

    def test_full_migration(self, legacy_project):
        backup = RecordingBackup()
        orchestrator = build_orchestrator()
        orchestrator.backup = backup
        result = orchestrator.run(_config(legacy_project, mode="migrate", backupLabel="backup/v1"))
        assert result.status == SUCCESS
        assert backup.calls == [(str(legacy_project), "backup/v1")]
        pairs = {m.new_id: m.legacy_id for m in result.operation_mappings}
        assert pairs["processPayment"] == "ccsale"
        assert pairs["refundTransaction"] == "ccreturn"
        assert pairs["getTransaction"] is None
        assert str(legacy_project / "app/mappers/transactions/process_payment_mapper.py") in \
            result.created_files
        legacy_file = legacy_project / "app/gateway/legacy.py"
        assert str(legacy_file) in result.updated_files
        rewritten = legacy_file.read_text()
        assert "json.dumps(doc)" in rewritten
        assert "'application/json'" in rewritten
        assert "xml.etree" not in rewritten
        assert "Map unmapped operation getTransaction to a legacy operation manually" in result.todos

    def test_generated_files_not_rescanned(self, legacy_project):
        orchestrator = build_orchestrator()
        orchestrator.backup = RecordingBackup()
        result = orchestrator.run(_config(legacy_project, mode="migrate"))
        assert not set(result.created_files) & set(result.updated_files)

    def test_dry_run_skips_backup_and_writes(self, legacy_project):
        backup = RecordingBackup()
        before = _tree(legacy_project)
        orchestrator = _orchestrator(backup=backup)
        result = orchestrator.run(_config(legacy_project, mode="migrate", dryRun=True))
        assert backup.calls == []
        assert _tree(legacy_project) == before
        assert str(legacy_project / "app/gateway/legacy.py") in result.updated_files


class TestExecute:
    """The request/response mapping consumed by front ends."""

    def test_success_response(self, project):
        response = execute({"mode": "create", "projectRoot": str(project), "dryRun": True})
        assert response["status"] == "success"
        assert response["mode"] == "scaffold"
        assert response["basePackage"] == "app"
        assert response["endpointPackage"] == "app.routers"
        assert response["error"] is None
        assert response["operationMappings"][0] == {
            "legacyOperationId": None, "newOperationId": "processPayment", "tag": "Transactions",
        }

    def test_invalid_request(self):
        def factory():
            raise AssertionError("orchestrator must not be built")

        response = execute({"mode": "scaffold", "scope": "tags"}, factory=factory)
        assert response["status"] == "failed"
        assert "Tags must be provided" in response["error"]
        assert response["createdFiles"] == []

    def test_fatal_run(self, tmp_path):
        response = execute({"mode": "scaffold", "projectRoot": str(tmp_path / "nowhere")})
        assert response["status"] == "failed"
        assert response["error"]
        assert response["reportPath"] is None
