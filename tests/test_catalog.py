"""Tests for the catalog module."""

import pytest

from apiforge.catalog import Operation, OperationCatalog
from apiforge.errors import SpecError


def _op(operation_id, *tags, path="/things", summary=""):
    tags = tags or ("default",)
    return Operation(
        id=operation_id,
        http_method="GET",
        path=path,
        primary_tag=tags[0],
        all_tags=tuple(tags),
        summary=summary,
    )


@pytest.fixture
def catalog():
    return OperationCatalog("target", [
        _op("createSale", "Sales", "Reporting", path="/sales", summary="Create a card sale"),
        _op("listSales", "Sales", path="/sales"),
        _op("dailyTotals", "Reporting", path="/reports/daily", summary="Daily settlement totals"),
        _op("ping", "Health", path="/health"),
    ])


class TestIndexing:
    """Ids, tags and declaration order."""

    def test_len_and_order(self, catalog):
        assert len(catalog) == 4
        assert [op.id for op in catalog] == ["createSale", "listSales", "dailyTotals", "ping"]

    def test_tags_in_first_seen_order(self, catalog):
        assert catalog.tags() == ["Sales", "Reporting", "Health"]

    def test_get(self, catalog):
        assert catalog.get("ping").path == "/health"
        assert catalog.get("missing") is None

    def test_duplicate_id_rejected(self, catalog):
        with pytest.raises(SpecError, match="Duplicate operation id"):
            catalog.add(_op("ping", "Health"))

    def test_operations_is_a_copy(self, catalog):
        catalog.operations.clear()
        assert len(catalog) == 4

    def test_label_kept(self, catalog):
        assert catalog.label == "target"


class TestFindByTags:
    """Selection by tag keeps catalog order and never repeats an operation."""

    def test_single_tag(self, catalog):
        assert [op.id for op in catalog.find_by_tags(["Sales"])] == ["createSale", "listSales"]

    def test_multiple_tags_deduplicated(self, catalog):
        found = catalog.find_by_tags(["Reporting", "Sales"])
        assert [op.id for op in found] == ["createSale", "listSales", "dailyTotals"]

    def test_unknown_tag(self, catalog):
        assert catalog.find_by_tags(["Nope"]) == []


class TestFindByIds:
    """Selection by id keeps the requested order and drops unknown ids."""

    def test_requested_order(self, catalog):
        assert [op.id for op in catalog.find_by_ids(["ping", "createSale"])] == ["ping", "createSale"]

    def test_unknown_and_repeated(self, catalog):
        found = catalog.find_by_ids(["ping", "nope", "ping"])
        assert [op.id for op in found] == ["ping"]


class TestFuzzyFind:
    """Exact id, case-insensitive id, summary substring, then path substring."""

    def test_exact(self, catalog):
        assert catalog.fuzzy_find("listSales").id == "listSales"

    def test_case_insensitive(self, catalog):
        assert catalog.fuzzy_find("DAILYTOTALS").id == "dailyTotals"

    def test_summary_substring(self, catalog):
        assert catalog.fuzzy_find("settlement").id == "dailyTotals"

    def test_path_substring(self, catalog):
        assert catalog.fuzzy_find("/health").id == "ping"

    def test_no_match(self, catalog):
        assert catalog.fuzzy_find("refund") is None
        assert catalog.fuzzy_find("") is None
        assert catalog.fuzzy_find(None) is None


class TestFromSpec:
    """Catalogs built from a loaded spec."""

    def test_target(self, target_spec):
        catalog = OperationCatalog.from_spec(target_spec, "target")
        assert len(catalog) == len(target_spec.operations)
        assert catalog.tags() == ["Transactions", "Payment Methods"]
        assert catalog.warnings == target_spec.warnings
