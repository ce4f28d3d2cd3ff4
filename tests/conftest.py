"""Shared fixtures: small spec documents and seeded project trees.

Nothing here touches the network or a real git checkout; URL loading is
exercised through httpx.MockTransport in the loader tests.
"""

from __future__ import annotations

import copy
from pathlib import Path

import pytest
import yaml

from apiforge.layout import DetectedLayout
from apiforge.spec_loader import SpecLoader


# ---------------------------------------------------------------------------
# Spec documents
# ---------------------------------------------------------------------------

ORDERS_SPEC: dict = {
    "openapi": "3.0.3",
    "info": {"title": "Orders API", "version": "1.2.0"},
    "tags": [{"name": "Orders"}],
    "paths": {
        "/orders": {
            "post": {
                "tags": ["Orders"],
                "operationId": "createOrder",
                "summary": "Create an order",
                "requestBody": {
                    "required": True,
                    "content": {
                        "application/json": {"schema": {"$ref": "#/components/schemas/Order"}},
                    },
                },
                "responses": {
                    "201": {
                        "description": "Created",
                        "content": {
                            "application/json": {"schema": {"$ref": "#/components/schemas/Order"}},
                        },
                    },
                },
            },
        },
        "/orders/{orderId}": {
            "parameters": [
                {"name": "orderId", "in": "path", "required": True, "schema": {"type": "string"}},
            ],
            "get": {
                "tags": ["Orders"],
                "operationId": "getOrder",
                "summary": "Fetch one order",
                "responses": {
                    "200": {
                        "description": "OK",
                        "content": {
                            "application/json": {"schema": {"$ref": "#/components/schemas/Order"}},
                        },
                    },
                },
            },
        },
        "/orders/{orderId}/cancel": {
            "post": {
                "tags": ["Orders"],
                "operationId": "cancelOrder",
                "summary": "Cancel an order",
                "parameters": [
                    {"name": "orderId", "in": "path", "required": True, "schema": {"type": "string"}},
                ],
                "responses": {"204": {"description": "Cancelled"}},
            },
        },
    },
    "components": {
        "schemas": {
            "Order": {
                "type": "object",
                "required": ["id", "quantity"],
                "properties": {
                    "id": {"type": "string"},
                    "quantity": {"type": "integer", "format": "int32"},
                    "unitPrice": {"type": "number"},
                    "status": {"type": "string", "enum": ["OPEN", "CANCELLED"]},
                },
            },
        },
    },
}


def write_spec(path: Path, document: dict) -> Path:
    path.write_text(yaml.safe_dump(document, sort_keys=False), encoding="utf-8")
    return path


def write_source(root: Path, relative: str, text: str) -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def orders_document() -> dict:
    return copy.deepcopy(ORDERS_SPEC)


@pytest.fixture
def spec_writer(tmp_path):
    """Write a document as YAML under tmp_path and return its path."""
    def _write(document: dict, name: str = "spec.yaml") -> Path:
        return write_spec(tmp_path / name, document)
    return _write


@pytest.fixture
def source_writer():
    """Create a source file (and its parent directories) under a root."""
    return write_source


@pytest.fixture
def orders_spec_path(tmp_path) -> Path:
    return write_spec(tmp_path / "orders.yaml", ORDERS_SPEC)


@pytest.fixture
def loader() -> SpecLoader:
    return SpecLoader()


@pytest.fixture(scope="session")
def target_spec():
    """The bundled payments spec, resolved once per session."""
    return SpecLoader().load("resource:target-openapi.yaml")


@pytest.fixture(scope="session")
def legacy_spec():
    return SpecLoader().load("resource:legacy-openapi.yaml")


@pytest.fixture
def project(tmp_path) -> Path:
    """A minimal FastAPI service tree rooted at ``app``."""
    root = tmp_path / "project"
    write_source(root, "app/__init__.py", "")
    write_source(root, "app/main.py", "from fastapi import FastAPI\n\napp = FastAPI()\n")
    return root


@pytest.fixture
def layout(tmp_path) -> DetectedLayout:
    return DetectedLayout(base_package="app", source_root=str(tmp_path / "src"))
