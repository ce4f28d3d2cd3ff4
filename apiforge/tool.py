"""Request/response contract consumed by front ends (RPC tool, CLI).

Request keys: mode, scope, tags, operationIds, legacySpecPath,
targetSpecPath, projectRoot, backupLabel, dryRun.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from .config import RunConfig
from .errors import FatalConfigError
from .layout import CATEGORIES
from .orchestrator import Orchestrator, build_orchestrator
from .results import FAILED, GenerationResult

logger = logging.getLogger(__name__)

# layout attribute -> response key
_LAYOUT_KEYS: dict[str, str] = {
    "base_package": "basePackage",
    "data_types": "dataTypesPackage",
    "client": "clientPackage",
    "service": "servicePackage",
    "endpoint": "endpointPackage",
    "mapper": "mapperPackage",
}


def _failed(args: Mapping[str, Any], message: str) -> dict[str, Any]:
    return {
        "status": FAILED,
        "mode": args.get("mode"),
        "scope": args.get("scope"),
        "operationMappings": [],
        "createdFiles": [],
        "updatedFiles": [],
        "deletedFiles": [],
        "reportPath": None,
        "error": message,
    }


def to_response(result: GenerationResult, orchestrator: Orchestrator) -> dict[str, Any]:
    response: dict[str, Any] = {
        "status": result.status,
        "mode": result.mode,
        "scope": result.scope,
    }
    layout = orchestrator.layout
    if layout is not None:
        for attribute in ("base_package",) + CATEGORIES:
            response[_LAYOUT_KEYS[attribute]] = getattr(layout, attribute)
    response.update({
        "operationMappings": [m.to_dict() for m in result.operation_mappings],
        "createdFiles": list(result.created_files),
        "updatedFiles": list(result.updated_files),
        "deletedFiles": list(result.deleted_files),
        "reportPath": result.report_path,
        "error": "; ".join(result.errors) if result.errors else None,
    })
    return response


def execute(args: Mapping[str, Any],
            factory: Callable[[], Orchestrator] = build_orchestrator) -> dict[str, Any]:
    """Run the engine for one request mapping and return the response mapping."""
    try:
        config = RunConfig.from_args(args)
    except FatalConfigError as exc:
        logger.error("Invalid request: %s", exc)
        return _failed(args, str(exc))
    orchestrator = factory()
    result = orchestrator.run(config)
    return to_response(result, orchestrator)
