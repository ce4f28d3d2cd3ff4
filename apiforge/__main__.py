"""Entry point: python -m apiforge

Scaffolds or migrates a project from an OpenAPI spec and prints the result.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from .config import DEFAULT_BACKUP_LABEL
from .tool import execute


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="apiforge", description=__doc__.splitlines()[2])
    parser.add_argument("mode", help="migrate (alias upgrade) or scaffold (alias create)")
    parser.add_argument("--scope", default="all", help="all, tags or operations")
    parser.add_argument("--tags", default="", help="comma-separated tags for --scope tags")
    parser.add_argument("--operations", default="", help="comma-separated ids for --scope operations")
    parser.add_argument("--target-spec", help="target spec path, URL or resource:<name>")
    parser.add_argument("--legacy-spec", help="legacy spec path, URL or resource:<name>")
    parser.add_argument("--project-root", default=".")
    parser.add_argument("--backup-label", default=DEFAULT_BACKUP_LABEL)
    parser.add_argument("--dry-run", action="store_true")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    response = execute({
        "mode": args.mode,
        "scope": args.scope,
        "tags": args.tags,
        "operationIds": args.operations,
        "targetSpecPath": args.target_spec,
        "legacySpecPath": args.legacy_spec,
        "projectRoot": args.project_root,
        "backupLabel": args.backup_label,
        "dryRun": args.dry_run,
    })
    print(
        f"{response['status']}: {len(response['createdFiles'])} created, "
        f"{len(response['updatedFiles'])} updated"
        + (f" (report: {response['reportPath']})" if response.get("reportPath") else "")
    )
    print(json.dumps(response, indent=2))
    return 0 if response["status"] != "failed" else 1


if __name__ == "__main__":
    sys.exit(main())
