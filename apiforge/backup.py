"""Best-effort recovery checkpoint of the project tree before migration."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)


def _git(root: Path, *args: str) -> str:
    completed = subprocess.run(
        ["git", *args],
        cwd=root,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        check=True,
    )
    return completed.stdout.strip()


class GitBackup:
    """Records the working tree as a branch named ``label``.

    Uncommitted changes are captured with ``git stash create`` (which leaves
    the working tree untouched); a clean tree falls back to HEAD.
    """

    def create(self, project_root: str | Path, label: str) -> bool:
        root = Path(project_root)
        try:
            snapshot = _git(root, "stash", "create") or _git(root, "rev-parse", "HEAD")
            _git(root, "branch", "--force", label, snapshot)
        except FileNotFoundError:
            logger.warning("git not available; no backup checkpoint created")
            return False
        except subprocess.CalledProcessError as exc:
            logger.warning("Backup checkpoint %s failed: %s", label, (exc.stderr or "").strip())
            return False
        logger.info("Created backup checkpoint %s at %s", label, snapshot[:12])
        return True
