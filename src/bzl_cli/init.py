# bzl — Terminal Target Deck for Bazel-like Build Tools
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Workspace and database resolution for bzl.

Responsibilities:
- Workspace root discovery (falls back to cwd)
- Per-workspace state DB creation and bookkeeping

Important boundary:
- This module must NOT parse YAML directly.
- YAML/defaults are owned by bzl_cli.config.
"""

from __future__ import annotations

import logging
from pathlib import Path

from . import config, db

logger = logging.getLogger(__name__)


def resolve_workspace_root(cwd: Path) -> Path:
    """Return the enclosing build workspace, or cwd if there is none."""
    root = config.find_workspace_root(cwd)
    if root is None:
        logger.warning(
            "No workspace marker found above %s; using it as the workspace.",
            cwd,
        )
        return cwd.resolve()
    return root


def ensure_workspace_db(cwd: Path) -> tuple[Path, Path]:
    """Resolve the workspace and ensure its state DB exists with schema.

    Returns:
        (workspace_root, db_path)
    """
    workspace_root = resolve_workspace_root(cwd)
    data_root = config.get_data_root()
    db_path = config.workspace_db_path(data_root, workspace_root)
    db.ensure_schema(db_path)
    db.record_workspace(db_path, workspace_root)
    return workspace_root, db_path
