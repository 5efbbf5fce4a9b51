# bzl — Terminal Target Deck for Bazel-like Build Tools
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Low-level database schema helpers for bzl.

Handles:
- Schema creation for the per-workspace state database
- Workspace metadata bookkeeping (root path, first/last use)
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path


def ensure_schema(db_path: Path) -> None:
    """Create database schema.

    Creates required tables if they don't exist:
    - state: key -> JSON encoded value (targets, selections, histories)
    - meta: workspace bookkeeping

    This function is idempotent - safe to call multiple times.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path))
    try:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS state (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        conn.commit()
    finally:
        conn.close()


def record_workspace(db_path: Path, workspace_root: Path) -> None:
    """Record the workspace root and last-used timestamp in meta."""
    conn = sqlite3.connect(str(db_path))
    try:
        now = datetime.now().isoformat()
        conn.execute(
            "INSERT OR IGNORE INTO meta (key, value) VALUES ('created_at', ?)",
            (now,),
        )
        conn.execute(
            "INSERT OR REPLACE INTO meta (key, value) "
            "VALUES ('workspace_root', ?)",
            (str(workspace_root),),
        )
        conn.execute(
            "INSERT OR REPLACE INTO meta (key, value) "
            "VALUES ('last_used_at', ?)",
            (now,),
        )
        conn.commit()
    finally:
        conn.close()


def read_meta(db_path: Path) -> dict[str, str]:
    """Return the meta table as a dict."""
    conn = sqlite3.connect(str(db_path))
    try:
        rows = conn.execute("SELECT key, value FROM meta").fetchall()
        return {k: v for k, v in rows}
    finally:
        conn.close()
