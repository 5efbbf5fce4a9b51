# bzl — Terminal Target Deck for Bazel-like Build Tools
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
SQLite-backed key-value storage implementation for bzl.

Values are JSON encoded so the registry, selection map and histories
round-trip as plain dicts/lists.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from .interfaces import StateStore

logger = logging.getLogger(__name__)

VERSION_KEY = "version"


class SQLiteStore:
    """SQLite implementation of StateStore protocol."""

    def __init__(self, db_path: Path):
        """Initialize store with database path.

        Args:
            db_path: Path to SQLite database file (must have schema)

        Note:
            Store does NOT create schema. Schema must be created by
            db.ensure_schema() before constructing SQLiteStore.
        """
        self.db_path = db_path

        db_path.parent.mkdir(parents=True, exist_ok=True)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the decoded value for key, or default if absent."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute(
                "SELECT value FROM state WHERE key = ?",
                (key,),
            )
            row = cur.fetchone()
        finally:
            conn.close()

        if row is None:
            return default
        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            logger.warning("Discarding undecodable state for key %s", key)
            return default

    def update(self, key: str, value: Any) -> None:
        """Store value under key; None deletes the key."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            if value is None:
                conn.execute("DELETE FROM state WHERE key = ?", (key,))
            else:
                now = datetime.now().isoformat()
                conn.execute(
                    """
                    INSERT OR REPLACE INTO state (key, value, updated_at)
                    VALUES (?, ?, ?)
                    """,
                    (key, json.dumps(value), now),
                )
            conn.commit()
        finally:
            conn.close()

    def keys(self) -> list[str]:
        """List all stored keys, sorted."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            rows = conn.execute(
                "SELECT key FROM state ORDER BY key"
            ).fetchall()
            return [r[0] for r in rows]
        finally:
            conn.close()

    def clear(self) -> None:
        """Remove every stored key."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            conn.execute("DELETE FROM state")
            conn.commit()
        finally:
            conn.close()


class WorkspaceStateManager:
    """Clears persisted workspace state when the bzl version changes."""

    def __init__(self, store: StateStore):
        self.store = store

    def refresh_workspace_state(self, version: str) -> bool:
        """Return True when the stored state was cleared for a new version."""
        old_version = self.store.get(VERSION_KEY, "")
        if old_version == version:
            return False

        self.store.clear()
        self.store.update(VERSION_KEY, version)
        if old_version:
            logger.info(
                "Workspace state has been cleared due to version bump "
                "(%s -> %s).", old_version, version
            )
        return True
