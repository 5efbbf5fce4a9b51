# bzl — Terminal Target Deck for Bazel-like Build Tools
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Bounded most-recent-first value history, persisted per workspace.
"""

from __future__ import annotations

from .interfaces import StateStore

DEFAULT_HISTORY_SIZE = 10


class HistoryStore:
    """Keyed MRU lists: add() moves a value to the front and truncates."""

    def __init__(
        self,
        store: StateStore,
        name: str = "property",
        size: int = DEFAULT_HISTORY_SIZE,
    ):
        self.store = store
        self.size = size
        self.storage_key = f"{name}History"
        history = store.get(self.storage_key)
        if not isinstance(history, dict):
            history = {}
        self._history: dict[str, list[str]] = history

    def add(self, key: str, value: str) -> None:
        entries = [v for v in self._history.get(key, []) if v != value]
        entries.insert(0, value)
        del entries[self.size:]
        self._history[key] = entries
        self.store.update(self.storage_key, self._history)

    def get(self, key: str) -> list[str]:
        return list(self._history.get(key, []))

    def first(self, key: str) -> str:
        entries = self._history.get(key)
        return entries[0] if entries else ""

    def keys(self) -> list[str]:
        return sorted(self._history)
