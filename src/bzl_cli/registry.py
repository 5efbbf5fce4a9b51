# bzl — Terminal Target Deck for Bazel-like Build Tools
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Target registry: action -> ordered list of targets, plus one selected
target per action and the list of targets available from the last refresh.

Every mutation persists the whole map to the StateStore as
``{action: [target record, ...]}``. Remove/update match targets by label
within the action, not by id, so targets re-created by a refresh still
resolve.
"""

from __future__ import annotations

import logging
from typing import Any

from .errors import ActionMismatchError, TargetNotFoundError
from .history import HistoryStore
from .interfaces import StateStore
from .target import Target

logger = logging.getLogger(__name__)

TARGETS_KEY = "targets"
SELECTED_KEY = "selectedTargets"
AVAILABLE_KEY = "availableTargets"

SerializedRegistry = dict[str, list[dict[str, Any]]]


def serialize_targets(targets: dict[str, list[Target]]) -> SerializedRegistry:
    return {
        action: [t.to_record() for t in items]
        for action, items in targets.items()
    }


def deserialize_targets(
    data: Any, history: HistoryStore | None = None
) -> dict[str, list[Target]]:
    result: dict[str, list[Target]] = {}
    if not isinstance(data, dict):
        return result
    for action, records in data.items():
        if not isinstance(records, list):
            continue
        targets = []
        for record in records:
            try:
                targets.append(Target.from_record(record, history))
            except (KeyError, TypeError) as e:
                logger.warning("Skipping malformed target record %r: %s",
                               record, e)
        result[action] = targets
    return result


class TargetRegistry:
    """Registered targets per action, persisted on every mutation."""

    def __init__(self, store: StateStore, history: HistoryStore | None = None):
        self.store = store
        self.history = history
        self._targets: dict[str, list[Target]] = deserialize_targets(
            store.get(TARGETS_KEY, {}), history
        )
        selected = store.get(SELECTED_KEY, {})
        self._selected: dict[str, str] = (
            selected if isinstance(selected, dict) else {}
        )
        self._available: dict[str, list[Target]] = deserialize_targets(
            store.get(AVAILABLE_KEY, {}), history
        )

    # ----------------------------------------------------------------
    # Registered targets
    # ----------------------------------------------------------------

    def add_target(self, target: Target) -> None:
        if self.history is not None:
            target.attach_history(self.history)
        targets = self._targets.setdefault(target.action, [])
        targets.append(target)
        if len(targets) == 1:
            self._selected[target.action] = target.id
        self.save()

    def remove_target(self, target: Target) -> None:
        action = target.action
        if action not in self._targets:
            return

        selected = self.get_selected_target(action)
        remaining = [t for t in self._targets[action]
                     if t.label != target.label]
        if remaining:
            self._targets[action] = remaining
        else:
            del self._targets[action]

        if selected is not None and selected.label == target.label:
            self._selected.pop(action, None)
        self.save()

    def update_target(self, target: Target, old_target: Target) -> None:
        """Replace old_target (matched by label) with target, in place."""
        if target.action != old_target.action:
            raise ActionMismatchError(
                f"Cannot update targets of differing actions "
                f"({old_target.action} -> {target.action})"
            )
        action = old_target.action
        targets = self._targets.get(action, [])
        index = next(
            (i for i, t in enumerate(targets) if t.label == old_target.label),
            -1,
        )
        if index == -1:
            raise TargetNotFoundError(
                f"Target {old_target.label!r} not found for action {action!r}"
            )

        replaced = targets[index]
        if self.history is not None:
            target.attach_history(self.history)
        targets[index] = target
        if self._selected.get(action) == replaced.id or len(targets) == 1:
            self._selected[action] = target.id
        self.save()

    def get_targets(self, action: str | None = None) -> list[Target]:
        if action is not None:
            return list(self._targets.get(action, []))
        result: list[Target] = []
        for targets in self._targets.values():
            result.extend(targets)
        return result

    def get_actions(self) -> list[str]:
        return list(self._targets)

    def find_target(self, action: str, label: str) -> Target | None:
        for target in self._targets.get(action, []):
            if target.label == label or target.path == label:
                return target
        return None

    def find_by_id(self, target_id: str) -> Target | None:
        for target in self.get_targets():
            if target.id == target_id:
                return target
        return None

    # ----------------------------------------------------------------
    # Selection
    # ----------------------------------------------------------------

    def get_selected_target(self, action: str) -> Target | None:
        target_id = self._selected.get(action)
        if target_id is None:
            return None
        for target in self._targets.get(action, []):
            if target.id == target_id:
                return target
        return None

    def update_selected_target(self, target: Target) -> None:
        """Mark target as the selection for its action (registering it
        first if it is not registered yet)."""
        registered = self._targets.get(target.action, [])
        if not any(t.id == target.id for t in registered):
            match = next((t for t in registered if t == target), None)
            if match is None:
                self.add_target(target)
            else:
                target = match
        self._selected[target.action] = target.id
        self.save()

    def remove_selected_target(self, target: Target) -> None:
        selected = self.get_selected_target(target.action)
        if selected is not None and selected == target:
            del self._selected[target.action]
            self.save()

    # ----------------------------------------------------------------
    # Available targets (from refresh)
    # ----------------------------------------------------------------

    def update_available_targets(
        self, targets_by_action: dict[str, list[Target]]
    ) -> None:
        self._available = {a: list(t) for a, t in targets_by_action.items()}
        self.store.update(AVAILABLE_KEY, serialize_targets(self._available))

    def get_available_targets(self, action: str) -> list[Target]:
        return list(self._available.get(action, []))

    # ----------------------------------------------------------------
    # Persistence
    # ----------------------------------------------------------------

    def serialize(self) -> SerializedRegistry:
        return serialize_targets(self._targets)

    def save(self) -> None:
        self.store.update(TARGETS_KEY, self.serialize())
        self.store.update(SELECTED_KEY, dict(self._selected))
