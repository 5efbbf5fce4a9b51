# bzl — Terminal Target Deck for Bazel-like Build Tools
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Run-state tracking for targets (Idle / Executing), keyed by target id.

``executing(target)`` is the guard every execution goes through:
- Idle: transition to Executing, and back to Idle on exit no matter how
  the block ends (success, failure, cancellation).
- Executing and owned by the current control flow (e.g. a run that
  triggers a build of the same target): proceed without touching the
  state; only the outermost guard releases it.
- Executing and owned by another control flow: TargetBusyError.

Ownership is tracked in a ContextVar, so nested awaits inherit it while
separately scheduled tasks do not.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from enum import Enum

from .errors import TargetBusyError
from .target import Target

logger = logging.getLogger(__name__)

_owned_targets: ContextVar[frozenset[str]] = ContextVar(
    "bzl_owned_targets", default=frozenset()
)

StateListener = Callable[[Target, "TargetState"], None]


class TargetState(Enum):
    IDLE = "idle"
    EXECUTING = "executing"


class TargetStateMachine:
    """Tracks the state of each target and notifies listeners on change."""

    def __init__(self) -> None:
        self._states: dict[str, TargetState] = {}
        self._listeners: list[StateListener] = []

    def get_state(self, target: Target) -> TargetState:
        return self._states.get(target.id, TargetState.IDLE)

    def is_executing(self, target: Target) -> bool:
        return self.get_state(target) is TargetState.EXECUTING

    def set_state(self, target: Target, state: TargetState) -> None:
        if state is TargetState.IDLE:
            self._states.pop(target.id, None)
        else:
            self._states[target.id] = state
        logger.debug("%s %s -> %s", target.action, target.label, state.value)
        for listener in list(self._listeners):
            listener(target, state)

    def on_change(self, listener: StateListener) -> Callable[[], None]:
        """Subscribe; returns a callable that unsubscribes."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def executing_ids(self) -> list[str]:
        return [tid for tid, s in self._states.items()
                if s is TargetState.EXECUTING]

    @contextmanager
    def executing(self, target: Target) -> Iterator[bool]:
        """Hold the Executing state for the block.

        Yields True when this guard owns the transition, False when an
        enclosing guard in the same control flow already does.
        """
        owned = _owned_targets.get()
        if self.is_executing(target):
            if target.id in owned:
                yield False
                return
            raise TargetBusyError(
                f"{target.action} {target.label} is already executing"
            )

        self.set_state(target, TargetState.EXECUTING)
        token = _owned_targets.set(owned | {target.id})
        try:
            yield True
        finally:
            _owned_targets.reset(token)
            self.set_state(target, TargetState.IDLE)
