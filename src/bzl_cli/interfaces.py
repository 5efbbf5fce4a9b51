# bzl — Terminal Target Deck for Bazel-like Build Tools
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Protocol definitions for dependency injection.

These interfaces keep the expansion engine, the target registry and the
kernel independent of SQLite, subprocesses and the terminal UI.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .executor import CancellationToken, ShellResult  # pragma: no cover


class StateStore(Protocol):
    """Protocol for the persistent per-workspace key-value store."""

    def get(self, key: str, default: Any = None) -> Any:
        """Return the decoded value for key, or default if absent."""
        ...

    def update(self, key: str, value: Any) -> None:
        """Store value under key (None removes the key)."""
        ...

    def keys(self) -> list[str]:
        """List all stored keys."""
        ...

    def clear(self) -> None:
        """Remove every stored key."""
        ...


class ShellRunner(Protocol):
    """Protocol for running a command in a subshell and capturing output."""

    async def run(
        self,
        command: str,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ShellResult:
        """Run command and return its trimmed output and exit code."""
        ...


class TaskRunner(Protocol):
    """Protocol for the task execution platform (streams, reports exit)."""

    async def run_task(
        self,
        name: str,
        command: str,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        cancel_token: CancellationToken | None = None,
        on_output: Callable[[str], None] | None = None,
    ) -> int:
        """Run a task to completion; raise TaskFailedError on failure."""
        ...


class Prompter(Protocol):
    """Protocol for interactive prompts. None means the user cancelled."""

    async def pick(self, choices: list[str], title: str = "") -> str | None:
        ...

    async def pick_many(
        self,
        choices: list[str],
        picked: list[str] | None = None,
        title: str = "",
    ) -> list[str] | None:
        ...

    async def input(self, default: str = "", title: str = "") -> str | None:
        ...


class ConfigModel(Protocol):
    """Protocol for configuration access."""

    @property
    def executable(self) -> str:
        ...

    @property
    def shell_commands(self) -> list[dict[str, Any]]:
        ...

    def get(self, key: str, default: Any = None) -> Any:
        ...

    def get_path(self, path: str, default: Any = None) -> Any:
        ...
