# bzl — Terminal Target Deck for Bazel-like Build Tools
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Exception hierarchy for bzl.

Kernel converts every BzlError into a user-facing ``[ERR]`` line; anything
else is treated as a crash and goes to the crash log.
"""

from __future__ import annotations


class BzlError(Exception):
    """Base class for all expected bzl failures."""


class ResolutionError(BzlError):
    """A template or action could not be resolved (no state was mutated)."""


class ShellCommandError(BzlError):
    """A shell command failed to spawn or exited with a failing status."""

    def __init__(self, command: str, exit_code: int, stderr: str = ""):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        detail = f": {stderr}" if stderr else ""
        super().__init__(
            f"Command '{command}' exited with code {exit_code}{detail}"
        )


class TaskFailedError(BzlError):
    """A build/run/test task finished with a non-zero exit code."""

    def __init__(self, name: str, exit_code: int):
        self.name = name
        self.exit_code = exit_code
        super().__init__(f"{name} failed with exit code {exit_code}")


class OperationCancelled(BzlError):
    """A long-running operation was cancelled and its process killed."""


class ActionMismatchError(BzlError):
    """Attempt to replace a target with one of a different action."""


class TargetNotFoundError(BzlError):
    """The target to update is not registered under its action."""


class TargetBusyError(BzlError):
    """The target is already executing in another control flow."""
