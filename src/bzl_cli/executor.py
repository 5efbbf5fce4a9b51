# bzl — Terminal Target Deck for Bazel-like Build Tools
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Async subprocess executor for bzl.

This module provides:
- CancellationToken: cooperative cancellation signal for long operations
- run(): buffered execution with trimmed stdout/stderr (shell commands,
  target queries, setup environment capture)
- run_task(): the task execution platform; streams output line by line
  while a build/run/test executes and reports its exit code

Every command runs through /bin/bash. On cancellation (token or asyncio
task cancellation) the process is killed before the error propagates.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass

from .errors import OperationCancelled, ShellCommandError, TaskFailedError

logger = logging.getLogger(__name__)

SHELL = "/bin/bash"

# Filter-style invocations (grep, query --keep_going) exit 1 on "no results".
NO_RESULTS_EXIT_CODE = 1


class CancellationToken:
    """Cancellation signal shared between a caller and an operation."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass(frozen=True)
class ShellResult:
    command: str
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int

    @property
    def ok(self) -> bool:
        return self.exit_code in (0, NO_RESULTS_EXIT_CODE)

    def check(self) -> ShellResult:
        """Raise ShellCommandError unless exit code is 0 or the filter 1."""
        if not self.ok:
            raise ShellCommandError(self.command, self.exit_code, self.stderr)
        return self


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.kill()
    except ProcessLookupError:
        return
    await proc.wait()


async def _wait_or_cancel(
    proc: asyncio.subprocess.Process,
    work: asyncio.Future,
    command: str,
    cancel_token: CancellationToken | None,
    timeout: float | None,
):
    """Await work; kill proc on token cancel, timeout or task cancel."""
    waiters: set[asyncio.Future] = {work}
    cancel_waiter = None
    if cancel_token is not None:
        cancel_waiter = asyncio.ensure_future(cancel_token.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(
            waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        work.cancel()
        await _kill(proc)
        raise
    finally:
        if cancel_waiter is not None and not cancel_waiter.done():
            cancel_waiter.cancel()

    if work in done:
        return work.result()

    work.cancel()
    await _kill(proc)
    if not done:
        raise ShellCommandError(
            command, 1, f"Command timed out after {timeout} seconds"
        )
    logger.info("Cancelled: %s", command)
    raise OperationCancelled(f"{command} cancelled.")


class SubprocessExecutor:
    """asyncio subprocess implementation of ShellRunner and TaskRunner."""

    def __init__(
        self,
        force_color: bool = False,
        timeout: int | None = None,
        base_env: dict[str, str] | None = None,
    ):
        """Initialize executor with configuration.

        Args:
            force_color: If True, set color-forcing env variables for
                streamed tasks (buffered run() output stays plain)
            timeout: Timeout in seconds for buffered run() (None = no limit)
            base_env: Extra variables applied to every command (e.g. the
                workspace setup environment)
        """
        self.force_color = force_color
        self.timeout = timeout
        self.base_env = dict(base_env or {})

    def _build_env(
        self, env: dict[str, str] | None, color: bool = False
    ) -> dict[str, str]:
        merged = os.environ.copy()
        merged.update(self.base_env)
        if color and self.force_color:
            merged["FORCE_COLOR"] = "1"
            merged["CLICOLOR_FORCE"] = "1"
        if env:
            merged.update(env)
        return merged

    async def _spawn(
        self, command: str, cwd: str | None, env: dict[str, str] | None,
        merge_stderr: bool = False, color: bool = False,
    ) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=(
                    asyncio.subprocess.STDOUT if merge_stderr
                    else asyncio.subprocess.PIPE
                ),
                cwd=cwd,
                env=self._build_env(env, color),
                executable=SHELL,
            )
        except OSError as e:
            logger.error("Failed to spawn '%s': %s", command, e)
            raise ShellCommandError(command, 127, str(e)) from e

    async def run(
        self,
        command: str,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ShellResult:
        """Run a shell command and return buffered, trimmed results.

        The exit code is reported as-is; call ShellResult.check() to apply
        the "exit 1 means no results" convention.
        """
        logger.debug("Executing: %s (cwd=%s)", command, cwd)
        start_ts = time.monotonic()

        proc = await self._spawn(command, cwd, env)
        work = asyncio.ensure_future(proc.communicate())
        stdout, stderr = await _wait_or_cancel(
            proc, work, command, cancel_token, self.timeout
        )

        duration_ms = int((time.monotonic() - start_ts) * 1000)
        exit_code = proc.returncode if proc.returncode is not None else 1
        if exit_code != 0:
            logger.debug("'%s' exited with code %s", command, exit_code)

        return ShellResult(
            command=command,
            exit_code=exit_code,
            stdout=(stdout or b"").decode("utf-8", errors="replace").strip(),
            stderr=(stderr or b"").decode("utf-8", errors="replace").strip(),
            duration_ms=duration_ms,
        )

    async def run_task(
        self,
        name: str,
        command: str,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        cancel_token: CancellationToken | None = None,
        on_output: Callable[[str], None] | None = None,
    ) -> int:
        """Run a task, streaming merged stdout/stderr lines to on_output.

        Returns:
            0 on success

        Raises:
            TaskFailedError: non-zero exit
            OperationCancelled: cancel_token fired (process killed)
        """
        logger.info("Task '%s': %s", name, command)
        proc = await self._spawn(
            command, cwd, env, merge_stderr=True, color=True
        )
        assert proc.stdout is not None

        async def _pump() -> int:
            async for raw in proc.stdout:
                if on_output:
                    on_output(raw.decode("utf-8", errors="replace"))
            return await proc.wait()

        work = asyncio.ensure_future(_pump())
        exit_code = await _wait_or_cancel(
            proc, work, name, cancel_token, None
        )

        if exit_code != 0:
            logger.warning("Task '%s' exited with code %s", name, exit_code)
            raise TaskFailedError(name, exit_code)
        return exit_code
