# bzl — Terminal Target Deck for Bazel-like Build Tools
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
bzl CLI entry point and REPL loop.

Design:
- CLI owns process startup, logging and workspace/DB resolution.
- Kernel is the session engine (config+store+shell+prompter injected).
- UI is terminal-friendly PromptSession (keeps scrollback + copy/select).

Usage:
  bzl                  interactive session
  bzl <command ...>    run one command and exit (status 1 on error)
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import signal
import sys
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from . import __version__, config
from .executor import SubprocessExecutor
from .init import ensure_workspace_db
from .kernel import Kernel, write_crash_log
from .store import SQLiteStore, WorkspaceStateManager
from .ui import PromptToolkitPrompter, PromptToolkitUI
from .workspace import WorkspaceContext, load_setup_environment

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s:%(lineno)d - %(message)s"


def setup_logging(data_root: Path) -> Path:
    """Log to <data_root>/bzl/logs/bzl.log (DEBUG when BZL_DEBUG=1)."""
    log_dir = config.logs_dir(data_root)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "bzl.log"
    level = logging.DEBUG if os.environ.get("BZL_DEBUG") == "1" \
        else logging.INFO
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.FileHandler(log_file, encoding="utf-8")],
    )
    return log_file


@contextmanager
def interrupt_cancels(kernel: Kernel) -> Iterator[None]:
    """While the block runs, Ctrl-C cancels the running command (killing
    its process) instead of tearing down the event loop."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, kernel.cancel)
    except (NotImplementedError, RuntimeError):
        # No signal support here (non-main thread or platform)
        yield
        return
    try:
        yield
    finally:
        loop.remove_signal_handler(signal.SIGINT)


async def run_repl(
    kernel: Kernel,
    ui: PromptToolkitUI | None = None,
    input_fn: Callable[[str], str] = input,
    output_fn: Callable[[str], None] = print,
) -> None:
    """Run the standard bzl REPL loop."""

    def _write(text: str) -> None:
        if ui is not None:
            ui.write(text)
        else:
            output_fn(text)

    while kernel.running:
        try:
            prompt = kernel.prompt()
            if ui is not None:
                line = await ui.read(prompt)
            else:
                line = input_fn(prompt + " ")

            line = (line or "").strip()
            if not line:
                continue

            try:
                with interrupt_cancels(kernel):
                    response = await kernel.handle_command(line)
                if response == config.UI_CLEAR:
                    if ui is not None:
                        ui.clear()
                    else:
                        output_fn("\033[2J\033[H")
                    continue
                if response:
                    _write(response if ui is None else response + "\n")

            except Exception as e:
                # Unhandled exception - write crash log, keep the session
                logger.exception("Unhandled exception for %r", line)
                write_crash_log(
                    e,
                    raw_command=line,
                    workspace=kernel.ctx.root,
                    db_path=kernel.db_path,
                )
                _write(
                    f"[ERROR] Unhandled exception: {type(e).__name__}: {e}"
                    + ("\n" if ui is not None else "")
                )

        except (KeyboardInterrupt, EOFError):
            _write("\nBye!\n")
            break


async def run_once(kernel: Kernel, argv: list[str]) -> int:
    """Run a single command line; returns the process exit status."""
    kernel.running = True
    line = shlex.join(argv) if argv[0] != "custom" else " ".join(argv)
    response = await kernel.handle_command(line)
    if response and response != config.UI_CLEAR:
        print(response)
    return 1 if kernel.last_failed else 0


async def _main_async(argv: list[str]) -> int:
    data_root = config.get_data_root()
    workspace_root, db_path = ensure_workspace_db(Path.cwd())
    cfg = config.load_config(workspace_root)

    store = SQLiteStore(db_path)
    if WorkspaceStateManager(store).refresh_workspace_state(__version__):
        logger.info("Stored workspace state reset for bzl %s", __version__)

    ctx = WorkspaceContext(root=workspace_root, data_root=data_root)
    executor = SubprocessExecutor(
        force_color=True, timeout=cfg.shell_timeout
    )
    executor.base_env = await load_setup_environment(
        ctx, executor, cfg.setup_environment_command
    )

    prompter = PromptToolkitPrompter()
    kernel = Kernel(
        config=cfg,
        store=store,
        shell=executor,
        runner=executor,
        ctx=ctx,
        prompter=prompter,
        db_path=db_path,
    )

    if argv:
        kernel.output_fn = lambda s: print(s, end="", flush=True)
        return await run_once(kernel, argv)

    ui = PromptToolkitUI(kernel)
    prompter.style = ui.style
    kernel.output_fn = ui.write
    ui.write(kernel.start() + "\n")
    await run_repl(kernel, ui=ui)
    return 0


def main() -> None:
    """Main entry point for the bzl CLI."""
    setup_logging(config.get_data_root())
    sys.exit(asyncio.run(_main_async(sys.argv[1:])))
