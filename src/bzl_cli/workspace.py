# bzl — Terminal Target Deck for Bazel-like Build Tools
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""Workspace context shared by the services of one bzl session."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .interfaces import ShellRunner
from .utils import parse_env_output

logger = logging.getLogger(__name__)


@dataclass
class WorkspaceContext:
    root: Path
    data_root: Path
    setup_env: dict[str, str] = field(default_factory=dict)

    @property
    def cwd(self) -> str:
        return str(self.root)


async def load_setup_environment(
    ctx: WorkspaceContext, shell: ShellRunner, command: str
) -> dict[str, str]:
    """Run the setup command and keep the variables it changes.

    The result is stored on ctx.setup_env and returned.
    """
    if not command.strip():
        ctx.setup_env = {}
        return ctx.setup_env

    result = await shell.run(f"{command} >/dev/null && env", cwd=ctx.cwd)
    if result.exit_code != 0:
        logger.warning(
            "Setup environment command failed (exit %s): %s",
            result.exit_code, result.stderr,
        )
        ctx.setup_env = {}
        return ctx.setup_env

    env = parse_env_output(result.stdout)
    ctx.setup_env = {
        key: value for key, value in env.items()
        if os.environ.get(key) != value
    }
    logger.info("Loaded %d setup environment variables", len(ctx.setup_env))
    return ctx.setup_env
