# bzl — Terminal Target Deck for Bazel-like Build Tools
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Keyword table for the ${name} pass.

Values are looked up lazily so a table built once always reflects the
current selection and property lists.
"""

from __future__ import annotations

from collections.abc import Callable

from .interfaces import ConfigModel
from .registry import TargetRegistry
from .target import BUILD_RUN_TARGET, Target
from .utils import (
    format_test_args,
    to_build_env_vars,
    to_config_args,
    to_test_env_vars,
    to_tool_args,
)

ACTIONS = ("build", "run", "test")

# Older keyword names accepted as aliases
_ALIASES = {
    "buildConfigs": "buildConfigArgs",
    "runConfigs": "runConfigArgs",
    "testConfigs": "testConfigArgs",
    "bazelBuildArgs": "buildToolArgs",
    "bazelRunArgs": "runToolArgs",
    "bazelTestArgs": "testToolArgs",
}


def _env_vars(action: str, target: Target) -> str:
    values = list(target.env_vars)
    if action == "build":
        return to_build_env_vars(values)
    if action == "test":
        return to_test_env_vars(values)
    return " ".join(values)


def resolve_target(registry: TargetRegistry, action: str) -> Target | None:
    """Selected target for action; a build of <Run Target> follows the
    selected run target."""
    target = registry.get_selected_target(action)
    if target is not None and target.path == BUILD_RUN_TARGET:
        run_target = registry.get_selected_target("run")
        if run_target is None:
            return None
        return run_target.with_action(action)
    return target


def build_keyword_table(
    config: ConfigModel, registry: TargetRegistry
) -> dict[str, Callable[[], str]]:
    table: dict[str, Callable[[], str]] = {
        "executable": lambda: config.executable,
        "formatCommand": lambda: str(config.get("format_command", "")),
    }

    def selected(action: str, render: Callable[[Target], str]):
        def _value() -> str:
            target = resolve_target(registry, action)
            if target is None or target.is_empty:
                return ""
            return render(target)
        return _value

    for action in ACTIONS:
        table[f"{action}Target"] = selected(action, lambda t: t.path)
        table[f"{action}ConfigArgs"] = selected(
            action, lambda t: to_config_args(list(t.config_args))
        )
        table[f"{action}ToolArgs"] = selected(
            action, lambda t: to_tool_args(list(t.tool_args))
        )
        table[f"{action}EnvVars"] = selected(
            action, lambda t, a=action: _env_vars(a, t)
        )

    table["runArgs"] = selected("run", lambda t: " ".join(t.run_args))
    table["testArgs"] = selected(
        "test", lambda t: format_test_args(" ".join(t.run_args))
    )

    for alias, name in _ALIASES.items():
        table[alias] = table[name]
    return table
