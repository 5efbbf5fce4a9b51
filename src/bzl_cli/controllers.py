# bzl — Terminal Target Deck for Bazel-like Build Tools
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Action handlers.

Each action (build, run, test, debug, or any other build-tool verb) has a
controller that knows how to turn a target into a command line, run it as
a task and let the user pick a target for it. Unknown actions fall back to
the "*" controller.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol

from .config import UI_CLEAR, YAMLConfig
from .errors import ResolutionError
from .executor import CancellationToken
from .interfaces import Prompter, TaskRunner
from .registry import TargetRegistry
from .state import TargetStateMachine
from .target import BAZEL_BIN, BUILD_RUN_TARGET, Target, format_target_from_path
from .utils import (
    clean_and_format,
    env_list_to_dict,
    format_test_args,
    to_build_env_vars,
    to_config_args,
    to_test_env_vars,
    to_tool_args,
)
from .workspace import WorkspaceContext

logger = logging.getLogger(__name__)

ANY_ACTION = "*"


class TargetController(Protocol):
    async def execute(
        self, target: Target, cancel_token: CancellationToken | None = None
    ) -> None:
        ...

    def get_command(self, target: Target) -> str:
        ...

    async def pick_target(self, current: Target | None = None) -> Target | None:
        ...


class BaseController:
    """Shared plumbing: task execution, state guard and target picking."""

    def __init__(
        self,
        config: YAMLConfig,
        runner: TaskRunner,
        registry: TargetRegistry,
        state: TargetStateMachine,
        ctx: WorkspaceContext,
        prompter: Prompter | None = None,
        on_output: Callable[[str], None] | None = None,
    ):
        self.config = config
        self.runner = runner
        self.registry = registry
        self.state = state
        self.ctx = ctx
        self.prompter = prompter
        self.on_output = on_output

    def get_command(self, target: Target) -> str:
        raise NotImplementedError

    def task_env(self, target: Target) -> dict[str, str] | None:
        return None

    async def execute(
        self, target: Target, cancel_token: CancellationToken | None = None
    ) -> None:
        command = self.get_command(target)
        await self._run_task(target, command, cancel_token,
                             self.task_env(target))

    async def _run_task(
        self,
        target: Target,
        command: str,
        cancel_token: CancellationToken | None,
        env: dict[str, str] | None = None,
    ) -> None:
        with self.state.executing(target):
            if self.config.clear_terminal_before_action and self.on_output:
                self.on_output(UI_CLEAR)
            await self.runner.run_task(
                f"{target.action} {target.path}",
                command,
                cwd=self.ctx.cwd,
                env=env,
                cancel_token=cancel_token,
                on_output=self.on_output,
            )

    def candidates(self, action: str) -> list[Target]:
        return self.registry.get_available_targets(action)

    async def pick_target(self, current: Target | None = None) -> Target | None:
        """Let the user choose one of the available targets.

        The choice replaces current when given (and not empty), otherwise
        it is added. Returns the new target, or None if cancelled.
        """
        if current is None:
            raise ResolutionError("pick_target needs a target with an action")
        if self.prompter is None:
            raise ResolutionError("No prompt available")

        action = current.action
        candidates = self.candidates(action)
        if not candidates:
            raise ResolutionError(
                f"No available targets for {action!r}; run 'refresh' first"
            )
        by_path = {t.path: t for t in candidates}
        choice = await self.prompter.pick(list(by_path), title=action)
        if choice is None:
            return None

        picked = by_path[choice].with_action(action)
        if current.is_empty or self.registry.find_target(
            action, current.label
        ) is None:
            self.registry.add_target(picked)
        else:
            self.registry.update_target(picked, current)
        return picked


class BuildController(BaseController):
    def actual_path(self, target: Target) -> str | None:
        """The path to build; <Run Target> follows the run selection."""
        if target.path != BUILD_RUN_TARGET:
            return target.path
        run_target = self.registry.get_selected_target("run")
        if run_target is None or run_target.is_empty:
            return None
        return run_target.path

    def get_command(self, target: Target) -> str:
        path = self.actual_path(target)
        if not path:
            raise ResolutionError("Build failed. Could not find run target.")
        return clean_and_format(
            self.config.executable,
            "build",
            to_tool_args(list(target.tool_args)),
            to_config_args(list(target.config_args)),
            path,
            to_build_env_vars(list(target.env_vars)),
        )

    def candidates(self, action: str) -> list[Target]:
        available = super().candidates(action)
        run_target = Target.create(action, BUILD_RUN_TARGET,
                                   label=BUILD_RUN_TARGET)
        return [run_target, *available]


class RunController(BaseController):
    def __init__(self, *args, build: BuildController, **kwargs):
        super().__init__(*args, **kwargs)
        self.build = build

    def program_path(self, target: Target) -> str:
        output = target.build_output_path
        if not output:
            raise ResolutionError(f"No build output for {target.path}")
        return str(self.ctx.root / output)

    def get_command(self, target: Target) -> str:
        run_args = " ".join(target.run_args)
        if self.config.run_binaries_direct:
            return clean_and_format(self.program_path(target), run_args)

        path = target.path
        if target.build_output_path.startswith(BAZEL_BIN):
            path = format_target_from_path(target.build_output_path)
        return clean_and_format(
            self.config.executable,
            "run",
            to_tool_args(list(target.tool_args)),
            to_config_args(list(target.config_args)),
            path,
            f"-- {run_args}" if run_args else "",
        )

    def task_env(self, target: Target) -> dict[str, str] | None:
        return env_list_to_dict(list(target.env_vars)) or None

    async def execute(
        self, target: Target, cancel_token: CancellationToken | None = None
    ) -> None:
        if self.config.run_binaries_direct and self.config.build_at_run:
            with self.state.executing(target):
                await self.build.execute(target, cancel_token)
                await super().execute(target, cancel_token)
            return
        await super().execute(target, cancel_token)


class TestController(BaseController):
    __test__ = False

    def get_command(self, target: Target) -> str:
        return clean_and_format(
            self.config.executable,
            "test",
            to_tool_args(list(target.tool_args)),
            to_config_args(list(target.config_args)),
            to_test_env_vars(list(target.env_vars)),
            target.path,
            format_test_args(" ".join(target.run_args)),
        )


class DebugController(BaseController):
    """Build the target, then run its artifact under the debugger."""

    def __init__(self, *args, build: BuildController, **kwargs):
        super().__init__(*args, **kwargs)
        self.build = build

    def get_command(self, target: Target) -> str:
        output = target.build_output_path
        if not output:
            raise ResolutionError(f"No build output for {target.path}")
        return clean_and_format(
            self.config.debugger_command,
            str(self.ctx.root / output),
            " ".join(target.run_args),
        )

    def task_env(self, target: Target) -> dict[str, str] | None:
        return env_list_to_dict(list(target.env_vars)) or None

    async def execute(
        self, target: Target, cancel_token: CancellationToken | None = None
    ) -> None:
        command = self.get_command(target)
        with self.state.executing(target):
            await self.build.execute(target, cancel_token)
            await self._run_task(target, command, cancel_token,
                                 self.task_env(target))

    def candidates(self, action: str) -> list[Target]:
        return super().candidates(action) or self.registry.get_available_targets(
            "run"
        )


class AnyActionController(BaseController):
    def get_command(self, target: Target) -> str:
        return clean_and_format(
            self.config.executable,
            target.action,
            to_tool_args(list(target.tool_args)),
            to_config_args(list(target.config_args)),
            target.path,
            " ".join(target.env_vars),
        )

    def candidates(self, action: str) -> list[Target]:
        return super().candidates(action) or self.registry.get_available_targets(
            "build"
        )


class ControllerRegistry:
    def __init__(self) -> None:
        self._controllers: dict[str, TargetController] = {}

    def register(self, action: str, controller: TargetController) -> None:
        self._controllers[action] = controller

    def get(self, action: str) -> TargetController:
        controller = self._controllers.get(action)
        if controller is None:
            controller = self._controllers.get(ANY_ACTION)
        if controller is None:
            raise ResolutionError(f"No controller for action {action!r}")
        return controller

    def actions(self) -> list[str]:
        return [a for a in self._controllers if a != ANY_ACTION]


def build_controllers(
    config: YAMLConfig,
    runner: TaskRunner,
    registry: TargetRegistry,
    state: TargetStateMachine,
    ctx: WorkspaceContext,
    prompter: Prompter | None = None,
    on_output: Callable[[str], None] | None = None,
) -> ControllerRegistry:
    args = (config, runner, registry, state, ctx)
    kwargs = {"prompter": prompter, "on_output": on_output}
    build = BuildController(*args, **kwargs)

    controllers = ControllerRegistry()
    controllers.register("build", build)
    controllers.register("run", RunController(*args, build=build, **kwargs))
    controllers.register("test", TestController(*args, **kwargs))
    controllers.register("debug", DebugController(*args, build=build, **kwargs))
    controllers.register(ANY_ACTION, AnyActionController(*args, **kwargs))
    return controllers
