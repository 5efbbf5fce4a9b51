# bzl — Terminal Target Deck for Bazel-like Build Tools
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
bzl kernel.

Session engine behind the REPL:
- target registry commands (add / pick / remove / copy / select / prop)
- action execution through the controllers (build / run / test / debug
  and any other build-tool verb)
- custom command templates and buttons via the expansion engine
- target refresh, clean and format

Important boundary:
- Kernel does not load YAML or discover the workspace.
- Kernel consumes the injected config, store, shell, runner and prompter.

Output:
- handle_command() returns the text to print.
- Task output is streamed while a command runs through output_fn.
"""

from __future__ import annotations

import logging
import shlex
import traceback
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from . import config as cfg_module
from .build_tool import BuildToolService
from .config import ANSI_COLORS, TAG_COLORS, UI_CLEAR, YAMLConfig
from .controllers import ControllerRegistry, build_controllers
from .errors import BzlError, TargetNotFoundError
from .executor import CancellationToken
from .expansion import ExpansionEngine, NamedCommand
from .history import HistoryStore
from .interfaces import Prompter, ShellRunner, StateStore, TaskRunner
from .keywords import build_keyword_table
from .registry import TargetRegistry
from .state import TargetState, TargetStateMachine
from .target import PROPERTY_NAMES, Target
from .utils import format_table
from .workspace import WorkspaceContext

logger = logging.getLogger(__name__)

PICK_STATE_KEY = "pickState"

EXIT_COMMANDS = ("exit", "quit")

HELP_TEXT = """\
Targets:
  targets [action]                     List registered targets (* = selected)
  actions                              List actions
  available [action]                   List targets found by refresh
  add <action> <path>                  Register a target
  pick <action>                        Choose a target from the available list
  remove <action> <label>              Remove every target with that label
  copy <action> <label>                Duplicate a target
  select <action> <label>              Make a target the selection for its action
  prop <action> <label> <property> add|remove|clear [value]
                                       Edit env_vars, config_args, tool_args, run_args
  history <action> <property>          Recent values of a property

Execution:
  build | run | test | debug           Run the action on its selected target
  exec <action> [label]                Run any action on a target
  command <action> [label]             Show the command exec would run
  custom <template>                    Expand and run a command template
  button [title]                       List or run a custom button
  refresh                              Re-query available targets
  clean | format                       Workspace-wide tasks
  state                                Show executing targets

  help                                 This text
  exit | quit                          Leave bzl"""


def write_crash_log(
    error: Exception,
    raw_command: str = "",
    resolved_command: str = "",
    workspace: Path | None = None,
    db_path: Path | None = None,
) -> None:
    """Append an entry to <data_root>/bzl/logs/crash.log.

    Only creates the log directory when actually needed.
    """
    try:
        log_dir = cfg_module.logs_dir(cfg_module.get_data_root())
        log_dir.mkdir(parents=True, exist_ok=True)
        crash_log_path = log_dir / "crash.log"

        lines = [datetime.now().isoformat()]
        if raw_command:
            lines.append(f"raw={raw_command}")
        if resolved_command:
            lines.append(f"resolved={resolved_command}")
        if workspace:
            lines.append(f"workspace={workspace}")
        if db_path:
            lines.append(f"db_path={db_path}")
        lines.append(f"error={type(error).__name__}: {error}")
        lines.append("traceback:")
        lines.append(traceback.format_exc())
        lines.append("----")

        with crash_log_path.open("a", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")
    except OSError as e:
        # Already in an error state; the log handler still has the error
        logger.debug("Could not write crash log: %s", e)


def _tag(name: str, text: str) -> str:
    color = ANSI_COLORS[TAG_COLORS[name]]
    return f"{color}[{name}]{ANSI_COLORS['reset']} {text}"


Handler = Callable[[list[str], str], Awaitable[str]]


@dataclass
class Kernel:
    """bzl session engine."""

    config: YAMLConfig
    store: StateStore
    shell: ShellRunner
    runner: TaskRunner
    ctx: WorkspaceContext
    prompter: Prompter | None = None
    db_path: Path | None = None

    running: bool = False
    last_failed: bool = False
    command_history: list[str] = field(default_factory=list)

    # Streaming hook (wired by UI/CLI)
    output_fn: Callable[[str], None] | None = None

    history: HistoryStore = field(init=False)
    registry: TargetRegistry = field(init=False)
    state: TargetStateMachine = field(init=False)
    controllers: ControllerRegistry = field(init=False)
    build_tool: BuildToolService = field(init=False)

    _cancel_token: CancellationToken | None = field(
        default=None, init=False, repr=False
    )
    _handlers: dict[str, Handler] = field(
        default_factory=dict, init=False, repr=False
    )

    def __post_init__(self) -> None:
        self.history = HistoryStore(self.store, size=self.config.history_size)
        self.registry = TargetRegistry(self.store, self.history)
        self.state = TargetStateMachine()
        self.controllers = build_controllers(
            self.config, self.runner, self.registry, self.state, self.ctx,
            prompter=self.prompter, on_output=self.emit,
        )
        self.build_tool = BuildToolService(
            self.config, self.shell, self.runner, self.registry, self.ctx,
            on_output=self.emit,
        )
        self._handlers = {
            "help": self._handle_help,
            "targets": self._handle_targets,
            "actions": self._handle_actions,
            "available": self._handle_available,
            "add": self._handle_add,
            "pick": self._handle_pick,
            "remove": self._handle_remove,
            "copy": self._handle_copy,
            "select": self._handle_select,
            "prop": self._handle_prop,
            "history": self._handle_history,
            "command": self._handle_command_preview,
            "exec": self._handle_exec,
            "custom": self._handle_custom,
            "button": self._handle_button,
            "refresh": self._handle_refresh,
            "clean": self._handle_clean,
            "format": self._handle_format,
            "state": self._handle_state,
        }
        for action in ("build", "run", "test", "debug"):
            self._handlers[action] = self._selected_action_handler(action)

    # -----------------------
    # Session
    # -----------------------

    def start(self) -> str:
        self.running = True
        selected = []
        for action in self.registry.get_actions():
            target = self.registry.get_selected_target(action)
            if target is not None:
                selected.append(f"{action}={target.label}")
        lines = [f"bzl: workspace {self.ctx.root}"]
        if selected:
            lines.append("selected: " + ", ".join(selected))
        lines.append("Type 'help' for commands.")
        return "\n".join(lines)

    def prompt(self) -> str:
        cyan = ANSI_COLORS["cyan"]
        pink = ANSI_COLORS["pink"]
        reset = ANSI_COLORS["reset"]
        return f"{cyan}bzl{reset}{pink}>{reset}"

    def emit(self, text: str) -> None:
        if self.output_fn:
            self.output_fn(text)

    def cancel(self) -> None:
        """Cancel the command currently running, if any."""
        if self._cancel_token is not None:
            self._cancel_token.cancel()

    def command_names(self) -> list[str]:
        return sorted([*self._handlers, *EXIT_COMMANDS])

    # -----------------------
    # Command handling
    # -----------------------

    async def handle_command(self, command: str) -> str:
        """Handle a single command line."""
        self.command_history.append(command)
        self.last_failed = False
        stripped = command.strip()

        if stripped in ("cls", "clear") or command == "\x0c":
            return UI_CLEAR

        if stripped in EXIT_COMMANDS:
            self.running = False
            return "Exiting bzl."

        try:
            parts = shlex.split(stripped)
        except ValueError:
            parts = stripped.split()
        if not parts:
            return ""

        handler = self._handlers.get(parts[0])
        if handler is None:
            self.last_failed = True
            return f"Unknown command: {parts[0]} (try 'help')"

        self._cancel_token = CancellationToken()
        try:
            return await handler(parts[1:], stripped)
        except BzlError as e:
            logger.warning("%s failed: %s", parts[0], e)
            self.last_failed = True
            return _tag("ERR", str(e))
        finally:
            self._cancel_token = None

    def _expansion_engine(self) -> ExpansionEngine:
        commands = [
            NamedCommand.from_config(c) for c in self.config.shell_commands
            if isinstance(c, dict) and c.get("name")
        ]
        pick_state = self.store.get(PICK_STATE_KEY, {})
        return ExpansionEngine(
            keywords=build_keyword_table(self.config, self.registry),
            commands=commands,
            shell=self.shell,
            prompter=self.prompter,
            cwd=self.ctx.cwd,
            pick_state=pick_state if isinstance(pick_state, dict) else {},
            cancel_token=self._cancel_token,
        )

    async def expand(self, template: str) -> str:
        """Expand a template, persisting MultiPick selections."""
        engine = self._expansion_engine()
        try:
            return await engine.expand(template)
        finally:
            self.store.update(PICK_STATE_KEY, engine.pick_state)

    def _target(self, action: str, label: str | None = None) -> Target:
        if label is None:
            target = self.registry.get_selected_target(action)
            if target is None:
                raise TargetNotFoundError(f"No {action} target selected")
            return target
        target = self.registry.find_target(action, label)
        if target is None:
            raise TargetNotFoundError(
                f"Target {label!r} not found for action {action!r}"
            )
        return target

    # -----------------------
    # Target commands
    # -----------------------

    async def _handle_help(self, args: list[str], line: str) -> str:
        return HELP_TEXT

    async def _handle_targets(self, args: list[str], line: str) -> str:
        action = args[0] if args else None
        rows = []
        for target in self.registry.get_targets(action):
            selected = self.registry.get_selected_target(target.action)
            is_selected = selected is not None and selected.id == target.id
            rows.append([
                "*" if is_selected else "", target.action, target.label,
                target.path,
                self.state.get_state(target).value,
            ])
        if not rows:
            return "No targets registered."
        return format_table(["", "action", "label", "path", "state"], rows)

    async def _handle_actions(self, args: list[str], line: str) -> str:
        registered = self.registry.get_actions()
        known = [a for a in self.build_tool.fetch_target_actions()
                 if a not in registered]
        return "\n".join([*registered, *known])

    async def _handle_available(self, args: list[str], line: str) -> str:
        actions = args or ["run", "test", "build"]
        rows = []
        for action in actions:
            for target in self.registry.get_available_targets(action):
                rows.append([action, target.rule_type, target.path])
        if not rows:
            return "No available targets (run 'refresh')."
        return format_table(["action", "rule", "path"], rows)

    async def _handle_add(self, args: list[str], line: str) -> str:
        if len(args) != 2:
            return "Usage: add <action> <path>"
        target = Target.create(args[0], args[1])
        self.registry.add_target(target)
        return f"Added {target.action} {target.label}"

    async def _handle_pick(self, args: list[str], line: str) -> str:
        if len(args) != 1:
            return "Usage: pick <action>"
        action = args[0]
        if not self.registry.get_available_targets(action):
            await self.build_tool.refresh_available_targets(self._cancel_token)
        current = (self.registry.get_selected_target(action)
                   or Target.create_empty(action))
        picked = await self.controllers.get(action).pick_target(current)
        if picked is None:
            return "Cancelled."
        return f"Picked {picked.action} {picked.label}"

    async def _handle_remove(self, args: list[str], line: str) -> str:
        if len(args) != 2:
            return "Usage: remove <action> <label>"
        target = self._target(args[0], args[1])
        self.registry.remove_target(target)
        return f"Removed {target.action} {target.label}"

    async def _handle_copy(self, args: list[str], line: str) -> str:
        if len(args) != 2:
            return "Usage: copy <action> <label>"
        copy = self._target(args[0], args[1]).clone()
        self.registry.add_target(copy)
        return f"Copied {copy.action} {copy.label}"

    async def _handle_select(self, args: list[str], line: str) -> str:
        if len(args) != 2:
            return "Usage: select <action> <label>"
        target = self._target(args[0], args[1])
        self.registry.update_selected_target(target)
        return f"Selected {target.action} {target.label}"

    async def _handle_prop(self, args: list[str], line: str) -> str:
        usage = ("Usage: prop <action> <label> <property> add|remove|clear "
                 "[value]")
        if len(args) < 4:
            return usage
        action, label, name, op = args[:4]
        # Raw remainder: the value keeps its quoting and spacing
        rest = line.split(None, 5)
        value = rest[5].strip() if len(rest) == 6 else ""
        if name not in PROPERTY_NAMES:
            return f"Unknown property {name!r} ({', '.join(PROPERTY_NAMES)})"

        prop = self._target(action, label).get_property(name)
        if op == "add" and value:
            prop.add(value)
        elif op == "remove" and value:
            if not prop.remove(value):
                return f"{value!r} is not in {name}"
        elif op == "clear":
            prop.clear()
        else:
            return usage
        self.registry.save()
        return f"{name}: {' '.join(prop.values)}"

    async def _handle_history(self, args: list[str], line: str) -> str:
        if len(args) != 2:
            return "Usage: history <action> <property>"
        values = self.history.get(f"{args[0]}:{args[1]}")
        if not values:
            return "No history."
        return "\n".join(f"{i}  {v}" for i, v in enumerate(values))

    # -----------------------
    # Execution
    # -----------------------

    def _selected_action_handler(self, action: str) -> Handler:
        async def _handler(args: list[str], line: str) -> str:
            label = args[0] if args else None
            return await self._execute(self._target(action, label))
        return _handler

    async def _execute(self, target: Target) -> str:
        controller = self.controllers.get(target.action)
        command = controller.get_command(target)
        self.emit(_tag("RUN", command) + "\n")
        await controller.execute(target, self._cancel_token)
        return _tag("EXIT", "0")

    async def _handle_exec(self, args: list[str], line: str) -> str:
        if not args:
            return "Usage: exec <action> [label]"
        return await self._execute(
            self._target(args[0], args[1] if len(args) > 1 else None)
        )

    async def _handle_command_preview(self, args: list[str], line: str) -> str:
        if not args:
            return "Usage: command <action> [label]"
        target = self._target(args[0], args[1] if len(args) > 1 else None)
        return self.controllers.get(target.action).get_command(target)

    async def _run_template(self, name: str, template: str) -> str:
        resolved = await self.expand(template)
        if not resolved.strip():
            return _tag("WARN", f"{name} resolved to an empty command")
        self.emit(_tag("RUN", resolved) + "\n")
        if self.config.clear_terminal_before_action:
            self.emit(UI_CLEAR)
        await self.runner.run_task(
            name, resolved, cwd=self.ctx.cwd,
            cancel_token=self._cancel_token, on_output=self.emit,
        )
        return _tag("EXIT", "0")

    async def _handle_custom(self, args: list[str], line: str) -> str:
        template = line[len("custom"):].strip()
        if not template:
            return "Usage: custom <template>"
        return await self._run_template("custom", template)

    def buttons(self) -> list[tuple[str, dict[str, Any]]]:
        result = []
        for section in self.config.custom_buttons:
            if not isinstance(section, dict):
                continue
            for button in section.get("buttons") or []:
                if isinstance(button, dict) and button.get("title"):
                    title = f"{section.get('title', '')}/{button['title']}"
                    result.append((title.lstrip("/"), button))
        return result

    async def _handle_button(self, args: list[str], line: str) -> str:
        buttons = self.buttons()
        if not args:
            if not buttons:
                return "No custom buttons configured."
            return format_table(
                ["button", "description"],
                [[t, b.get("description", "")] for t, b in buttons],
            )
        wanted = " ".join(args)
        for title, button in buttons:
            if wanted in (title, button["title"]):
                return await self._run_template(
                    title, str(button.get("command", ""))
                )
        return f"Unknown button: {wanted}"

    async def _handle_refresh(self, args: list[str], line: str) -> str:
        if not await self.build_tool.refresh_available_targets(
            self._cancel_token
        ):
            return _tag("WARN", "Refresh already in progress.")
        counts = [
            f"{a}={len(self.registry.get_available_targets(a))}"
            for a in ("run", "test", "build")
        ]
        return "Refreshed: " + ", ".join(counts)

    async def _handle_clean(self, args: list[str], line: str) -> str:
        await self.build_tool.clean(self._cancel_token)
        return _tag("EXIT", "0")

    async def _handle_format(self, args: list[str], line: str) -> str:
        await self.build_tool.format(self._cancel_token)
        return _tag("EXIT", "0")

    async def _handle_state(self, args: list[str], line: str) -> str:
        lines = []
        for target_id in self.state.executing_ids():
            target = self.registry.find_by_id(target_id)
            name = f"{target.action} {target.label}" if target else target_id
            lines.append(_tag("STATE", f"{name}: "
                              f"{TargetState.EXECUTING.value}"))
        return "\n".join(lines) or "Nothing executing."
