# tests/conftest.py
"""
Shared fakes for the bzl Protocols (StateStore, ShellRunner, TaskRunner,
Prompter) and fixtures wiring them together.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import pytest

from bzl_cli.config import YAMLConfig, load_defaults_yaml
from bzl_cli.errors import OperationCancelled, TaskFailedError
from bzl_cli.executor import ShellResult
from bzl_cli.history import HistoryStore
from bzl_cli.registry import TargetRegistry
from bzl_cli.state import TargetStateMachine
from bzl_cli.workspace import WorkspaceContext


class FakeStore:
    """In-memory StateStore; values are JSON round-tripped like SQLite."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.updates: list[str] = []

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self.data:
            return default
        return json.loads(self.data[key])

    def update(self, key: str, value: Any) -> None:
        self.updates.append(key)
        if value is None:
            self.data.pop(key, None)
        else:
            self.data[key] = json.dumps(value)

    def keys(self) -> list[str]:
        return sorted(self.data)

    def clear(self) -> None:
        self.data.clear()


class FakeShell:
    """ShellRunner returning canned results keyed by exact command."""

    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        # command -> stdout, or (exit_code, stdout[, stderr])
        self.responses: dict[str, Any] = dict(responses or {})
        self.calls: list[str] = []
        self.envs: list[dict[str, str] | None] = []

    async def run(self, command, cwd=None, env=None, cancel_token=None):
        self.calls.append(command)
        self.envs.append(env)
        response = self.responses.get(command, "")
        if isinstance(response, tuple):
            exit_code, stdout, *rest = response
            stderr = rest[0] if rest else ""
        else:
            exit_code, stdout, stderr = 0, response, ""
        return ShellResult(command, exit_code, stdout.strip(), stderr, 0)


class FakeRunner:
    """TaskRunner recording tasks; optionally blocks until released.

    While blocked, a fired cancel_token ends the task with
    OperationCancelled, the way the real executor kills its process.
    """

    def __init__(self, exit_code: int = 0, output: str = "") -> None:
        self.exit_code = exit_code
        self.output = output
        self.error: Exception | None = None
        self.tasks: list[dict[str, Any]] = []
        self.gate: asyncio.Event | None = None
        self.started = asyncio.Event()

    async def _wait_gate(self, name, cancel_token) -> None:
        assert self.gate is not None
        if cancel_token is None:
            await self.gate.wait()
            return
        waiters = {asyncio.ensure_future(self.gate.wait()),
                   asyncio.ensure_future(cancel_token.wait())}
        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()
        if cancel_token.cancelled:
            raise OperationCancelled(f"{name} cancelled.")

    async def run_task(self, name, command, cwd=None, env=None,
                       cancel_token=None, on_output=None):
        self.tasks.append({"name": name, "command": command, "cwd": cwd,
                           "env": env})
        self.started.set()
        if self.gate is not None:
            await self._wait_gate(name, cancel_token)
        if self.error is not None:
            raise self.error
        if self.output and on_output:
            on_output(self.output)
        if self.exit_code != 0:
            raise TaskFailedError(name, self.exit_code)
        return 0

    @property
    def commands(self) -> list[str]:
        return [t["command"] for t in self.tasks]


class FakePrompter:
    """Prompter answering from queues; records what it was shown."""

    def __init__(self) -> None:
        self.picks: list[str | None] = []
        self.multi: list[list[str] | None] = []
        self.inputs: list[str | None] = []
        self.calls: list[tuple[str, Any]] = []

    async def pick(self, choices, title=""):
        self.calls.append(("pick", list(choices)))
        return self.picks.pop(0) if self.picks else None

    async def pick_many(self, choices, picked=None, title=""):
        self.calls.append(("pick_many", (list(choices), list(picked or []))))
        return self.multi.pop(0) if self.multi else None

    async def input(self, default="", title=""):
        self.calls.append(("input", default))
        return self.inputs.pop(0) if self.inputs else None


def make_config(**overrides: Any) -> YAMLConfig:
    data = load_defaults_yaml()
    data.update(overrides)
    return YAMLConfig(data)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def shell() -> FakeShell:
    return FakeShell()


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def prompter() -> FakePrompter:
    return FakePrompter()


@pytest.fixture
def history(store: FakeStore) -> HistoryStore:
    return HistoryStore(store)


@pytest.fixture
def registry(store: FakeStore, history: HistoryStore) -> TargetRegistry:
    return TargetRegistry(store, history)


@pytest.fixture
def state() -> TargetStateMachine:
    return TargetStateMachine()


@pytest.fixture
def ctx(tmp_path: Path) -> WorkspaceContext:
    return WorkspaceContext(root=tmp_path / "ws", data_root=tmp_path / "data")


@pytest.fixture
def config() -> YAMLConfig:
    return make_config(executable="tool")


@pytest.fixture
def config_factory():
    return make_config
