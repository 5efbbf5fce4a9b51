# tests/test_build_tool.py
"""
Tests for target discovery (query output parsing, categorization) and the
BuildToolService refresh/clean/format operations.
"""

from __future__ import annotations

import asyncio

import pytest

from bzl_cli.build_tool import (
    PACKAGE_BUILD_RULE,
    PACKAGE_TEST_RULE,
    BuildToolService,
    build_query_command,
    categorize,
    parse_label_kind,
    parse_sections,
    targets_from_query_output,
)
from bzl_cli.errors import BzlError, ShellCommandError

from conftest import FakeShell

QUERY_OUTPUT = """\
### Run Targets
cc_binary rule //app:server
sh_binary rule //tools:lint
### Test Targets
cc_test rule //app:server_test
py_test rule //lib/py:util_test
### Other Targets
cc_library rule //app:core
source file //app:main.cc
"""


class BlockingShell(FakeShell):
    """FakeShell that holds every call until ``gate`` is set."""

    def __init__(self, responses=None) -> None:
        super().__init__(responses)
        self.gate = asyncio.Event()
        self.entered = asyncio.Event()

    async def run(self, command, cwd=None, env=None, cancel_token=None):
        self.entered.set()
        await self.gate.wait()
        return await super().run(command, cwd, env, cancel_token)


@pytest.fixture
def service(config, shell, runner, registry, ctx) -> BuildToolService:
    return BuildToolService(config, shell, runner, registry, ctx)


def _paths(targets) -> list[str]:
    return [t.path for t in targets]


# ----------------------------------------------------------------
# Parsing
# ----------------------------------------------------------------


def test_query_command_has_three_sections() -> None:
    cmd = build_query_command("tool")
    assert cmd.count("tool query") == 3
    assert 'echo "### Run Targets";' in cmd
    assert 'echo "### Test Targets";' in cmd
    assert 'echo "### Other Targets";' in cmd
    assert "--output=label_kind" in cmd


def test_parse_sections_skips_blank_lines() -> None:
    sections = parse_sections("### A\nx\n\ny\n### B\n### C\nz\n")
    assert sections == {"A": ["x", "y"], "B": [], "C": ["z"]}


def test_parse_label_kind() -> None:
    target = parse_label_kind("cc_test rule //a/b:c_test", "test")
    assert target.path == "//a/b:c_test"
    assert target.label == "c_test"
    assert target.rule_type == "cc_test"
    assert target.action == "test"


@pytest.mark.parametrize("line", ["", "garbage", "cc_test rule a:b"])
def test_parse_label_kind_malformed(line: str) -> None:
    assert parse_label_kind(line, "build") is None


def test_targets_from_query_output_adds_package_wildcards() -> None:
    targets = targets_from_query_output(QUERY_OUTPUT)
    by_action: dict[str, list[str]] = {}
    for t in targets:
        by_action.setdefault(t.action, []).append(t.path)

    assert by_action["run"] == ["//app:server", "//tools:lint"]
    assert by_action["test"] == [
        "//app:server_test", "//lib/py:util_test",
        "//app/...", "//lib/py/...",
    ]
    assert by_action["build"] == ["//app:core", "//app:main.cc", "//app/..."]

    wildcard = next(t for t in targets if t.path == "//lib/py/...")
    assert wildcard.rule_type == PACKAGE_TEST_RULE
    assert wildcard.build_output_path == ""


def test_categorize() -> None:
    result = categorize(targets_from_query_output(QUERY_OUTPUT))

    assert _paths(result["run"]) == [
        "//app:server", "//tools:lint",
        "//app:server_test", "//lib/py:util_test",
    ]
    assert _paths(result["test"]) == _paths(result["coverage"])
    assert all(t.action == "coverage" for t in result["coverage"])
    # Everything is buildable
    assert set(_paths(result["build"])) >= {
        "//app:server", "//app:server_test", "//app:core", "//app/...",
    }
    assert all(t.action == "build" for t in result["build"])


def test_categorize_keeps_package_build_wildcards_out_of_run() -> None:
    result = categorize(targets_from_query_output(
        "### Other Targets\ncc_library rule //x:y\n"
    ))
    assert result["run"] == []
    assert [t.rule_type for t in result["build"]] == ["cc_library",
                                                     PACKAGE_BUILD_RULE]


# ----------------------------------------------------------------
# Service
# ----------------------------------------------------------------


@pytest.mark.asyncio
async def test_fetch_all_targets(service, shell, config, ctx) -> None:
    shell.responses[build_query_command(config.executable)] = QUERY_OUTPUT
    targets = await service.fetch_all_targets()
    assert "//app:server" in _paths(targets)
    assert len(shell.calls) == 1


@pytest.mark.asyncio
async def test_fetch_with_partial_errors_still_parses(service, shell, config):
    # --keep_going queries exit non-zero but still print results
    shell.responses[build_query_command(config.executable)] = (3, QUERY_OUTPUT)
    assert len(await service.fetch_all_targets()) > 0


@pytest.mark.asyncio
async def test_fetch_failure_with_no_output_raises(service, shell, config):
    shell.responses[build_query_command(config.executable)] = (
        2, "", "no workspace"
    )
    with pytest.raises(ShellCommandError):
        await service.fetch_all_targets()


@pytest.mark.asyncio
async def test_refresh_updates_available_targets(
    service, shell, config, registry
) -> None:
    shell.responses[build_query_command(config.executable)] = QUERY_OUTPUT
    assert await service.refresh_available_targets() is True
    assert "//app:server" in _paths(registry.get_available_targets("run"))
    assert "//app:core" in _paths(registry.get_available_targets("build"))
    assert not service.refreshing


@pytest.mark.asyncio
async def test_refresh_is_single_flight(config, runner, registry, ctx):
    shell = BlockingShell({build_query_command("tool"): QUERY_OUTPUT})
    service = BuildToolService(config, shell, runner, registry, ctx)

    first = asyncio.ensure_future(service.refresh_available_targets())
    await shell.entered.wait()
    assert service.refreshing
    assert await service.refresh_available_targets() is False

    shell.gate.set()
    assert await first is True
    assert len(shell.calls) == 1


@pytest.mark.asyncio
async def test_refresh_timeout(config_factory, runner, registry, ctx) -> None:
    config = config_factory(executable="tool", refresh_targets_timeout_ms=20)
    service = BuildToolService(config, BlockingShell(), runner, registry, ctx)

    with pytest.raises(BzlError, match="timed out after 20 ms"):
        await service.refresh_available_targets()
    assert not service.refreshing
    assert registry.get_available_targets("run") == []


@pytest.mark.asyncio
async def test_clean_and_format_run_as_tasks(service, runner, ctx) -> None:
    await service.clean()
    await service.format()
    assert runner.commands == ["tool clean", "tool run //:format"]
    assert [t["name"] for t in runner.tasks] == ["clean", "format"]
    assert runner.tasks[0]["cwd"] == str(ctx.root)


def test_fetch_target_actions(service) -> None:
    actions = service.fetch_target_actions()
    assert {"build", "run", "test", "query"} <= set(actions)
