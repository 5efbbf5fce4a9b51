# bzl — Terminal Target Deck for Bazel-like Build Tools
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Build tool service: target discovery and workspace-wide tasks.

Targets are discovered with one shell call that runs three label_kind
queries (runnable, test, everything else), each preceded by a "### <name>"
header line so the combined output can be split back into sections.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from .config import YAMLConfig
from .errors import BzlError
from .executor import CancellationToken
from .interfaces import ShellRunner, TaskRunner
from .registry import TargetRegistry
from .target import Target
from .workspace import WorkspaceContext

logger = logging.getLogger(__name__)

ACTIONS_REQUIRING_TARGET = (
    "aquery",
    "build",
    "coverage",
    "cquery",
    "mobile-install",
    "print_action",
    "query",
    "run",
    "test",
)

SECTION_RUN = "Run Targets"
SECTION_TEST = "Test Targets"
SECTION_OTHER = "Other Targets"

# Skips generated trees and hidden directories
QUERY_FILTER = r'"^(?!.*\.aspect_rules_js|.*node_modules|.*bazel-|.*/\.).*$"'

PACKAGE_TEST_RULE = "package_test"
PACKAGE_BUILD_RULE = "package_build"


def build_query_command(executable: str) -> str:
    runnable = 'attr("$is_executable", 1, //...)'
    flags = "--output=label_kind --keep_going 2>/dev/null"
    return "\n".join([
        f'echo "### {SECTION_RUN}";',
        f"{executable} query '{runnable}' {flags};",
        f'echo "### {SECTION_TEST}";',
        f"{executable} query 'filter({QUERY_FILTER}, tests(//...))' {flags};",
        f'echo "### {SECTION_OTHER}";',
        f"{executable} query 'filter({QUERY_FILTER}, //... except "
        f"{runnable} except tests(//...))' {flags};",
    ])


def parse_sections(output: str) -> dict[str, list[str]]:
    """Split combined query output into {section name: non-blank lines}."""
    sections: dict[str, list[str]] = {}
    for chunk in output.split("###"):
        lines = [line.strip() for line in chunk.strip().splitlines()]
        if not lines or not lines[0]:
            continue
        sections[lines[0]] = [line for line in lines[1:] if line]
    return sections


def parse_label_kind(line: str, action: str) -> Target | None:
    """'cc_binary rule //pkg:name' -> Target (None if malformed)."""
    parts = line.split()
    if len(parts) < 3 or not parts[2].startswith("//"):
        logger.debug("Ignoring query line %r", line)
        return None
    return Target.create(action, parts[2], rule_type=parts[0])


def _package_targets(
    targets: list[Target], action: str, rule_type: str
) -> list[Target]:
    packages: dict[str, None] = {}
    for target in targets:
        package = target.path.split(":", 1)[0]
        packages.setdefault(f"{package}/...", None)
    return [Target.create(action, path, rule_type=rule_type)
            for path in packages]


def targets_from_query_output(output: str) -> list[Target]:
    sections = parse_sections(output)

    def _parse(section: str, action: str) -> list[Target]:
        parsed = (parse_label_kind(line, action)
                  for line in sections.get(section, []))
        return [t for t in parsed if t is not None]

    run_targets = _parse(SECTION_RUN, "run")
    test_targets = _parse(SECTION_TEST, "test")
    other_targets = _parse(SECTION_OTHER, "build")
    return [
        *run_targets,
        *test_targets,
        *_package_targets(test_targets, "test", PACKAGE_TEST_RULE),
        *other_targets,
        *_package_targets(other_targets, "build", PACKAGE_BUILD_RULE),
    ]


def categorize(targets: list[Target]) -> dict[str, list[Target]]:
    """Available targets per action.

    Runnables are also buildable; tests are buildable and (except package
    wildcards) runnable; coverage offers the same targets as test.
    """
    result: dict[str, list[Target]] = {
        "run": [], "build": [], "test": [], "coverage": [],
    }
    for target in targets:
        if target.action == "test":
            result["test"].append(target)
            result["coverage"].append(target.with_action("coverage"))
            if target.rule_type != PACKAGE_TEST_RULE:
                result["run"].append(target.with_action("run"))
            result["build"].append(target.with_action("build"))
        elif target.action == "run":
            result["run"].append(target)
            result["build"].append(target.with_action("build"))
        else:
            result["build"].append(target.with_action("build"))
    return result


class BuildToolService:
    def __init__(
        self,
        config: YAMLConfig,
        shell: ShellRunner,
        runner: TaskRunner,
        registry: TargetRegistry,
        ctx: WorkspaceContext,
        on_output: Callable[[str], None] | None = None,
    ):
        self.config = config
        self.shell = shell
        self.runner = runner
        self.registry = registry
        self.ctx = ctx
        self.on_output = on_output
        self._refreshing = False

    def fetch_target_actions(self) -> list[str]:
        return list(ACTIONS_REQUIRING_TARGET)

    async def fetch_all_targets(
        self, cancel_token: CancellationToken | None = None
    ) -> list[Target]:
        command = build_query_command(self.config.executable)
        logger.info("Fetching all targets")
        result = await self.shell.run(
            command, cwd=self.ctx.cwd, cancel_token=cancel_token
        )
        if not result.stdout.replace("###", "").strip():
            result.check()
        return targets_from_query_output(result.stdout)

    @property
    def refreshing(self) -> bool:
        return self._refreshing

    async def refresh_available_targets(
        self, cancel_token: CancellationToken | None = None
    ) -> bool:
        """Re-query targets into the registry's available lists.

        Returns False without querying if a refresh is already running.
        """
        if self._refreshing:
            logger.warning("Target refresh already in progress; skipping")
            return False

        self._refreshing = True
        try:
            timeout_ms = self.config.refresh_targets_timeout_ms
            fetch = self.fetch_all_targets(cancel_token)
            try:
                if timeout_ms > 0:
                    targets = await asyncio.wait_for(fetch, timeout_ms / 1000)
                else:
                    targets = await fetch
            except asyncio.TimeoutError as e:
                raise BzlError(
                    f"Update targets timed out after {timeout_ms} ms"
                ) from e
            by_action = categorize(targets)
            self.registry.update_available_targets(by_action)
            logger.info(
                "Refreshed targets: %s",
                ", ".join(f"{a}={len(t)}" for a, t in by_action.items()),
            )
            return True
        finally:
            self._refreshing = False

    async def clean(self, cancel_token: CancellationToken | None = None) -> None:
        await self.runner.run_task(
            "clean", f"{self.config.executable} clean",
            cwd=self.ctx.cwd, cancel_token=cancel_token,
            on_output=self.on_output,
        )

    async def format(self, cancel_token: CancellationToken | None = None) -> None:
        await self.runner.run_task(
            "format",
            f"{self.config.executable} {self.config.format_command}",
            cwd=self.ctx.cwd, cancel_token=cancel_token,
            on_output=self.on_output,
        )
