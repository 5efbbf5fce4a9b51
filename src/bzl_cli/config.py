# bzl — Terminal Target Deck for Bazel-like Build Tools
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Filesystem discovery and configuration loading for bzl.

Handles:
- Data root resolution (BZL_DATA_HOME, ~/.local/share)
- Workspace anchoring via MODULE.bazel / WORKSPACE / .bzl.yaml discovery
- Per-workspace state DB path helpers
- Packaged YAML defaults loading (bzl_cli/defaults/settings.yaml)
- Workspace overrides merged over the defaults (.bzl.yaml)
- ANSI coloring constants + UI_CLEAR semantic sentinel
"""

from __future__ import annotations

import hashlib
import os
import re
from importlib import resources as importlib_resources
from pathlib import Path
from typing import Any

import yaml

# -----------------------
# UI constants
# -----------------------

ANSI_COLORS: dict[str, str] = {
    "cyan": "\033[38;5;69;1m",
    "pink": "\033[38;5;169;1m",
    "magenta": "\033[38;5;126;1m",
    "yellow": "\033[38;5;226;1m",
    "reset": "\033[0m",
    "dim": "\033[2m",
    "green": "\033[32m",
    "red": "\033[31m",
}

TAG_COLORS: dict[str, str] = {
    "RUN": "green",
    "EXIT": "magenta",
    "ERR": "red",
    "WARN": "yellow",
    "STATE": "cyan",
}

# Semantic UI intent for clear screen operations
UI_CLEAR = "__UI_CLEAR__"

WORKSPACE_SETTINGS_FILE = ".bzl.yaml"
WORKSPACE_MARKERS = (
    "MODULE.bazel",
    "WORKSPACE",
    "WORKSPACE.bazel",
    WORKSPACE_SETTINGS_FILE,
)


# -----------------------
# Config model wrapper
# -----------------------


class YAMLConfig:
    """Merged settings wrapper that implements the ConfigModel protocol."""

    def __init__(self, config_dict: dict[str, Any]):
        self._config = config_dict

    @property
    def executable(self) -> str:
        return str(self._config.get("executable") or "bazel")

    @property
    def format_command(self) -> str:
        return str(self._config.get("format_command") or "run //:format")

    @property
    def shell_commands(self) -> list[dict[str, Any]]:
        commands = self._config.get("shell_commands") or []
        return [c for c in commands if isinstance(c, dict) and c.get("name")]

    @property
    def custom_buttons(self) -> list[dict[str, Any]]:
        sections = self._config.get("custom_buttons") or []
        return [s for s in sections if isinstance(s, dict)]

    @property
    def build_at_run(self) -> bool:
        return bool(self._config.get("build_at_run", True))

    @property
    def run_binaries_direct(self) -> bool:
        return bool(self._config.get("run_binaries_direct", False))

    @property
    def clear_terminal_before_action(self) -> bool:
        return bool(self._config.get("clear_terminal_before_action", False))

    @property
    def refresh_targets_timeout_ms(self) -> int:
        return int(self._config.get("refresh_targets_timeout_ms") or 0)

    @property
    def setup_environment_command(self) -> str:
        return str(self._config.get("setup_environment_command") or "")

    @property
    def debugger_command(self) -> str:
        return str(self._config.get("debugger_command") or "gdb --args")

    @property
    def history_size(self) -> int:
        return int(self._config.get("history_size") or 10)

    @property
    def shell_timeout(self) -> int | None:
        value = self._config.get("shell_timeout")
        return int(value) if value else None

    @property
    def ui(self) -> dict[str, Any]:
        ui_cfg = self._config.get("ui", {})
        return ui_cfg if isinstance(ui_cfg, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._config.get(key, default)

    def get_path(self, path: str, default: Any = None) -> Any:
        """
        Nested lookup using dot-separated path.
        Example: get_path("ui.theme.style", {}) -> dict style mapping
        """
        if not path:
            return default

        cur: Any = self._config
        for part in path.split("."):
            if not isinstance(cur, dict):
                return default
            if part not in cur:
                return default
            cur = cur[part]
        return cur


# -----------------------
# Data root + DB helpers
# -----------------------


def get_data_root() -> Path:
    """Get the data root directory for bzl.

    Resolution order:
    1. BZL_DATA_HOME environment variable (if set)
    2. ~/.local/share (default)
    """
    bzl_data_home = os.getenv("BZL_DATA_HOME")
    if bzl_data_home:
        root = Path(bzl_data_home)
    else:
        root = Path.home() / ".local" / "share"

    root.mkdir(parents=True, exist_ok=True)
    return root


def logs_dir(data_root: Path) -> Path:
    """<data_root>/bzl/logs"""
    return data_root / "bzl" / "logs"


def slugify(text: str) -> str:
    """Convert text to a filesystem-safe slug ("workspace" if empty)."""
    slug = text.lower()
    slug = re.sub(r"[^a-z0-9]+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    slug = slug.strip("-")
    return slug or "workspace"


def workspace_db_path(data_root: Path, workspace_root: Path) -> Path:
    """Get the state DB path for a workspace.

    Format: <data_root>/bzl/db/{slug(dir name)}-{8 hex of abs path}.db
    so two checkouts with the same directory name never share state.
    """
    resolved = str(workspace_root.resolve())
    digest = hashlib.sha1(resolved.encode("utf-8")).hexdigest()[:8]
    filename = f"{slugify(workspace_root.name)}-{digest}.db"
    return data_root / "bzl" / "db" / filename


def find_workspace_root(cwd: Path) -> Path | None:
    """Walk up from cwd looking for a build workspace marker file."""
    current = cwd.resolve()

    while True:
        for marker in WORKSPACE_MARKERS:
            if (current / marker).exists():
                return current

        parent = current.parent
        if parent == current:
            return None

        current = parent


# -----------------------
# Packaged defaults + workspace overrides
# -----------------------


def _defaults_dir() -> Path:
    """Return the installed path to the packaged defaults directory."""
    return Path(
        importlib_resources.files("bzl_cli.defaults")
    )  # type: ignore[arg-type]


def _load_yaml_mapping(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Settings YAML {path} must load to a mapping/dict.")
    return data


def load_defaults_yaml(filename: str = "settings.yaml") -> dict[str, Any]:
    """Load a YAML file from bzl_cli/defaults/."""
    defaults_dir = _defaults_dir()
    path = defaults_dir / filename
    if not path.exists():
        raise FileNotFoundError(
            f"Missing defaults YAML: {filename} "
            f"(looked in {defaults_dir})"
        )
    return _load_yaml_mapping(path)


def load_workspace_settings(workspace_root: Path | None) -> dict[str, Any]:
    """Load <workspace>/.bzl.yaml, or {} when there is none."""
    if workspace_root is None:
        return {}
    path = workspace_root / WORKSPACE_SETTINGS_FILE
    if not path.exists():
        return {}
    return _load_yaml_mapping(path)


def load_config(workspace_root: Path | None = None) -> YAMLConfig:
    """Packaged defaults with workspace overrides merged on top (shallow)."""
    merged = dict(load_defaults_yaml())
    merged.update(load_workspace_settings(workspace_root))
    return YAMLConfig(merged)
