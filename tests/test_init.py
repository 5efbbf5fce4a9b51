# tests/test_init.py
"""
bzl — Workspace & DB Resolution Tests

This suite enforces the bootstrap contract for bzl_cli.init:

- init.py is bootstrap-only (no CLI/UI/Kernel/Store imports, no YAML)
- the workspace root is found by walking up to a marker, else cwd
- each workspace gets its own state DB under the data root, with schema
  and meta bookkeeping in place
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

import bzl_cli.init as init_mod
from bzl_cli import config, db
from bzl_cli.init import ensure_workspace_db, resolve_workspace_root

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def bzl_data_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    data = tmp_path / "bzl_data"
    data.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("BZL_DATA_HOME", str(data))
    return data


@pytest.fixture
def workspace_dir(tmp_path: Path) -> Path:
    p = tmp_path / "workspace"
    p.mkdir(parents=True, exist_ok=True)
    (p / "MODULE.bazel").write_text("", encoding="utf-8")
    return p


@pytest.fixture
def nested_dir(workspace_dir: Path) -> Path:
    n = workspace_dir / "a" / "b" / "c"
    n.mkdir(parents=True, exist_ok=True)
    return n


def _tables(db_path: Path) -> set[str]:
    conn = sqlite3.connect(str(db_path))
    try:
        rows = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ).fetchall()
        return {r[0] for r in rows}
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Boundary
# ---------------------------------------------------------------------------


def test_init_module_has_no_cli_ui_kernel_or_store_dependencies() -> None:
    src = Path(init_mod.__file__).read_text(encoding="utf-8")

    forbidden = [
        "from .kernel import",
        "from .ui import",
        "from .cli import",
        "from .store import",
        "import yaml",
        "Kernel(",
        "PromptToolkitUI",
    ]
    hits = [s for s in forbidden if s in src]
    assert not hits, f"bzl_cli.init must stay bootstrap-only. Found: {hits}"


# ---------------------------------------------------------------------------
# Workspace resolution
# ---------------------------------------------------------------------------


def test_resolve_workspace_root_walks_up(workspace_dir, nested_dir) -> None:
    assert resolve_workspace_root(nested_dir) == workspace_dir.resolve()


def test_resolve_workspace_root_falls_back_to_cwd(tmp_path, caplog) -> None:
    loose = tmp_path / "loose"
    loose.mkdir()
    assert resolve_workspace_root(loose) == loose.resolve()
    assert "No workspace marker" in caplog.text


# ---------------------------------------------------------------------------
# DB bootstrap
# ---------------------------------------------------------------------------


def test_ensure_workspace_db_creates_schema_and_meta(
    bzl_data_home: Path, workspace_dir: Path, nested_dir: Path
) -> None:
    root, db_path = ensure_workspace_db(nested_dir)

    assert root == workspace_dir.resolve()
    assert db_path == config.workspace_db_path(bzl_data_home, root)
    assert db_path.exists()
    assert {"state", "meta"} <= _tables(db_path)
    assert db.read_meta(db_path)["workspace_root"] == str(root)


def test_ensure_workspace_db_is_stable_per_workspace(
    bzl_data_home: Path, workspace_dir: Path, nested_dir: Path
) -> None:
    _, first = ensure_workspace_db(workspace_dir)
    _, second = ensure_workspace_db(nested_dir)
    assert first == second


def test_separate_workspaces_get_separate_dbs(
    bzl_data_home: Path, tmp_path: Path
) -> None:
    paths = []
    for name in ("one", "two"):
        ws = tmp_path / name / "repo"
        ws.mkdir(parents=True)
        (ws / "WORKSPACE").write_text("", encoding="utf-8")
        paths.append(ensure_workspace_db(ws)[1])
    assert paths[0] != paths[1]
