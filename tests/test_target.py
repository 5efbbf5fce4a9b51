# tests/test_target.py
"""
Tests for the Target entity and its property lists.
"""

from __future__ import annotations

import pytest

from bzl_cli.target import (
    PROPERTY_NAMES,
    Target,
    TargetProperty,
    format_target_from_path,
    label_for,
    output_path_for,
)

# ----------------------------------------------------------------
# Path helpers
# ----------------------------------------------------------------


def test_output_path_for_label() -> None:
    assert output_path_for("//a/b:c") == "bazel-bin/a/b/c"
    assert output_path_for("//a/b") == "bazel-bin/a/b/b"
    assert output_path_for("//:root") == "bazel-bin/root"


def test_output_path_for_wildcards_and_non_labels() -> None:
    assert output_path_for("//a/...") == ""
    assert output_path_for("<Run Target>") == ""


def test_format_target_from_path() -> None:
    assert format_target_from_path("bazel-bin/a/b/c") == "//a/b:c"
    assert format_target_from_path("bazel-bin/root") == "//:root"
    assert format_target_from_path("") == ""


def test_label_for() -> None:
    assert label_for("//a/b:c") == "c"
    assert label_for("//a/...") == "//a/..."


# ----------------------------------------------------------------
# Identity
# ----------------------------------------------------------------


def test_targets_compare_by_action_and_label_not_id() -> None:
    a = Target.create("build", "//pkg:x")
    b = Target.create("build", "//other:x")
    c = Target.create("test", "//pkg:x")

    assert a.id != b.id
    assert a == b
    assert hash(a) == hash(b)
    assert a != c


def test_id_and_action_are_immutable() -> None:
    t = Target.create("build", "//pkg:x")
    with pytest.raises(AttributeError):
        t.id = "other"
    with pytest.raises(AttributeError):
        t.action = "run"

    # Other fields stay mutable
    t.label = "renamed"
    assert t.label == "renamed"


def test_create_derives_label_and_output_path() -> None:
    t = Target.create("run", "//app/cli:main", rule_type="cc_binary")
    assert t.label == "main"
    assert t.build_output_path == "bazel-bin/app/cli/main"
    assert t.rule_type == "cc_binary"


def test_create_empty() -> None:
    t = Target.create_empty("run")
    assert t.is_empty
    assert t.action == "run"
    assert not Target.create("run", "//a:b").is_empty


def test_with_action_gets_new_identity() -> None:
    t = Target.create("test", "//a:t")
    t.run_args.add("--x")
    r = t.with_action("run")
    assert r.action == "run"
    assert r.path == t.path
    assert r.id != t.id
    assert list(r.run_args) == []


# ----------------------------------------------------------------
# Properties
# ----------------------------------------------------------------


def test_property_add_deduplicates_and_records_history(history) -> None:
    prop = TargetProperty("config_args", history=history,
                          history_key="build:config_args")
    assert prop.add("opt") is True
    assert prop.add("opt") is False
    assert prop.add("  ") is False
    prop.add("dbg")

    assert prop.values == ["opt", "dbg"]
    assert prop.get_history() == ["dbg", "opt"]


def test_property_replace_keeps_position(history) -> None:
    prop = TargetProperty("run_args", ["a", "b", "c"], history, "run:run_args")
    assert prop.replace("b", "B") is True
    assert prop.values == ["a", "B", "c"]

    # Replacing with an existing value drops the old one
    assert prop.replace("a", "c") is True
    assert prop.values == ["B", "c"]

    assert prop.replace("missing", "x") is False


def test_property_remove_and_clear() -> None:
    prop = TargetProperty("env_vars", ["A=1", "B=2"])
    assert prop.remove("A=1") is True
    assert prop.remove("A=1") is False
    assert len(prop) == 1
    prop.clear()
    assert list(prop) == []


def test_property_history_is_keyed_by_action(history) -> None:
    build = Target.create("build", "//a:b")
    run = Target.create("run", "//a:b")
    build.attach_history(history)
    run.attach_history(history)

    build.config_args.add("opt")
    run.config_args.add("dbg")

    assert build.config_args.get_history() == ["opt"]
    assert run.config_args.get_history() == ["dbg"]
    assert history.get("build:config_args") == ["opt"]


def test_get_property_rejects_unknown_names() -> None:
    t = Target.create("build", "//a:b")
    assert set(t.properties()) == set(PROPERTY_NAMES)
    with pytest.raises(KeyError):
        t.get_property("nope")


# ----------------------------------------------------------------
# Copy / records
# ----------------------------------------------------------------


def test_clone_copies_values_with_new_id(history) -> None:
    t = Target.create("run", "//a:b")
    t.attach_history(history)
    t.run_args.add("--v")

    copy = t.clone()
    assert copy == t
    assert copy.id != t.id
    assert list(copy.run_args) == ["--v"]

    copy.run_args.add("--w")
    assert list(t.run_args) == ["--v"]
    assert copy.run_args.history is history

    assert t.clone(new_id=False).id == t.id


def test_record_round_trip_is_lossless() -> None:
    t = Target.create("test", "//a:t", rule_type="cc_test")
    t.env_vars.add("A=1")
    t.config_args.add("asan")
    t.tool_args.add("-k")
    t.run_args.add("--gtest_repeat=2")

    record = t.to_record()
    again = Target.from_record(record)

    assert again.to_record() == record
    assert again.id == t.id
    assert again.rule_type == "cc_test"


def test_from_record_fills_missing_fields() -> None:
    t = Target.from_record({"action": "build", "path": "//a:b"})
    assert t.label == ""
    assert t.id
    assert t.build_output_path == "bazel-bin/a/b"
    assert list(t.env_vars) == []
