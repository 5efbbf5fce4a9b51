# bzl — Terminal Target Deck for Bazel-like Build Tools
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Target entity: one addressable unit of work for one action.

A Target carries its identity (action, label, build-tool path, stable id)
and four mutable property lists: environment variables, build-tool configs,
extra tool arguments and run arguments. Targets compare equal by
(action, label), never by id.
"""

from __future__ import annotations

import posixpath
import uuid
from dataclasses import dataclass, field
from typing import Any

from .history import HistoryStore

BAZEL_BIN = "bazel-bin"

# Build path placeholder: "build whatever run target is selected".
BUILD_RUN_TARGET = "<Run Target>"

PROPERTY_NAMES = ("env_vars", "config_args", "tool_args", "run_args")

# Property attribute -> persisted record key
_RECORD_KEYS = {
    "env_vars": "envVars",
    "config_args": "configArgs",
    "tool_args": "toolArgs",
    "run_args": "runArgs",
}

_IMMUTABLE_FIELDS = ("id", "action")


def new_target_id() -> str:
    return uuid.uuid4().hex


def output_path_for(path: str) -> str:
    """//pkg/sub:name -> bazel-bin/pkg/sub/name ('' for wildcards)."""
    if not path.startswith("//") or "..." in path:
        return ""
    package, _, name = path[2:].partition(":")
    if not name:
        name = posixpath.basename(package)
    parts = [p for p in package.split("/") if p]
    return posixpath.join(BAZEL_BIN, *parts, name)


def format_target_from_path(build_path: str) -> str:
    """bazel-bin/pkg/sub/name -> //pkg/sub:name"""
    parts = [p for p in build_path.split("/") if p]
    if parts and parts[0] == BAZEL_BIN:
        parts = parts[1:]
    if not parts:
        return ""
    return "//" + "/".join(parts[:-1]) + ":" + parts[-1]


def label_for(path: str) -> str:
    """Display label for a path: the rule name, or the path for packages."""
    if ":" in path:
        return path.rsplit(":", 1)[1] or path
    return path


@dataclass
class TargetProperty:
    """Ordered, de-duplicated list of strings with its own history."""

    name: str
    values: list[str] = field(default_factory=list)
    history: HistoryStore | None = None
    history_key: str = ""

    def add(self, value: str) -> bool:
        """Append value unless already present. Returns True if added."""
        value = value.strip()
        if not value:
            return False
        self._remember(value)
        if value in self.values:
            return False
        self.values.append(value)
        return True

    def remove(self, value: str) -> bool:
        if value not in self.values:
            return False
        self.values.remove(value)
        return True

    def replace(self, old: str, new: str) -> bool:
        """Replace old in place; drops old if new is already present."""
        if old not in self.values:
            return False
        new = new.strip()
        self._remember(new)
        index = self.values.index(old)
        if new in self.values:
            del self.values[index]
        else:
            self.values[index] = new
        return True

    def clear(self) -> None:
        self.values.clear()

    def get_history(self) -> list[str]:
        if self.history is None:
            return []
        return self.history.get(self.history_key)

    def _remember(self, value: str) -> None:
        if self.history is not None and value:
            self.history.add(self.history_key, value)

    def __iter__(self):
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)


@dataclass(eq=False)
class Target:
    """A registered target. ``id`` and ``action`` cannot change."""

    action: str
    label: str
    path: str
    build_output_path: str = ""
    rule_type: str = ""
    id: str = field(default_factory=new_target_id)

    env_vars: TargetProperty = field(init=False)
    config_args: TargetProperty = field(init=False)
    tool_args: TargetProperty = field(init=False)
    run_args: TargetProperty = field(init=False)

    def __post_init__(self) -> None:
        if not self.build_output_path:
            self.build_output_path = output_path_for(self.path)
        for name in PROPERTY_NAMES:
            setattr(self, name, TargetProperty(
                name=name, history_key=f"{self.action}:{name}"
            ))

    def __setattr__(self, name: str, value: Any) -> None:
        if name in _IMMUTABLE_FIELDS and name in self.__dict__:
            raise AttributeError(f"Target.{name} is immutable")
        object.__setattr__(self, name, value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Target):
            return NotImplemented
        return (self.action, self.label) == (other.action, other.label)

    def __hash__(self) -> int:
        return hash((self.action, self.label))

    def __repr__(self) -> str:
        return (
            f"Target(action={self.action!r}, label={self.label!r}, "
            f"path={self.path!r}, id={self.id!r})"
        )

    @classmethod
    def create(
        cls, action: str, path: str, rule_type: str = "",
        label: str | None = None,
    ) -> Target:
        return cls(
            action=action,
            label=label if label is not None else label_for(path),
            path=path,
            rule_type=rule_type,
        )

    @classmethod
    def create_empty(cls, action: str) -> Target:
        return cls(action=action, label="", path="")

    @property
    def is_empty(self) -> bool:
        return not self.path

    def properties(self) -> dict[str, TargetProperty]:
        return {name: getattr(self, name) for name in PROPERTY_NAMES}

    def get_property(self, name: str) -> TargetProperty:
        if name not in PROPERTY_NAMES:
            raise KeyError(name)
        return getattr(self, name)

    def attach_history(self, history: HistoryStore) -> None:
        for prop in self.properties().values():
            prop.history = history

    def clone(self, new_id: bool = True) -> Target:
        """Copy with the same action and property values."""
        copy = Target.from_record(self.to_record())
        if new_id:
            object.__setattr__(copy, "id", new_target_id())
        for name, prop in self.properties().items():
            copy.get_property(name).history = prop.history
        return copy

    def with_action(self, action: str) -> Target:
        """A new target for another action with the same path."""
        return Target(
            action=action,
            label=self.label,
            path=self.path,
            build_output_path=self.build_output_path,
            rule_type=self.rule_type,
        )

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "label": self.label,
            "path": self.path,
            "action": self.action,
            "id": self.id,
            "ruleType": self.rule_type,
            "buildOutputPath": self.build_output_path,
        }
        for name, key in _RECORD_KEYS.items():
            record[key] = list(getattr(self, name).values)
        return record

    @classmethod
    def from_record(
        cls, data: dict[str, Any], history: HistoryStore | None = None
    ) -> Target:
        target = cls(
            action=data["action"],
            label=data.get("label", ""),
            path=data.get("path", ""),
            build_output_path=data.get("buildOutputPath", ""),
            rule_type=data.get("ruleType") or "",
            id=data.get("id") or new_target_id(),
        )
        for name, key in _RECORD_KEYS.items():
            values = data.get(key) or []
            getattr(target, name).values = [str(v) for v in values]
        if history is not None:
            target.attach_history(history)
        return target
