# bzl — Terminal Target Deck for Bazel-like Build Tools
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Utility functions for bzl.
"""

import re
from typing import Any


def format_table(
    headers: list[str],
    rows: list[list[Any]],
    title: str = ""
) -> str:
    """
    Format data as a simple text table without external dependencies.

    Args:
        headers: List of column header names
        rows: List of rows, where each row is a list of values
        title: Optional title to display above the table

    Returns:
        Formatted table as a string
    """
    if not rows:
        return ""

    str_headers = [str(h) for h in headers]
    str_rows = [[str(val) for val in row] for row in rows]

    col_widths = []
    for i, header in enumerate(str_headers):
        max_width = len(header)
        for row in str_rows:
            if i < len(row):
                max_width = max(max_width, len(row[i]))
        col_widths.append(max_width)

    lines = []

    if title:
        lines.append(title)

    header_parts = []
    for i, header in enumerate(str_headers):
        header_parts.append(header.ljust(col_widths[i]))
    lines.append("  ".join(header_parts).rstrip())

    for row in str_rows:
        row_parts = []
        for i, val in enumerate(row):
            row_parts.append(val.ljust(col_widths[i]))
        lines.append("  ".join(row_parts).rstrip())

    return "\n".join(lines)


def clean_and_format(*args: str) -> str:
    """Join non-blank parts with single spaces, trimming each part."""
    return " ".join(arg.strip() for arg in args if arg and arg.strip())


def split_env_var(item: str) -> tuple[str, str]:
    """Split KEY=VALUE (value may itself contain '=')."""
    key, _, value = item.partition("=")
    return key.strip(), value


def env_list_to_dict(env_vars: list[str]) -> dict[str, str]:
    """['A=1', 'B=x=y'] -> {'A': '1', 'B': 'x=y'}; entries without a key
    are skipped."""
    result: dict[str, str] = {}
    for item in env_vars:
        key, value = split_env_var(item)
        if key:
            result[key] = value
    return result


def to_build_env_vars(env_vars: list[str]) -> str:
    return " ".join(f"--action_env={v}" for v in env_vars)


def to_test_env_vars(env_vars: list[str]) -> str:
    return " ".join(f"--test_env={v}" for v in env_vars)


def to_config_args(configs: list[str]) -> str:
    return " ".join(f"--config={c}" for c in configs)


def to_tool_args(args: list[str]) -> str:
    """Prefix bare flag names with '--'; keep values that already start
    with '-'."""
    return " ".join(a if a.startswith("-") else f"--{a}" for a in args)


def format_test_args(test_args: str) -> str:
    """Forward --flags to the test binary: '--v=1 x' -> '--test_arg --v=1 x'"""
    return re.sub(r"(--\S+)", r"--test_arg \1", test_args)


def parse_env_output(output: str) -> dict[str, str]:
    """Parse `env` output (one KEY=VALUE per line) into a dict."""
    result: dict[str, str] = {}
    for line in output.splitlines():
        if "=" not in line:
            continue
        key, value = split_env_var(line)
        if key and re.match(r"^[A-Za-z_][A-Za-z0-9_]*$", key):
            result[key] = value
    return result
