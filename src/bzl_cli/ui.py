# bzl — Terminal Target Deck for Bazel-like Build Tools
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion, WordCompleter
from prompt_toolkit.formatted_text import ANSI
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.patch_stdout import patch_stdout
from prompt_toolkit.shortcuts import clear as pt_clear
from prompt_toolkit.shortcuts import print_formatted_text
from prompt_toolkit.styles import Style

from .config import UI_CLEAR
from .target import PROPERTY_NAMES

if TYPE_CHECKING:
    from .kernel import Kernel  # pragma: no cover


# ----------------------------
# Config helpers (values come from kernel.config.get_path)
# ----------------------------


def _cfg_get_path(kernel: Kernel | None, path: str, default):
    if kernel is None:
        return default
    cfg = getattr(kernel, "config", None)
    if cfg is None or not hasattr(cfg, "get_path"):
        return default
    return cfg.get_path(path, default)


def _cfg_dict(kernel: Kernel | None, path: str, default: dict) -> dict:
    val = _cfg_get_path(kernel, path, default)
    return val if isinstance(val, dict) else default


# ----------------------------
# Theme / Style
# ----------------------------


def _default_style_dict() -> dict[str, str]:
    return {
        "completion-menu": "bg:#111111 #d0d0d0",
        "completion-menu.completion": "bg:#111111 #d0d0d0",
        "completion-menu.completion.current": "bg:#303030 #ffffff bold",
        "completion-menu.meta.completion": "bg:#111111 #808080",
        "completion-menu.meta.completion.current": "bg:#303030 #a0a0a0",
        "scrollbar.background": "bg:#202020",
        "scrollbar.button": "bg:#505050",
        "bottom-toolbar": "bg:#0b0b0b #d0d0d0",
        "bzl.toolbar.label": "bg:#0b0b0b #a0a0a0",
        "bzl.toolbar.value": "bg:#0b0b0b #d0d0d0",
        "bzl.choice.index": "#808080",
    }


def _build_style(kernel: Kernel | None) -> Style:
    base = _default_style_dict()
    overrides = _cfg_dict(kernel, "ui.theme.style", {})
    # only keep string->string
    for k, v in list(overrides.items()):
        if isinstance(k, str) and isinstance(v, str):
            base[k] = v
    return Style.from_dict(base)


# ----------------------------
# Completion
# ----------------------------

# Commands whose first argument is an action, and whose second is a label
_ACTION_COMMANDS = {
    "targets", "available", "add", "pick", "remove", "copy", "select",
    "prop", "history", "command", "exec",
}
_LABEL_COMMANDS = {"remove", "copy", "select", "prop", "command", "exec"}


class BzlCompleter(Completer):
    def __init__(self, kernel: Kernel | None) -> None:
        self.kernel = kernel

    def _actions(self) -> list[str]:
        k = self.kernel
        if k is None:
            return []
        actions = k.registry.get_actions()
        for action in k.build_tool.fetch_target_actions():
            if action not in actions:
                actions.append(action)
        return actions

    def _candidates(self, words: list[str]) -> list[tuple[str, str]]:
        """(text, meta) pairs for the word being typed after words."""
        k = self.kernel
        if k is None:
            return []
        if not words:
            return [(name, "") for name in k.command_names()]

        cmd = words[0]
        if len(words) == 1 and cmd in _ACTION_COMMANDS:
            return [(a, "action") for a in self._actions()]
        if len(words) == 1 and cmd == "button":
            return [(t, "button") for t, _b in k.buttons()]
        if len(words) == 2 and cmd in _LABEL_COMMANDS:
            return [(t.label, t.path) for t in k.registry.get_targets(words[1])]
        if len(words) == 2 and cmd == "add":
            return [(t.path, t.rule_type)
                    for t in k.registry.get_available_targets(words[1])]
        if len(words) == 2 and cmd == "history":
            return [(p, "property") for p in PROPERTY_NAMES]
        if len(words) == 3 and cmd == "prop":
            return [(p, "property") for p in PROPERTY_NAMES]
        if len(words) == 4 and cmd == "prop":
            return [(op, "") for op in ("add", "remove", "clear")]
        if len(words) == 5 and cmd == "prop" and words[4] == "add":
            return [(v, "history") for v in k.history.get(
                f"{words[1]}:{words[3]}"
            )]
        return []

    def get_completions(
        self, document, complete_event
    ) -> Iterable[Completion]:
        before = document.text_before_cursor or ""
        words = before.split()
        if before and not before[-1].isspace() and words:
            token = words.pop()
        else:
            token = ""

        for text, meta in self._candidates(words):
            if text.startswith(token):
                yield Completion(
                    text, start_position=-len(token), display_meta=meta
                )


# ----------------------------
# Prompt provider for [Pick()] / [MultiPick()] / [Input()]
# ----------------------------


def _parse_indices(answer: str, count: int) -> list[int] | None:
    """'1 3,4' -> [0, 2, 3]; None if anything is not a valid index."""
    indices: list[int] = []
    for part in answer.replace(",", " ").split():
        if not part.isdigit():
            return None
        index = int(part) - 1
        if index < 0 or index >= count:
            return None
        if index not in indices:
            indices.append(index)
    return indices


class PromptToolkitPrompter:
    """Prompter backed by prompt_toolkit prompts.

    Ctrl-C / Ctrl-D answer None (cancelled).
    """

    def __init__(self, style: Style | None = None) -> None:
        self.style = style
        self.session: PromptSession[str] | None = None

    def _show_choices(self, choices: list[str], picked: list[str]) -> None:
        for i, choice in enumerate(choices, start=1):
            mark = "*" if choice in picked else " "
            print_formatted_text(f"{mark}{i:>3}  {choice}", style=self.style)

    async def _ask(self, message: str, default: str = "",
                   completer: Completer | None = None) -> str | None:
        if self.session is None:
            self.session = PromptSession(style=self.style)
        try:
            with patch_stdout():
                return await self.session.prompt_async(
                    message, default=default, completer=completer
                )
        except (KeyboardInterrupt, EOFError):
            return None

    async def pick(self, choices: list[str], title: str = "") -> str | None:
        self._show_choices(choices, [])
        completer = WordCompleter(choices, sentence=True)
        while True:
            answer = await self._ask(f"{title or 'pick'}> ",
                                     completer=completer)
            if answer is None:
                return None
            answer = answer.strip()
            if answer in choices:
                return answer
            indices = _parse_indices(answer, len(choices))
            if indices and len(indices) == 1:
                return choices[indices[0]]
            print_formatted_text("Enter a number or one of the choices.")

    async def pick_many(
        self,
        choices: list[str],
        picked: list[str] | None = None,
        title: str = "",
    ) -> list[str] | None:
        picked = picked or []
        self._show_choices(choices, picked)
        default = " ".join(
            str(choices.index(p) + 1) for p in picked if p in choices
        )
        while True:
            answer = await self._ask(f"{title or 'pick'} (numbers)> ",
                                     default=default)
            if answer is None:
                return None
            indices = _parse_indices(answer, len(choices))
            if indices is not None:
                return [choices[i] for i in indices]
            print_formatted_text("Enter numbers separated by spaces.")

    async def input(self, default: str = "", title: str = "") -> str | None:
        return await self._ask(f"{title or 'input'}> ", default=default)


# ----------------------------
# PromptSession UI
# ----------------------------


class PromptToolkitUI:
    """
    Terminal-friendly UI:
      - Keeps normal terminal scrollback + drag-select copy.
      - PromptSession with command / action / label completion.
      - Bottom toolbar shows the selected build / run / test targets.
    """

    def __init__(self, kernel: Kernel | None = None) -> None:
        self.kernel = kernel
        self.session: PromptSession[str] | None = None
        self.style = _build_style(kernel)

        # Track whether we ended on a newline (to prevent prompt mangling)
        self._needs_newline_before_prompt = False

    def _bottom_toolbar(self):
        k = self.kernel
        if k is None:
            return ""
        out: list[tuple[str, str]] = []
        for action in ("build", "run", "test"):
            target = k.registry.get_selected_target(action)
            if target is None:
                continue
            out.append(("class:bzl.toolbar.label", f"  {action}: "))
            out.append(("class:bzl.toolbar.value", target.label))
        return out

    def _ensure_session(self) -> None:
        if self.session is not None:
            return
        self.session = PromptSession(
            key_bindings=self.build_key_bindings(),
            completer=BzlCompleter(self.kernel),
            complete_while_typing=True,
            style=self.style,
            bottom_toolbar=self._bottom_toolbar,
        )

    # ---------- public API ----------

    async def read(self, prompt: str) -> str:
        self._ensure_session()
        assert self.session is not None

        if self._needs_newline_before_prompt:
            print_formatted_text(ANSI("\n"), style=self.style, end="")
            self._needs_newline_before_prompt = False

        with patch_stdout():
            # prompt contains ANSI from kernel.prompt(), so preserve it
            return await self.session.prompt_async(ANSI(prompt + " "))

    def write(self, text: str) -> None:
        """Write EXACTLY what we receive (no extra newline)."""
        if not text:
            return
        if text == UI_CLEAR:
            self.clear()
            return
        print_formatted_text(ANSI(text), style=self.style, end="")
        self._needs_newline_before_prompt = not text.endswith("\n")

    def clear(self) -> None:
        pt_clear()
        self._needs_newline_before_prompt = False

    # ---------- keybindings ----------

    def build_key_bindings(self) -> KeyBindings:
        kb = KeyBindings()

        @kb.add("c-l")
        def _(event):
            event.app.renderer.clear()
            event.current_buffer.reset()
            event.app.invalidate()

        return kb
