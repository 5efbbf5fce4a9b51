# bzl — Terminal Target Deck for Bazel-like Build Tools
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Command template expansion.

A template is plain text with four placeholder forms:

    ${name}          keyword substitution            (pass 1)
    [Pick(arg)]      choose one line of <arg> output (pass 2)
    [MultiPick(arg)] choose several lines            (pass 2)
    [Input(arg)]     free text, default from arg     (pass 2)
    <name>           output of a named shell command (pass 3)

Passes run strictly in that order. Each pass tokenizes the text once,
left to right, and builds its output from segments; text substituted by
any pass is frozen, so no later pass (and not the same pass) ever scans a
keyword value, a prompt answer or a command output for placeholders.
A frozen value may still sit inside a later placeholder's delimiters, as
in [Input(${runTarget})] or [Pick(<${lister}>)]; it is then read as part
of the name or argument, opaquely. Names and arguments never contain
whitespace.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Union

from .errors import ResolutionError
from .executor import CancellationToken
from .interfaces import Prompter, ShellRunner

logger = logging.getLogger(__name__)

PICK = "Pick"
MULTI_PICK = "MultiPick"
INPUT = "Input"
EXTERNAL_VERBS = (PICK, MULTI_PICK, INPUT)

MAX_COMMAND_DEPTH = 10

KeywordValue = Union[str, Callable[[], str]]


# ----------------------------------------------------------------
# Tokenizer
# ----------------------------------------------------------------


@dataclass(frozen=True)
class Segment:
    text: str
    frozen: bool = False


@dataclass(frozen=True)
class Placeholder:
    """One placeholder occurrence: raw text plus its parsed parts."""

    kind: str  # "keyword" | "external" | "command"
    raw: str
    name: str
    arg: str = ""
    # arg as segments, so values substituted inside it stay frozen
    arg_segments: tuple[Segment, ...] = field(default=(), compare=False)


Token = Union[str, Placeholder]
Matcher = Callable[[str, int], Union[tuple[Placeholder, int], None]]

# Stand-in for frozen characters while matching: never a delimiter,
# never whitespace.
OPAQUE = "\x00"


def _is_word(text: str) -> bool:
    return not any(ch.isspace() for ch in text)


def match_keyword(text: str, i: int) -> tuple[Placeholder, int] | None:
    """${name} at i -> (placeholder, end index) or None."""
    if not text.startswith("${", i):
        return None
    end = text.find("}", i + 2)
    if end == -1:
        return None
    name = text[i + 2:end]
    if not _is_word(name) or "{" in name:
        return None
    return Placeholder("keyword", text[i:end + 1], name), end + 1


def match_external(text: str, i: int) -> tuple[Placeholder, int] | None:
    """[Verb(arg)] at i -> (placeholder, end index) or None."""
    if text[i] != "[":
        return None
    open_paren = text.find("(", i + 1)
    if open_paren == -1:
        return None
    verb = text[i + 1:open_paren]
    if not verb or not _is_word(verb) or "[" in verb or "]" in verb:
        return None
    close = text.find(")]", open_paren + 1)
    if close == -1:
        return None
    arg = text[open_paren + 1:close]
    if not _is_word(arg):
        return None
    return Placeholder("external", text[i:close + 2], verb, arg), close + 2


def match_command(text: str, i: int) -> tuple[Placeholder, int] | None:
    """<name> at i -> (placeholder, end index) or None."""
    if text[i] != "<":
        return None
    end = text.find(">", i + 1)
    if end == -1:
        return None
    name = text[i + 1:end]
    if not name or not _is_word(name) or "<" in name:
        return None
    return Placeholder("command", text[i:end + 1], name), end + 1


def tokenize(text: str, matcher: Matcher) -> list[Token]:
    """Split text into literal strings and placeholders in one scan."""
    tokens: list[Token] = []
    literal_start = 0
    i = 0
    while i < len(text):
        found = matcher(text, i)
        if found is None:
            i += 1
            continue
        placeholder, end = found
        if literal_start < i:
            tokens.append(text[literal_start:i])
        tokens.append(placeholder)
        literal_start = i = end
    if literal_start < len(text):
        tokens.append(text[literal_start:])
    return tokens


def _masked(segments: Iterable[Segment]) -> str:
    """Joined text with frozen characters (except whitespace) made opaque."""
    return "".join(
        "".join(ch if ch.isspace() else OPAQUE for ch in seg.text)
        if seg.frozen else seg.text
        for seg in segments
    )


def _slice(segments: Iterable[Segment], start: int, end: int) -> list[Segment]:
    """Segments covering text[start:end], frozen flags preserved."""
    out: list[Segment] = []
    offset = 0
    for seg in segments:
        lo = max(start, offset)
        hi = min(end, offset + len(seg.text))
        if lo < hi:
            out.append(Segment(seg.text[lo - offset:hi - offset], seg.frozen))
        offset += len(seg.text)
    return out


def _name_and_arg_spans(
    placeholder: Placeholder, start: int, end: int
) -> tuple[tuple[int, int], tuple[int, int]]:
    if placeholder.kind == "keyword":
        return (start + 2, end - 1), (end - 1, end - 1)
    if placeholder.kind == "command":
        return (start + 1, end - 1), (end - 1, end - 1)
    verb_end = start + 1 + len(placeholder.name)
    return (start + 1, verb_end), (verb_end + 1, end - 2)


def tokenize_segments(
    segments: list[Segment], matcher: Matcher
) -> list[Segment | Placeholder]:
    """Like tokenize, but placeholders may span frozen segments.

    Delimiters must be unfrozen text. A frozen value inside a name or an
    argument is read as-is and never scanned for placeholders itself.
    """
    text = _join(segments)
    masked = _masked(segments)
    tokens: list[Segment | Placeholder] = []
    literal_start = 0
    i = 0
    while i < len(masked):
        found = matcher(masked, i)
        if found is None:
            i += 1
            continue
        shape, end = found
        if literal_start < i:
            tokens.extend(_slice(segments, literal_start, i))
        (name_lo, name_hi), (arg_lo, arg_hi) = _name_and_arg_spans(shape, i, end)
        tokens.append(Placeholder(
            shape.kind,
            text[i:end],
            text[name_lo:name_hi],
            text[arg_lo:arg_hi],
            tuple(_slice(segments, arg_lo, arg_hi)),
        ))
        literal_start = i = end
    if literal_start < len(text):
        tokens.extend(_slice(segments, literal_start, len(text)))
    return tokens


def _coalesce(segments: Iterable[Segment]) -> list[Segment]:
    """Merge adjacent unfrozen segments so later passes see whole text."""
    result: list[Segment] = []
    for seg in segments:
        if not seg.text:
            continue
        if result and not seg.frozen and not result[-1].frozen:
            result[-1] = Segment(result[-1].text + seg.text)
        else:
            result.append(seg)
    return result


def _join(segments: Iterable[Segment]) -> str:
    return "".join(seg.text for seg in segments)


def _arg_segments(placeholder: Placeholder) -> tuple[Segment, ...]:
    return placeholder.arg_segments or (Segment(placeholder.arg),)


# ----------------------------------------------------------------
# Engine
# ----------------------------------------------------------------


@dataclass(frozen=True)
class NamedCommand:
    name: str
    command: str
    memoized: bool = False

    @classmethod
    def from_config(cls, data: Mapping[str, Any]) -> NamedCommand:
        return cls(
            name=str(data["name"]),
            command=str(data.get("command", "")),
            memoized=bool(data.get("memoized", False)),
        )


class ExpansionEngine:
    """Resolves templates against keywords, prompts and named commands.

    Shell and prompt effects are injected (ShellRunner / Prompter), so the
    pass logic runs without real processes or a terminal.
    """

    def __init__(
        self,
        keywords: Mapping[str, KeywordValue],
        commands: Iterable[NamedCommand] = (),
        shell: ShellRunner | None = None,
        prompter: Prompter | None = None,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        pick_state: dict[str, list[str]] | None = None,
        cancel_token: CancellationToken | None = None,
    ):
        self.keywords = keywords
        self.commands = {c.name: c for c in commands}
        self.shell = shell
        self.prompter = prompter
        self.cwd = cwd
        self.env = env
        self.pick_state = pick_state if pick_state is not None else {}
        self.cancel_token = cancel_token
        self._cache: dict[str, str] = {}
        self._command_stack: list[str] = []

    async def expand(self, template: str) -> str:
        """Run all three passes over template."""
        self._cache = {}
        self._command_stack = []
        return await self._expand(template)

    def expand_keywords(self, template: str) -> str:
        """Run only the keyword pass (no side effects)."""
        return _join(self._keyword_pass([Segment(template)]))

    async def _expand(self, template: str) -> str:
        segments = self._keyword_pass([Segment(template)])
        segments = await self._async_pass(
            segments, match_external, self._resolve_external
        )
        segments = await self._async_pass(
            segments, match_command, self._resolve_command
        )
        return _join(segments)

    async def _command_pass(self, segments: Iterable[Segment]) -> str:
        segments = await self._async_pass(
            list(segments), match_command, self._resolve_command
        )
        return _join(segments)

    # ---- pass machinery ----

    def _keyword_pass(self, segments: list[Segment]) -> list[Segment]:
        out: list[Segment] = []
        for seg in segments:
            if seg.frozen:
                out.append(seg)
                continue
            for token in tokenize(seg.text, match_keyword):
                if isinstance(token, str):
                    out.append(Segment(token))
                    continue
                value = self._resolve_keyword(token.name)
                if value is None:
                    # Unknown keyword: left for the shell to interpret.
                    out.append(Segment(token.raw))
                else:
                    out.append(Segment(value, frozen=True))
        return _coalesce(out)

    async def _async_pass(
        self,
        segments: list[Segment],
        matcher: Matcher,
        resolve: Callable[[Placeholder], Awaitable[str]],
    ) -> list[Segment]:
        out: list[Segment] = []
        for token in tokenize_segments(segments, matcher):
            if isinstance(token, Segment):
                out.append(token)
            else:
                out.append(Segment(await resolve(token), frozen=True))
        return _coalesce(out)

    # ---- resolvers ----

    def _resolve_keyword(self, name: str) -> str | None:
        value = self.keywords.get(name)
        if value is None:
            return None
        if callable(value):
            value = value()
        return str(value).strip()

    async def _resolve_external(self, placeholder: Placeholder) -> str:
        verb = placeholder.name
        if verb not in EXTERNAL_VERBS:
            logger.warning("Unknown command [%s(...)] resolves to ''", verb)
            return ""
        if self.prompter is None:
            raise ResolutionError(f"No prompt available for [{verb}(...)]")

        if verb == INPUT:
            default = await self._command_pass(_arg_segments(placeholder))
            default = default.split("\n")[0]
            answer = await self.prompter.input(default=default, title=verb)
            return answer if answer is not None else ""

        output = await self._command_pass(_arg_segments(placeholder))
        choices = [line.strip() for line in output.split("\n")
                   if line.strip()]
        if not choices:
            logger.warning("[%s(%s)] produced no choices", verb,
                           placeholder.arg)
            return ""

        if verb == PICK:
            answer = await self.prompter.pick(choices, title=placeholder.arg)
            return answer if answer is not None else ""

        previous = [c for c in self.pick_state.get(placeholder.raw, [])
                    if c in choices]
        answers = await self.prompter.pick_many(
            choices, picked=previous, title=placeholder.arg
        )
        if answers is None:
            return ""
        self.pick_state[placeholder.raw] = list(answers)
        return " ".join(answers)

    async def _resolve_command(self, placeholder: Placeholder) -> str:
        name = placeholder.name
        command = self.commands.get(name)
        if command is None:
            raise ResolutionError(f"Unknown command <{name}>")
        if command.memoized and name in self._cache:
            return self._cache[name]
        if name in self._command_stack:
            chain = " -> ".join([*self._command_stack, name])
            raise ResolutionError(f"Recursive command: {chain}")
        if len(self._command_stack) >= MAX_COMMAND_DEPTH:
            raise ResolutionError(
                f"Command nesting deeper than {MAX_COMMAND_DEPTH} at <{name}>"
            )
        if self.shell is None:
            raise ResolutionError(f"No shell available for <{name}>")

        self._command_stack.append(name)
        try:
            resolved = await self._expand(command.command)
        finally:
            self._command_stack.pop()

        result = await self.shell.run(
            resolved, cwd=self.cwd, env=self.env,
            cancel_token=self.cancel_token,
        )
        result.check()
        self._cache[name] = result.stdout
        return result.stdout
