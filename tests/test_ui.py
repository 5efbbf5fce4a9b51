# tests/test_ui.py
from __future__ import annotations

import importlib

import pytest

prompt_toolkit = pytest.importorskip("prompt_toolkit")

from prompt_toolkit.document import Document  # noqa: E402

from bzl_cli.config import UI_CLEAR  # noqa: E402
from bzl_cli.kernel import Kernel  # noqa: E402
from bzl_cli.target import Target  # noqa: E402

from conftest import make_config  # noqa: E402

ui = importlib.import_module("bzl_cli.ui")


@pytest.fixture
def kernel(store, shell, runner, ctx, prompter) -> Kernel:
    k = Kernel(
        config=make_config(ui={"theme": {"style": {"bottom-toolbar": "#ff0000"}}}),
        store=store, shell=shell, runner=runner, ctx=ctx, prompter=prompter,
    )
    k.start()
    return k


@pytest.fixture
def quiet(monkeypatch: pytest.MonkeyPatch) -> list:
    printed: list = []
    monkeypatch.setattr(ui, "print_formatted_text",
                        lambda *a, **kw: printed.append(a), raising=True)
    return printed


def _completions(kernel: Kernel, text: str) -> list[str]:
    completer = ui.BzlCompleter(kernel)
    doc = Document(text, cursor_position=len(text))
    return [c.text for c in completer.get_completions(doc, None)]


# ----------------------------------------------------------------
# PromptToolkitUI surface
# ----------------------------------------------------------------


def test_prompt_toolkit_ui_contract_surface() -> None:
    inst = ui.PromptToolkitUI()

    assert callable(getattr(inst, "read", None))
    assert callable(getattr(inst, "write", None))
    assert callable(getattr(inst, "clear", None))
    assert callable(getattr(inst, "build_key_bindings", None))


def test_ctrl_l_handler_executes_clear_reset_invalidate() -> None:
    kb = ui.PromptToolkitUI().build_key_bindings()

    handler = None
    for binding in kb.bindings:
        keys = [getattr(key, "value", key) for key in binding.keys]
        if "c-l" in keys:
            handler = binding.handler
            break
    assert handler is not None, "Ctrl+L handler not found"

    calls = {"clear": 0, "reset": 0, "invalidate": 0}

    class Renderer:
        def clear(self):
            calls["clear"] += 1

    class App:
        renderer = Renderer()

        def invalidate(self):
            calls["invalidate"] += 1

    class Buffer:
        def reset(self):
            calls["reset"] += 1

    class Event:
        app = App()
        current_buffer = Buffer()

    handler(Event())

    assert calls == {"clear": 1, "reset": 1, "invalidate": 1}


def test_ui_clear_is_ansi_free(monkeypatch: pytest.MonkeyPatch) -> None:
    called = {"clear": 0}

    def fake_clear():
        called["clear"] += 1

    monkeypatch.setattr(ui, "pt_clear", fake_clear, raising=True)

    inst = ui.PromptToolkitUI()
    assert inst.clear() is None
    inst.write(UI_CLEAR)
    assert called["clear"] == 2


def test_ui_write_noops_on_empty(quiet) -> None:
    inst = ui.PromptToolkitUI()
    inst.write("")
    inst.write(None)  # type: ignore[arg-type]
    assert quiet == []


def test_ui_write_wraps_ansi(quiet) -> None:
    inst = ui.PromptToolkitUI()
    inst.write("\033[31mRED\033[0m")

    assert quiet[0][0].__class__.__name__ == "ANSI"
    # No trailing newline: the next prompt starts on a fresh line
    assert inst._needs_newline_before_prompt is True


@pytest.mark.asyncio
async def test_ui_read_creates_session_once(
    monkeypatch: pytest.MonkeyPatch, kernel
) -> None:
    created = []

    class FakeSession:
        def __init__(self, **kwargs):
            created.append(kwargs)

        async def prompt_async(self, arg):
            assert arg.__class__.__name__ == "ANSI"
            return "build"

    monkeypatch.setattr(ui, "PromptSession", FakeSession, raising=True)

    inst = ui.PromptToolkitUI(kernel)
    assert await inst.read(kernel.prompt()) == "build"
    assert await inst.read(kernel.prompt()) == "build"

    assert len(created) == 1
    assert isinstance(created[0]["completer"], ui.BzlCompleter)
    assert created[0]["key_bindings"] is not None


def test_style_applies_config_overrides(kernel) -> None:
    style = ui.PromptToolkitUI(kernel).style
    rules = dict(style.style_rules)
    assert rules["bottom-toolbar"] == "#ff0000"
    assert "bzl.toolbar.label" in rules


def test_bottom_toolbar_shows_selected_targets(kernel) -> None:
    kernel.registry.add_target(Target.create("run", "//app:server"))
    toolbar = ui.PromptToolkitUI(kernel)._bottom_toolbar()
    assert ("class:bzl.toolbar.value", "server") in toolbar
    assert all("build" not in text for _cls, text in toolbar)


def test_bottom_toolbar_without_kernel() -> None:
    assert ui.PromptToolkitUI()._bottom_toolbar() == ""


# ----------------------------------------------------------------
# Completion
# ----------------------------------------------------------------


def test_completer_commands(kernel) -> None:
    assert "pick" in _completions(kernel, "pi")
    assert set(_completions(kernel, "")) >= {"build", "refresh", "exit"}


def test_completer_actions_and_labels(kernel) -> None:
    kernel.registry.add_target(Target.create("test", "//app:server_test"))

    assert "test" in _completions(kernel, "select t")
    assert _completions(kernel, "select test ") == ["server_test"]


def test_completer_available_paths_for_add(kernel) -> None:
    kernel.registry.update_available_targets(
        {"run": [Target.create("run", "//app:server")]}
    )
    assert _completions(kernel, "add run //app") == ["//app:server"]


def test_completer_prop_arguments(kernel) -> None:
    target = Target.create("build", "//app:server")
    kernel.registry.add_target(target)
    target.config_args.add("opt")

    assert "config_args" in _completions(kernel, "prop build server ")
    assert _completions(kernel, "prop build server config_args ") == [
        "add", "remove", "clear",
    ]
    assert _completions(kernel, "prop build server config_args add ") == [
        "opt",
    ]


def test_completer_handles_no_kernel() -> None:
    assert _completions(None, "b") == []  # type: ignore[arg-type]


# ----------------------------------------------------------------
# Prompter
# ----------------------------------------------------------------


@pytest.mark.parametrize("answer,count,expected", [
    ("1", 3, [0]),
    ("1 3,2", 3, [0, 2, 1]),
    ("2 2", 3, [1]),
    ("", 3, []),
    ("0", 3, None),
    ("4", 3, None),
    ("x", 3, None),
])
def test_parse_indices(answer, count, expected) -> None:
    assert ui._parse_indices(answer, count) == expected


def _scripted(prompter, answers: list) -> list:
    seen: list = []

    async def _ask(message, default="", completer=None):
        seen.append(default)
        return answers.pop(0)

    prompter._ask = _ask
    return seen


@pytest.mark.asyncio
async def test_prompter_pick_by_number_or_text(quiet) -> None:
    prompter = ui.PromptToolkitPrompter()
    _scripted(prompter, ["9", "2", "b"])
    assert await prompter.pick(["a", "b"]) == "b"
    assert await prompter.pick(["a", "b"]) == "b"


@pytest.mark.asyncio
async def test_prompter_pick_cancelled(quiet) -> None:
    prompter = ui.PromptToolkitPrompter()
    _scripted(prompter, [None])
    assert await prompter.pick(["a"]) is None


@pytest.mark.asyncio
async def test_prompter_pick_many_defaults_to_previous(quiet) -> None:
    prompter = ui.PromptToolkitPrompter()
    seen = _scripted(prompter, ["1 3"])
    assert await prompter.pick_many(["a", "b", "c"], picked=["c", "gone"]) == [
        "a", "c",
    ]
    assert seen == ["3"]


@pytest.mark.asyncio
async def test_prompter_input_passes_default(quiet) -> None:
    prompter = ui.PromptToolkitPrompter()
    seen = _scripted(prompter, ["typed"])
    assert await prompter.input(default="first") == "typed"
    assert seen == ["first"]
