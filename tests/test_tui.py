"""Tests for the prompt_toolkit front end: frame contents, keys, generation task."""

import asyncio
from contextlib import ExitStack
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from prompt_toolkit.application import create_app_session
from prompt_toolkit.input import create_pipe_input
from prompt_toolkit.keys import Keys
from prompt_toolkit.output import DummyOutput

from rhea.controller import Key, KeyEvent, Mode, SessionController, Speaker
from rhea.conversation import ConversationContext
from rhea.engine import Done, Failed
from rhea.errors import EngineReplyError
from rhea.tui import (
    ChatApp,
    help_fragments,
    input_style,
    message_fragments,
    translate_key,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _text(fragments):
    return "".join(text for _, text in fragments)


def _response(content):
    message = SimpleNamespace(content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeEngine:
    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests = []

    def send(self, request):
        self.requests.append(request)
        request.reply.put(self.replies.pop(0))


@pytest.fixture
def make_chat():
    with ExitStack() as stack:
        inp = stack.enter_context(create_pipe_input())
        stack.enter_context(create_app_session(input=inp, output=DummyOutput()))

        def _make(*replies):
            engine = FakeEngine(*replies)
            controller = SessionController(engine, ConversationContext("sys"))
            chat = ChatApp(controller)
            chat.app = MagicMock()
            return chat, engine

        yield _make


def _run_scheduled(chat):
    coro = chat.app.create_background_task.call_args[0][0]
    asyncio.run(coro)


# ---------------------------------------------------------------------------
# Frame contents
# ---------------------------------------------------------------------------


class TestHelpBar:
    def test_browsing(self):
        assert _text(help_fragments(Mode.BROWSING)) == (
            "Press q to exit, e to start editing."
        )

    def test_editing(self):
        assert _text(help_fragments(Mode.EDITING)) == (
            "Press Esc to stop editing, Enter to record the message"
        )

    def test_awaiting(self):
        fragments = help_fragments(Mode.AWAITING)
        assert _text(fragments) == "I'm thinking WAIT"
        assert all("ansired" in style for style, _ in fragments)


class TestMessageList:
    def test_labels_and_styles(self):
        transcript = [(Speaker.ME, "Hi"), (Speaker.ASSISTANT, "Hello there!")]
        fragments = message_fragments(transcript, 80)
        assert fragments == [
            ("fg:ansired", "Me Hi"),
            ("", "\n"),
            ("fg:ansigreen", "QS Hello there!"),
        ]

    def test_continuation_lines_get_blank_label(self):
        transcript = [(Speaker.ASSISTANT, "the quick brown fox jumps")]
        lines = _text(message_fragments(transcript, 30)).split("\n")
        assert lines == ["QS the quick brown", "   fox jumps"]

    def test_empty_transcript(self):
        assert message_fragments([], 80) == []

    def test_input_style(self):
        assert input_style(Mode.EDITING) == "fg:ansiyellow"
        assert input_style(Mode.BROWSING) == ""
        assert input_style(Mode.AWAITING) == ""


# ---------------------------------------------------------------------------
# Key translation
# ---------------------------------------------------------------------------


class TestTranslateKey:
    def test_named_keys(self):
        assert translate_key(Keys.Enter, "\r") == KeyEvent(Key.ENTER)
        assert translate_key(Keys.ControlM, "\r") == KeyEvent(Key.ENTER)
        assert translate_key(Keys.Backspace, "\x7f") == KeyEvent(Key.BACKSPACE)
        assert translate_key(Keys.Left, "") == KeyEvent(Key.LEFT)
        assert translate_key(Keys.Right, "") == KeyEvent(Key.RIGHT)
        assert translate_key(Keys.Escape, "\x1b") == KeyEvent(Key.ESCAPE)

    def test_printable_characters(self):
        assert translate_key("a", "a") == KeyEvent.of("a")
        assert translate_key("é", "é") == KeyEvent.of("é")
        assert translate_key(" ", " ") == KeyEvent.of(" ")

    def test_unhandled_keys(self):
        assert translate_key(Keys.ControlA, "\x01") is None
        assert translate_key(Keys.Up, "") is None
        assert translate_key(Keys.Tab, "\t") is None


# ---------------------------------------------------------------------------
# Dispatch and background generation
# ---------------------------------------------------------------------------


class TestDispatch:
    def test_q_exits_app(self, make_chat):
        chat, _ = make_chat()
        chat.dispatch(KeyEvent.of("q"))
        chat.app.exit.assert_called_once_with()

    def test_enter_schedules_one_generation(self, make_chat):
        chat, engine = make_chat(Done(_response("Hello there!")))
        for event in (KeyEvent.of("e"), KeyEvent.of("H"), KeyEvent.of("i")):
            chat.dispatch(event)
        chat.dispatch(KeyEvent(Key.ENTER))
        chat.dispatch(KeyEvent(Key.ENTER))
        chat.dispatch(KeyEvent.of("x"))

        assert chat.app.create_background_task.call_count == 1
        assert chat.controller.mode is Mode.AWAITING

        _run_scheduled(chat)

        assert len(engine.requests) == 1
        assert chat.controller.mode is Mode.EDITING
        assert chat.controller.transcript == [
            (Speaker.ME, "Hi"),
            (Speaker.ASSISTANT, "Hello there!"),
        ]
        assert chat.app.invalidate.call_count == 2
        chat.app.exit.assert_not_called()

    def test_next_turn_can_be_scheduled_after_completion(self, make_chat):
        chat, engine = make_chat(Done(_response("one")), Done(_response("two")))
        chat.dispatch(KeyEvent.of("e"))
        chat.dispatch(KeyEvent(Key.ENTER))
        _run_scheduled(chat)
        chat.dispatch(KeyEvent(Key.ENTER))
        assert chat.app.create_background_task.call_count == 2
        _run_scheduled(chat)
        assert len(engine.requests) == 2

    def test_enter_while_turn_finishes_is_served(self, make_chat):
        chat, engine = make_chat(Done(_response("one")), Done(_response("two")))
        controller = chat.controller
        real_tick = controller.tick
        ticks = []

        async def drive():
            loop = asyncio.get_running_loop()

            def tick():
                ran = real_tick()
                ticks.append(ran)
                if len(ticks) == 1:
                    # Key press read by the event loop before the task resumes.
                    loop.call_soon_threadsafe(chat.dispatch, KeyEvent(Key.ENTER))
                return ran

            controller.tick = tick
            await chat.app.create_background_task.call_args[0][0]

        chat.dispatch(KeyEvent.of("e"))
        chat.dispatch(KeyEvent(Key.ENTER))
        asyncio.run(drive())

        assert ticks == [True, True]
        assert len(engine.requests) == 2
        assert chat.app.create_background_task.call_count == 1
        assert controller.mode is Mode.EDITING
        assert [text for _, text in controller.transcript] == ["", "one", "", "two"]
        assert chat._generating is False

        chat.dispatch(KeyEvent(Key.ESCAPE))
        chat.dispatch(KeyEvent.of("q"))
        chat.app.exit.assert_called_once_with()

    def test_engine_failure_exits_with_exception(self, make_chat):
        chat, _ = make_chat(Failed("backend down"))
        chat.dispatch(KeyEvent.of("e"))
        chat.dispatch(KeyEvent(Key.ENTER))
        _run_scheduled(chat)

        chat.app.exit.assert_called_once()
        error = chat.app.exit.call_args[1]["exception"]
        assert isinstance(error, EngineReplyError)
        assert "backend down" in str(error)
