"""Full-screen terminal front end built on prompt_toolkit.

Layout, top to bottom: a one-line help/status bar, the bordered message
list (scrolled to the newest line) and a bordered single-line input box.
"""

import asyncio
import logging

from prompt_toolkit.application import Application, get_app
from prompt_toolkit.data_structures import Point
from prompt_toolkit.filters import Condition
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.keys import Keys
from prompt_toolkit.layout import HSplit, Layout, Window
from prompt_toolkit.layout.controls import FormattedTextControl
from prompt_toolkit.widgets import Frame

from .controller import Key, KeyEvent, Mode, SessionController, Speaker
from .wrap import wrap_text

logger = logging.getLogger(__name__)

SPEAKER_STYLES = {
    Speaker.ME: "fg:ansired",
    Speaker.ASSISTANT: "fg:ansigreen",
}

_NAMED_KEYS = {
    Keys.Enter: Key.ENTER,
    Keys.Backspace: Key.BACKSPACE,
    Keys.Left: Key.LEFT,
    Keys.Right: Key.RIGHT,
    Keys.Escape: Key.ESCAPE,
}


def help_fragments(mode: Mode) -> list[tuple[str, str]]:
    """Formatted text for the help/status bar."""
    if mode is Mode.BROWSING:
        return [
            ("blink", "Press "),
            ("blink bold", "q"),
            ("blink", " to exit, "),
            ("blink bold", "e"),
            ("blink bold", " to start editing."),
        ]
    if mode is Mode.EDITING:
        return [
            ("", "Press "),
            ("bold", "Esc"),
            ("", " to stop editing, "),
            ("bold", "Enter"),
            ("", " to record the message"),
        ]
    return [("bold fg:ansired", "I'm thinking"), ("bold fg:ansired", " WAIT")]


def message_fragments(
    transcript: list[tuple[Speaker, str]], width: int
) -> list[tuple[str, str]]:
    """Label and wrap every transcript entry; continuation lines get a blank label."""
    fragments: list[tuple[str, str]] = []
    for speaker, text in transcript:
        style = SPEAKER_STYLES[speaker]
        for i, line in enumerate(wrap_text(text, width)):
            label = str(speaker) if i == 0 else "  "
            if fragments:
                fragments.append(("", "\n"))
            fragments.append((style, f"{label} {line}"))
    return fragments


def input_style(mode: Mode) -> str:
    return "fg:ansiyellow" if mode is Mode.EDITING else ""


def translate_key(key: Keys | str, data: str) -> KeyEvent | None:
    """Map a prompt_toolkit key press onto the controller's key events."""
    if key in _NAMED_KEYS:
        return KeyEvent(_NAMED_KEYS[key])
    # Printable characters arrive as the character itself, not a Keys member.
    if not isinstance(key, Keys) and len(data) == 1 and data.isprintable():
        return KeyEvent.of(data)
    return None


class ChatApp:
    """Binds a SessionController to a prompt_toolkit Application.

    The model call runs in a worker thread awaited between redraws, so the
    "thinking" bar is painted while the request is in flight. The controller
    ignores keys in AWAITING, which keeps at most one request outstanding.
    """

    def __init__(self, controller: SessionController):
        self.controller = controller
        self._generating = False
        self.app = Application(
            layout=self._create_layout(),
            key_bindings=self._create_key_bindings(),
            full_screen=True,
        )

    def _create_layout(self) -> Layout:  # pragma: no cover - UI layout wiring
        controller = self.controller

        help_window = Window(
            FormattedTextControl(lambda: help_fragments(controller.mode)),
            height=1,
        )

        def _messages():
            width = get_app().output.get_size().columns
            return message_fragments(controller.transcript, width)

        def _last_line():
            # Keeping the cursor on the newest line scrolls the list to it.
            newlines = sum(1 for _, text in _messages() if text == "\n")
            return Point(x=0, y=newlines)

        messages_window = Window(
            FormattedTextControl(_messages, get_cursor_position=_last_line),
            wrap_lines=False,
            always_hide_cursor=True,
        )

        self.input_window = Window(
            FormattedTextControl(
                lambda: [(input_style(controller.mode), controller.editor.text)],
                get_cursor_position=lambda: Point(x=controller.editor.cursor, y=0),
                focusable=True,
                show_cursor=True,
            ),
            height=1,
            always_hide_cursor=Condition(lambda: controller.mode is not Mode.EDITING),
        )

        root = HSplit(
            [
                help_window,
                Frame(messages_window, title="Messages"),
                Frame(self.input_window, title="Input"),
            ]
        )
        return Layout(root, focused_element=self.input_window)

    def _create_key_bindings(self) -> KeyBindings:  # pragma: no cover - interactive key handling
        kb = KeyBindings()

        for key in _NAMED_KEYS:
            # Escape must not wait for a possible escape sequence.
            kb.add(key, eager=(key == Keys.Escape))(self._on_key)
        kb.add(Keys.Any)(self._on_key)
        return kb

    def _on_key(self, event) -> None:  # pragma: no cover - interactive key handling
        press = event.key_sequence[0]
        translated = translate_key(press.key, press.data)
        if translated is not None:
            self.dispatch(translated)

    def dispatch(self, event: KeyEvent) -> None:
        if not self.controller.handle_key(event):
            self.app.exit()
            return
        if self.controller.mode is Mode.AWAITING and not self._generating:
            self._generating = True
            self.app.create_background_task(self._generate())

    async def _generate(self) -> None:
        # An Enter handled between tick() returning and this coroutine resuming
        # leaves the controller AWAITING again without scheduling a new task.
        try:
            while self.controller.mode is Mode.AWAITING:
                self.app.invalidate()
                await asyncio.to_thread(self.controller.tick)
                self.app.invalidate()
        except Exception as e:
            logger.debug("turn failed: %s", e)
            self.app.exit(exception=e)
        finally:
            self._generating = False

    def run(self) -> None:
        """Run until the user quits. Engine failures propagate out of here."""
        self.app.run()

