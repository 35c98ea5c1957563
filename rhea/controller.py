"""Interaction state machine: browse, edit, wait for the model, repeat."""

import logging
import time
from dataclasses import dataclass
from enum import Enum

from .conversation import ConversationContext
from .editor import Editor
from .engine import CLOSED, Done, Failed, InferenceEngine, Request, SamplingParams
from .errors import EngineReplyError, MalformedReplyError

logger = logging.getLogger(__name__)


class Mode(Enum):
    BROWSING = "browsing"
    EDITING = "editing"
    AWAITING = "awaiting"


class Key(Enum):
    CHAR = "char"
    BACKSPACE = "backspace"
    LEFT = "left"
    RIGHT = "right"
    ENTER = "enter"
    ESCAPE = "escape"


@dataclass(frozen=True)
class KeyEvent:
    key: Key
    char: str | None = None

    @classmethod
    def of(cls, char: str) -> "KeyEvent":
        return cls(Key.CHAR, char)


class Speaker(Enum):
    ME = "Me"
    ASSISTANT = "QS"

    def __str__(self) -> str:
        return self.value


class SessionController:
    """Drives one conversation through editor, context and engine.

    ``transcript`` is what the user sees: literal text, never pruned. The
    conversation context is what the model sees: budgeted, with assistant
    replies sanitized.
    """

    def __init__(
        self,
        engine: InferenceEngine,
        conversation: ConversationContext,
        *,
        sampling: SamplingParams | None = None,
        editor: Editor | None = None,
    ):
        self.engine = engine
        self.conversation = conversation
        self.sampling = sampling or SamplingParams()
        self.editor = editor or Editor()
        self.mode = Mode.BROWSING
        self.transcript: list[tuple[Speaker, str]] = []
        self.pruned = 0
        self._pending: str | None = None

    def handle_key(self, event: KeyEvent) -> bool:
        """Apply one key event. Returns False when the session should end."""
        if self.mode is Mode.BROWSING:
            if event.key is Key.CHAR and event.char == "e":
                self.mode = Mode.EDITING
            elif event.key is Key.CHAR and event.char == "q":
                return False
        elif self.mode is Mode.EDITING:
            if event.key is Key.CHAR and event.char:
                self.editor.insert(event.char)
            elif event.key is Key.BACKSPACE:
                self.editor.delete_before_cursor()
            elif event.key is Key.LEFT:
                self.editor.move_left()
            elif event.key is Key.RIGHT:
                self.editor.move_right()
            elif event.key is Key.ESCAPE:
                self.mode = Mode.BROWSING
            elif event.key is Key.ENTER:
                self._pending = self.editor.snapshot()
                self.mode = Mode.AWAITING
        # Keys are ignored while a request is in flight.
        return True

    def tick(self) -> bool:
        """Run the pending request cycle if one is waiting. Returns True if it ran."""
        if self.mode is not Mode.AWAITING:
            return False
        self._complete_turn(self._pending or "")
        self._pending = None
        self.editor.clear()
        self.mode = Mode.EDITING
        return True

    def _complete_turn(self, text: str) -> None:
        self.conversation.append_user(text)
        self.transcript.append((Speaker.ME, text))

        request = Request(
            messages=self.conversation.snapshot_for_request(),
            sampling=self.sampling,
        )
        t0 = time.monotonic()
        self.engine.send(request)
        reply = request.reply.get()

        if reply is CLOSED:
            raise EngineReplyError("reply channel closed before a response arrived")
        if isinstance(reply, Failed):
            raise EngineReplyError(reply.error)
        if not isinstance(reply, Done):
            raise EngineReplyError(f"unexpected reply from engine: {reply!r}")

        content = _first_choice_content(reply.response)
        logger.debug(
            "turn completed in %.2fs (%d chars)", time.monotonic() - t0, len(content)
        )
        self.transcript.append(
            (Speaker.ASSISTANT, self.conversation.append_assistant(content))
        )
        self.pruned += self.conversation.enforce_budget()

    @property
    def turns(self) -> int:
        return sum(1 for speaker, _ in self.transcript if speaker is Speaker.ASSISTANT)

    def run(self, terminal) -> None:
        """Blocking loop: draw, finish any pending turn, read and dispatch a key.

        ``terminal`` provides ``draw(controller)`` and ``read_key()``.
        """
        while True:
            terminal.draw(self)
            if self.tick():
                terminal.draw(self)
            if not self.handle_key(terminal.read_key()):
                return


def _first_choice_content(response) -> str:
    try:
        content = response.choices[0].message.content
    except (AttributeError, IndexError, TypeError) as e:
        raise MalformedReplyError(f"reply has no first choice message: {e}") from e
    if not isinstance(content, str):
        raise MalformedReplyError("reply message has no content")
    return content
