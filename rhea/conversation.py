"""Bounded conversation buffer sent to the model on every turn."""

import logging
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

# Context ceiling in characters. This approximates the model's window; it is
# not a token count.
DEFAULT_BUDGET = 1000


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    role: Role
    content: str

    def as_dict(self) -> dict:
        return {"role": self.role.value, "content": self.content}


def sanitize(text: str) -> str:
    """Keep only alphanumeric characters."""
    return "".join(c for c in text if c.isalnum())


class ConversationContext:
    """Ordered messages with a running character count and a fixed budget.

    The first message is always the system directive. Older user/assistant
    exchanges are dropped in pairs once the running length exceeds the
    budget. Assistant replies are stored sanitized, so what the model sees on
    the next turn differs from what was shown on screen.
    """

    def __init__(self, system_prompt: str, budget: int = DEFAULT_BUDGET):
        if budget < 0:
            raise ValueError(f"budget must be non-negative, got {budget}")
        self.budget = budget
        self._messages: list[Message] = [Message(Role.SYSTEM, system_prompt)]
        self._running_length = len(system_prompt)

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def system_message(self) -> Message:
        return self._messages[0]

    @property
    def running_length(self) -> int:
        return self._running_length

    def _append(self, message: Message) -> None:
        self._messages.append(message)
        self._running_length += len(message.content)

    def append_user(self, text: str) -> None:
        self._append(Message(Role.USER, text))

    def append_assistant(self, raw_text: str) -> str:
        """Store the sanitized reply; return the literal text for display."""
        self._append(Message(Role.ASSISTANT, sanitize(raw_text)))
        return raw_text

    def enforce_budget(self) -> int:
        """Drop the oldest exchanges until the budget holds. Returns pairs dropped.

        Stops once only the system message is left, even if the budget is
        still exceeded.
        """
        dropped = 0
        while self._running_length > self.budget and len(self._messages) >= 3:
            question = self._messages.pop(1)
            answer = self._messages.pop(1)
            self._running_length -= len(question.content) + len(answer.content)
            dropped += 1

        if dropped:
            logger.debug(
                "pruned %d exchange(s), context now %d/%d chars",
                dropped,
                self._running_length,
                self.budget,
            )
        if self._running_length > self.budget:
            logger.warning(
                "context still over budget (%d/%d chars) after pruning",
                self._running_length,
                self.budget,
            )
        return dropped

    def snapshot_for_request(self) -> list[dict]:
        return [m.as_dict() for m in self._messages]
