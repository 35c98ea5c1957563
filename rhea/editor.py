"""Single-line input editor with a code-point cursor."""


class Editor:
    """Input buffer plus cursor, both measured in code points.

    The buffer is kept as a list of one-character strings so inserting or
    deleting never has to translate between character and storage offsets.
    """

    def __init__(self):
        self._chars: list[str] = []
        self._cursor = 0

    def __len__(self) -> int:
        return len(self._chars)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def text(self) -> str:
        return "".join(self._chars)

    def _clamp(self, pos: int) -> int:
        return max(0, min(pos, len(self._chars)))

    def insert(self, char: str) -> None:
        if len(char) != 1:
            raise ValueError(f"insert() takes a single character, got {char!r}")
        self._chars.insert(self._cursor, char)
        self.move_right()

    def delete_before_cursor(self) -> None:
        if self._cursor == 0:
            return
        del self._chars[self._cursor - 1]
        self.move_left()

    def move_left(self) -> None:
        self._cursor = self._clamp(self._cursor - 1)

    def move_right(self) -> None:
        self._cursor = self._clamp(self._cursor + 1)

    def clear(self) -> None:
        self._chars.clear()
        self._cursor = 0

    def snapshot(self) -> str:
        """Return the buffer contents for submission, leaving state untouched."""
        return self.text
