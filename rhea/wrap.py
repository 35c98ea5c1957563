"""Greedy word wrapping for the message list."""

# Columns reserved on every line for the speaker label and list borders.
LABEL_MARGIN = 12


def wrap_text(text: str, max_width: int, margin: int = LABEL_MARGIN) -> list[str]:
    """Pack whitespace-separated words into lines no wider than max_width - margin.

    Words are never split or hyphenated, so a single word longer than the
    available width gets a line of its own.
    """
    lines: list[str] = []
    current = ""
    for word in text.split():
        # `current` carries a trailing space after every word it holds.
        if current and len(current) + len(word) + margin > max_width:
            lines.append(current.strip())
            current = ""
        current += word + " "

    if current:
        lines.append(current.strip())
    return lines
