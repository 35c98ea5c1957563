"""ANSI-formatted stderr output using Rich.

Only used before the full-screen interface starts and after it exits;
writing to stderr while it is up would tear the frame.
"""

from rich.console import Console
from rich.text import Text

_console = Console(stderr=True)


def init(*, color: bool = False, no_color: bool = False, quiet: bool = False) -> None:
    """Reconfigure the module-level console from CLI flags.

    Call once at startup, before any output.
    """
    global _console
    kwargs: dict = {"stderr": True, "quiet": quiet}
    if color:
        kwargs["force_terminal"] = True
        kwargs["no_color"] = False
    if no_color:
        kwargs["no_color"] = True
    _console = Console(**kwargs)


def llm_spinner(label: str = "Loading model"):
    """Return a Rich Status context manager that spins on stderr."""
    return _console.status(f"  {label}", spinner="dots")


def model_info(msg: str) -> None:
    _console.print(Text(f"  {msg}", style="dim"))


def info(msg: str) -> None:
    _console.print(Text(f"  {msg}", style="dim"))


def session_summary(turns: int, dropped: int, context_chars: int, budget: int) -> None:
    line = Text()
    line.append(f"  ✓ Session ended after {turns} turn(s)", style="bold green")
    line.append(
        f"  context={context_chars}/{budget} chars, {dropped} exchange(s) pruned",
        style="dim",
    )
    _console.print(line)


def warning(msg: str) -> None:
    line = Text()
    line.append("  ⚠ Warning: ", style="yellow")
    line.append(msg, style="yellow")
    _console.print(line)


def error(msg: str) -> None:
    line = Text()
    line.append("Error: ", style="bold red")
    line.append(msg, style="red")
    _console.print(line)
