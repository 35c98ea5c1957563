"""Tests for the fmt module (ANSI-formatted output helpers)."""

from io import StringIO

from rich.console import Console

from rhea import fmt


def _capture(func, *args, **kwargs):
    """Call a fmt function with a captured console and return plain-text output."""
    buf = StringIO()
    old = fmt._console
    fmt._console = Console(file=buf, no_color=True, width=120)
    try:
        func(*args, **kwargs)
    finally:
        fmt._console = old
    return buf.getvalue()


class TestMessages:
    def test_info(self):
        assert "loading" in _capture(fmt.info, "loading")

    def test_model_info(self):
        assert "Discovered loaded model: m" in _capture(
            fmt.model_info, "Discovered loaded model: m"
        )

    def test_warning(self):
        out = _capture(fmt.warning, "careful")
        assert "Warning:" in out
        assert "careful" in out

    def test_error(self):
        out = _capture(fmt.error, "LLM call failed: boom")
        assert out.startswith("Error: ")
        assert "boom" in out


class TestSessionSummary:
    def test_contents(self):
        out = _capture(fmt.session_summary, 3, 1, 640, 1000)
        assert "3 turn(s)" in out
        assert "640/1000 chars" in out
        assert "1 exchange(s) pruned" in out


class TestInit:
    def test_quiet_suppresses_output(self, capsys):
        old = fmt._console
        try:
            fmt.init(quiet=True)
            fmt.info("hidden")
        finally:
            fmt._console = old
        assert "hidden" not in capsys.readouterr().err

    def test_no_color(self):
        old = fmt._console
        try:
            fmt.init(no_color=True)
            assert fmt._console.no_color is True
        finally:
            fmt._console = old
