"""Configuration file loading for rhea.

Reads TOML config from ~/.config/rhea/config.toml (or
$XDG_CONFIG_HOME/rhea/config.toml). Precedence: CLI > config file > defaults.
"""

import argparse
import os
import sys
import tomllib
from pathlib import Path
from typing import Any

from .errors import ConfigError

_UNSET = object()  # Sentinel for "not set by CLI"


# --- Schema ---

CONFIG_KEYS: dict[str, type | tuple[type, ...]] = {
    "provider": str,
    "model": str,
    "api_key": str,
    "base_url": str,
    "system_prompt": str,
    "context_budget": int,
    "temperature": (int, float),
    "top_k": int,
    "top_p": (int, float),
    "max_output_tokens": int,
    "color": bool,
    "quiet": bool,
    "log_file": str,
}

# Argparse dest -> hardcoded default
_ARGPARSE_DEFAULTS: dict[str, Any] = {
    "provider": "lmstudio",
    "model": None,
    "api_key": None,
    "base_url": None,
    "system_prompt": None,
    "context_budget": 1000,
    "temperature": 1.5,
    "top_k": 50,
    "top_p": 0.7,
    "max_output_tokens": None,
    "color": False,
    "no_color": False,
    "quiet": False,
    "log_file": None,
}


# --- Internal helpers ---


def global_config_dir() -> Path:
    """Return the global config directory, respecting XDG_CONFIG_HOME."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "rhea"
    return Path.home() / ".config" / "rhea"


def _type_name(expected: type | tuple[type, ...]) -> str:
    if isinstance(expected, tuple):
        return " or ".join(t.__name__ for t in expected)
    return expected.__name__


def _validate_config(config: dict, source: str) -> None:
    """Validate value types. Unknown keys only produce a warning."""
    for key, value in config.items():
        if key not in CONFIG_KEYS:
            print(f"warning: {source}: unknown config key {key!r}", file=sys.stderr)
            continue

        expected = CONFIG_KEYS[key]
        # bool is a subclass of int, so isinstance(True, int) is True.
        if isinstance(value, bool) and expected is not bool:
            raise ConfigError(
                f"{source}: {key!r} expected {_type_name(expected)}, got bool"
            )
        if not isinstance(value, expected):
            raise ConfigError(
                f"{source}: {key!r} expected {_type_name(expected)}, got {type(value).__name__}"
            )

    if config.get("context_budget", 0) < 0:
        raise ConfigError(f"{source}: 'context_budget' must be non-negative")


def _load_single(path: Path, label: str) -> dict:
    """Load and validate one TOML file. Returns an empty dict if missing."""
    if not path.is_file():
        return {}
    try:
        with open(path, "rb") as f:
            config = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{label}: invalid TOML: {e}") from e

    _validate_config(config, label)
    known = {k: v for k, v in config.items() if k in CONFIG_KEYS}

    if "log_file" in known:
        p = Path(known["log_file"]).expanduser()
        known["log_file"] = str(p if p.is_absolute() else path.parent / p)
    return known


# --- Public API ---


def load_config(path: Path | None = None) -> dict:
    """Load the config file (default: the global one).

    Only keys actually present in the file are returned; defaults are
    applied later by apply_config_to_args().
    """
    if path is None:
        path = global_config_dir() / "config.toml"
    return _load_single(Path(path), str(path))


def apply_config_to_args(args: argparse.Namespace, config: dict) -> None:
    """Fill argparse values the CLI left unset from config, then from defaults."""

    def _is_unset(dest: str) -> bool:
        return getattr(args, dest, _UNSET) is _UNSET

    # A single config key controls the --color/--no-color pair.
    if "color" in config:
        if _is_unset("color") and _is_unset("no_color"):
            args.color = config["color"]
            args.no_color = not config["color"]

    for key, value in config.items():
        if key == "color":
            continue
        if _is_unset(key):
            setattr(args, key, value)

    for dest, default in _ARGPARSE_DEFAULTS.items():
        if _is_unset(dest):
            setattr(args, dest, default)


def generate_config() -> str:
    """Return a commented-out template config string."""
    lines = [
        "# rhea configuration file",
        "# ~/.config/rhea/config.toml",
        "#",
        "# CLI flags override these values. Only uncomment what you need.",
        "",
        "# --- Provider / model ---",
        '# provider = "lmstudio"          # "lmstudio" | "ollama" | "huggingface" | "openrouter"',
        '# model = "humanish-llama3-8b-instruct"',
        '# api_key = "sk-or-..."            # prefer env vars; this is a fallback',
        '# base_url = "http://127.0.0.1:1234"',
        "",
        "# --- Conversation ---",
        '# system_prompt = "You are a helpful assistant."',
        "# context_budget = 1000          # characters, not tokens",
        "",
        "# --- Sampling ---",
        "# temperature = 1.5",
        "# top_k = 50",
        "# top_p = 0.7",
        "# max_output_tokens = 512",
        "",
        "# --- UI / diagnostics ---",
        "# color = true       # true = force color, false = force no-color, absent = auto",
        "# quiet = false",
        '# log_file = "rhea.log"',
        "",
    ]
    return "\n".join(lines)
