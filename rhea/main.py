"""Command-line entry point: resolve the model, start the engine, run the UI."""

import argparse
import logging
import os
import sys
from importlib import metadata
from pathlib import Path

from . import fmt
from .config import _UNSET, apply_config_to_args, generate_config, load_config
from .controller import SessionController
from .conversation import ConversationContext
from .engine import (
    DEFAULT_BASE_URLS,
    PROVIDERS,
    InferenceEngine,
    SamplingParams,
    discover_model,
    make_backend,
)
from .errors import ConfigError, RheaError

DEFAULT_SYSTEM_PROMPT_FILE = Path(__file__).parent / "system_prompt.txt"

API_KEY_ENV = {
    "huggingface": "HF_TOKEN",
    "openrouter": "OPENROUTER_API_KEY",
}

logger = logging.getLogger("rhea")


def build_parser():
    """Build and return the argument parser.

    Options default to a sentinel so config file values can fill in whatever
    the command line left out.
    """
    parser = argparse.ArgumentParser(
        prog="rhea",
        description="Chat with a language model in a full-screen terminal UI.",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print the version and exit.",
    )
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Print a commented config file template and exit.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        metavar="FILE",
        help="Config file to read (default: ~/.config/rhea/config.toml).",
    )
    parser.add_argument(
        "--provider",
        choices=PROVIDERS,
        default=_UNSET,
        help="LLM provider: lmstudio (local), ollama (local), huggingface, openrouter.",
    )
    parser.add_argument(
        "--model",
        type=str,
        default=_UNSET,
        help="Model identifier (auto-discovered for lmstudio when omitted).",
    )
    parser.add_argument(
        "--api-key",
        type=str,
        default=_UNSET,
        help="API key for the provider (overrides env var).",
    )
    parser.add_argument(
        "--base-url",
        default=_UNSET,
        help="Server base URL (default: http://127.0.0.1:1234 for lmstudio).",
    )
    parser.add_argument(
        "--system-prompt",
        type=str,
        default=_UNSET,
        help="System directive placed at the start of the conversation.",
    )
    parser.add_argument(
        "--context-budget",
        type=int,
        default=_UNSET,
        help="Conversation size, in characters, above which old exchanges are dropped (default: 1000).",
    )
    parser.add_argument(
        "--temperature",
        type=float,
        default=_UNSET,
        help="Sampling temperature (default: 1.5).",
    )
    parser.add_argument(
        "--top-k",
        type=int,
        default=_UNSET,
        help="Top-k sampling (default: 50).",
    )
    parser.add_argument(
        "--top-p",
        type=float,
        default=_UNSET,
        help="Top-p (nucleus) sampling (default: 0.7).",
    )
    parser.add_argument(
        "--max-output-tokens",
        type=int,
        default=_UNSET,
        help="Maximum output tokens per reply (default: provider default).",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=_UNSET,
        metavar="FILE",
        help="Write debug logs to FILE.",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        default=_UNSET,
        help="Suppress startup diagnostics.",
    )

    color_group = parser.add_mutually_exclusive_group()
    color_group.add_argument(
        "--color",
        action="store_true",
        default=_UNSET,
        help="Force ANSI color even when stderr is not a TTY.",
    )
    color_group.add_argument(
        "--no-color",
        action="store_true",
        default=_UNSET,
        help="Disable ANSI color even when stderr is a TTY.",
    )
    return parser


def setup_logging(log_file: str | None) -> None:
    if not log_file:
        return
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)


def main():
    parser = build_parser()
    args = parser.parse_args()

    if args.version:
        try:
            version = metadata.version("rhea")
        except metadata.PackageNotFoundError:
            version = "unknown"
        print(version)
        sys.exit(0)

    if args.init_config:
        print(generate_config())
        sys.exit(0)

    try:
        config = load_config(Path(args.config) if args.config else None)
    except ConfigError as e:
        fmt.error(str(e))
        sys.exit(1)
    apply_config_to_args(args, config)

    args.verbose = not args.quiet
    fmt.init(color=args.color, no_color=args.no_color, quiet=args.quiet)

    if args.context_budget < 0:
        parser.error("--context-budget must be non-negative")

    try:
        setup_logging(args.log_file)
    except OSError as e:
        fmt.error(f"cannot open log file {args.log_file}: {e}")
        sys.exit(1)

    try:
        _run_main(args)
    except RheaError as e:
        logger.error("session aborted: %s", e)
        fmt.error(str(e))
        sys.exit(1)


def resolve_model(args) -> tuple[str, str | None]:
    """Return (model_id, api_key) for the selected provider."""
    if args.provider == "lmstudio":
        if args.model:
            model_id = args.model
            if args.verbose:
                fmt.model_info(f"Using user-specified model: {model_id}")
        else:
            model_id = discover_model(
                args.base_url or DEFAULT_BASE_URLS["lmstudio"], args.verbose
            )
            if not model_id:
                raise ConfigError(
                    "no loaded LLM found in LM Studio. "
                    "Load a model in LM Studio or use --model to specify one."
                )
        return model_id, None

    if not args.model:
        raise ConfigError(f"--model is required when --provider is {args.provider}")

    env_var = API_KEY_ENV.get(args.provider)
    if env_var is None:
        return args.model, args.api_key
    api_key = args.api_key or os.environ.get(env_var)
    if not api_key:
        raise ConfigError(
            f"--api-key or {env_var} env var required for {args.provider} provider"
        )
    return args.model, api_key


def load_system_prompt(args) -> str:
    if args.system_prompt:
        return args.system_prompt
    return DEFAULT_SYSTEM_PROMPT_FILE.read_text(encoding="utf-8").strip()


def _run_main(args):
    from .tui import ChatApp

    model_id, api_key = resolve_model(args)
    backend = make_backend(args.provider, model_id, args.base_url, api_key)
    sampling = SamplingParams(
        temperature=args.temperature,
        top_k=args.top_k,
        top_p=args.top_p,
        max_tokens=args.max_output_tokens,
    )
    conversation = ConversationContext(
        load_system_prompt(args), budget=args.context_budget
    )
    logger.info(
        "starting session: provider=%s model=%s budget=%d",
        args.provider,
        model_id,
        args.context_budget,
    )
    if args.verbose:
        fmt.info(
            f"Chatting with {model_id} via {args.provider}, "
            f"context budget {args.context_budget} chars"
        )
    if conversation.running_length > conversation.budget:
        fmt.warning(
            f"system prompt ({conversation.running_length} chars) is larger than "
            f"the context budget ({conversation.budget}); every exchange will be dropped"
        )

    with InferenceEngine(backend, name=model_id) as engine:
        controller = SessionController(engine, conversation, sampling=sampling)
        try:
            ChatApp(controller).run()
        finally:
            if args.verbose:
                fmt.session_summary(
                    controller.turns,
                    controller.pruned,
                    conversation.running_length,
                    conversation.budget,
                )


if __name__ == "__main__":
    main()
